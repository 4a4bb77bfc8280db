# backend/slotwise/models/payment.py
"""
Payment saga records.

``BookingPaymentIntent`` snapshots a quoted booking request together with
the gateway handle created for it. Phase 2 of the saga commits from this
snapshot rather than from client-supplied data.

``PaymentEscalation`` is the hand-off to the support workflow when a
payment was captured but its booking could not be committed.
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime


class PaymentIntentStatus(str, Enum):
    QUOTED = "quoted"
    COMMITTED = "committed"
    SLOT_LOST = "slot_lost"  # slot taken before capture; intent cancelled at gateway
    FAILED = "failed"
    CAPTURED_UNBOOKED = "captured_unbooked"  # escalated


class EscalationStatus(str, Enum):
    OPEN = "open"
    REFUNDED = "refunded"
    REBOOKED = "rebooked"
    DISMISSED = "dismissed"


class BookingPaymentIntent(Base):
    __tablename__ = "booking_payment_intents"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    gateway_handle = Column(String(255), nullable=False, unique=True, index=True)
    client_secret = Column(String(255), nullable=True)

    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    client_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    worker_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=False)
    notes = Column(Text, nullable=True)

    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    platform_fee_cents = Column(Integer, nullable=False, default=0)
    processor_fee_cents = Column(Integer, nullable=False, default=0)
    business_amount_cents = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default=PaymentIntentStatus.QUOTED.value, index=True)
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=True)

    created_at = Column(UTCDateTime(), server_default=func.now())
    updated_at = Column(UTCDateTime(), onupdate=func.now())

    booking = relationship("Booking")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="check_intent_amount_non_negative"),
        CheckConstraint(
            "status IN ('quoted', 'committed', 'slot_lost', 'failed', 'captured_unbooked')",
            name="ck_booking_payment_intents_status",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BookingPaymentIntent {self.id}: handle={self.gateway_handle} "
            f"worker={self.worker_id} status={self.status}>"
        )


class PaymentEscalation(Base):
    __tablename__ = "payment_escalations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    payment_intent_record_id = Column(
        String(26), ForeignKey("booking_payment_intents.id"), nullable=False, unique=True
    )
    payment_reference = Column(String(255), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=EscalationStatus.OPEN.value, index=True)
    resolution_note = Column(Text, nullable=True)
    resolved_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)
    created_at = Column(UTCDateTime(), server_default=func.now())
    resolved_at = Column(UTCDateTime(), nullable=True)

    payment_intent = relationship("BookingPaymentIntent")

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'refunded', 'rebooked', 'dismissed')",
            name="ck_payment_escalations_status",
        ),
    )
