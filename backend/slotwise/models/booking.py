# backend/slotwise/models/booking.py
"""
Booking model for the Slotwise booking core.

A booking holds one worker's time for one client and one service:
``[start_time, end_time)`` with ``end_time == start_time + service duration``.
Bookings are never deleted; cancellation is a status transition so that
history is preserved.
"""

from enum import Enum
import logging
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    SCHEDULED = "SCHEDULED"  # Staff-entered, no payment required
    CONFIRMED = "CONFIRMED"  # Paid client booking, or staff-entered as confirmed
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Booking(Base):
    """
    Self-contained booking record.

    ``payment_intent_id`` links a payment-gated booking to the gateway
    intent it was committed from; it is unique so a retried commit can
    never produce a second booking for the same payment.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    business_id = Column(String(26), ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)
    client_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    worker_id = Column(String(26), ForeignKey("users.id"), nullable=True)

    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.SCHEDULED.value, index=True)
    notes = Column(Text, nullable=True)

    payment_intent_id = Column(String(255), nullable=True, unique=True)

    created_at = Column(UTCDateTime(), server_default=func.now())
    updated_at = Column(UTCDateTime(), onupdate=func.now())
    completed_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancelled_by_id = Column(String(26), ForeignKey("users.id"), nullable=True)

    business = relationship("Business")
    service = relationship("Service")
    client = relationship("User", foreign_keys=[client_id])
    worker = relationship("User", foreign_keys=[worker_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('SCHEDULED', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'NO_SHOW')",
            name="ck_bookings_status",
        ),
        CheckConstraint("start_time < end_time", name="check_time_order"),
        Index("ix_bookings_worker_start", "worker_id", "start_time"),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.SCHEDULED.value

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: worker={self.worker_id}, client={self.client_id}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )
