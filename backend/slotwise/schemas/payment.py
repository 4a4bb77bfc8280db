# backend/slotwise/schemas/payment.py
"""Payment-gated booking schemas."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel
from .booking import ClientBookingRequest


class QuoteRequest(ClientBookingRequest):
    """Phase 1: validate the slot and open a payment intent for it."""


class PaymentIntentResponse(StrictModel):
    id: str
    payment_reference: str = Field(..., validation_alias="gateway_handle")
    client_secret: Optional[str] = None
    status: str
    business_id: str
    service_id: str
    client_id: str
    worker_id: str
    start_time: datetime
    end_time: datetime
    amount_cents: int
    currency: str
    platform_fee_cents: int
    processor_fee_cents: int
    business_amount_cents: int
    booking_id: Optional[str] = None


class CommitRequest(StrictRequestModel):
    """Phase 2. ``timeout_seconds`` bounds the gateway status poll."""

    timeout_seconds: Optional[float] = Field(None, gt=0, le=120)


class EscalationResponse(StrictModel):
    id: str
    payment_intent_record_id: str
    payment_reference: str
    reason: str
    status: str
    resolution_note: Optional[str] = None
    resolved_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class EscalationResolve(StrictRequestModel):
    status: Literal["refunded", "rebooked", "dismissed"]
    note: Optional[str] = Field(None, max_length=2000)


class WebhookResponse(StrictModel):
    status: str
    event_type: str
    booking_id: Optional[str] = None
