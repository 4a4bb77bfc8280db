# backend/slotwise/schemas/booking.py
"""
Booking schemas.

Requests carry a local date and an ``HH:MM`` wall-clock start; the service
layer resolves them to an instant in the business's timezone and derives
the end from the service duration. Responses carry timezone-aware
instants.
"""

from datetime import date, datetime, time
import re
from typing import List, Optional

from pydantic import Field, field_validator

from ..models.booking import BookingStatus
from ._strict_base import StrictModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def parse_time_string(value: object) -> object:
    """Convert ``HH:MM`` strings to time objects."""
    if isinstance(value, str):
        try:
            hour, minute = value.split(":")
            return time(int(hour), int(minute))
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
    return value


def clean_note(value: Optional[str]) -> Optional[str]:
    return value.strip() if value else value


class BookingCreate(StrictRequestModel):
    """Staff-entered booking (business owner or admin)."""

    business_id: Optional[str] = Field(
        None, description="Required for admins; owners default to their own business"
    )
    client_id: str = Field(..., description="Client the booking is for")
    worker_id: str = Field(..., description="Worker whose calendar is booked")
    service_id: str = Field(..., description="Service being booked")
    booking_date: date = Field(..., description="Local date in the business timezone")
    start_time: time = Field(..., description="Local start time (HH:MM)")
    status: BookingStatus = Field(
        BookingStatus.SCHEDULED, description="Initial status: SCHEDULED or CONFIRMED"
    )
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return ensure_date_only(v, "booking_date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v: object) -> object:
        return parse_time_string(v)

    @field_validator("notes")
    @classmethod
    def _clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return clean_note(v)


class ClientBookingRequest(StrictRequestModel):
    """A client asking for a slot; staff may pass ``client_id`` to act for a client."""

    business_id: str
    worker_id: str
    service_id: str
    booking_date: date
    start_time: time
    client_id: Optional[str] = Field(None, description="Defaults to the calling client")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return ensure_date_only(v, "booking_date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v: object) -> object:
        return parse_time_string(v)

    @field_validator("notes")
    @classmethod
    def _clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return clean_note(v)


class BookingStatusUpdate(StrictRequestModel):
    status: BookingStatus


class BookingReschedule(StrictRequestModel):
    """Move a booking to a new local start time and optionally another worker."""

    booking_date: date
    start_time: time
    worker_id: Optional[str] = None

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return ensure_date_only(v, "booking_date")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, v: object) -> object:
        return parse_time_string(v)


class BookingResponse(StrictModel):
    id: str
    business_id: str
    service_id: str
    client_id: str
    worker_id: Optional[str]
    start_time: datetime
    end_time: datetime
    status: BookingStatus
    notes: Optional[str] = None
    payment_intent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None


class AvailableSlotsResponse(StrictModel):
    business_id: str
    worker_id: str
    service_id: str
    date: date
    timezone: str
    step_minutes: int
    duration_minutes: int
    slots: List[datetime]
