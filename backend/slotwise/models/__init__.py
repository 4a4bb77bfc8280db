"""
Database models for the Slotwise booking core.

- Directory tables (read-only to the core): users, businesses, services
- Booking store: bookings
- Payment saga: booking payment intents and escalations
"""

from .booking import Booking, BookingStatus
from .payment import (
    BookingPaymentIntent,
    EscalationStatus,
    PaymentEscalation,
    PaymentIntentStatus,
)
from .user import Business, Service, User

__all__ = [
    "Booking",
    "BookingPaymentIntent",
    "BookingStatus",
    "Business",
    "EscalationStatus",
    "PaymentEscalation",
    "PaymentIntentStatus",
    "Service",
    "User",
]
