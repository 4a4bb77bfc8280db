# backend/slotwise/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_actor
from .database import get_db
from .services import (
    get_availability_service,
    get_booking_payment_saga,
    get_booking_service,
    get_payment_gateway_dep,
)

__all__ = [
    # Auth
    "get_current_actor",
    # Database
    "get_db",
    # Services
    "get_availability_service",
    "get_booking_payment_saga",
    "get_booking_service",
    "get_payment_gateway_dep",
]
