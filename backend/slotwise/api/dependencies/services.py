# backend/slotwise/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...integrations.payment_gateway import PaymentGateway, get_payment_gateway
from ...services.availability_service import AvailabilityService
from ...services.booking_payment_saga import BookingPaymentSaga
from ...services.booking_service import BookingService
from .database import get_db


def get_payment_gateway_dep() -> PaymentGateway:
    return get_payment_gateway()


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_booking_payment_saga(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway_dep),
) -> BookingPaymentSaga:
    return BookingPaymentSaga(db, gateway)
