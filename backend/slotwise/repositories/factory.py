# backend/slotwise/repositories/factory.py
"""
Repository Factory for the Slotwise booking core.

Provides centralized creation of repository instances.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .directory_repository import DirectoryRepository
    from .payment_repository import PaymentRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_directory_repository(db: Session) -> "DirectoryRepository":
        from .directory_repository import DirectoryRepository

        return DirectoryRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)
