"""Data access layer for the Slotwise booking core."""

from .base_repository import BaseRepository
from .booking_repository import BookingFilters, BookingRepository
from .directory_repository import DirectoryRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository

__all__ = [
    "BaseRepository",
    "BookingFilters",
    "BookingRepository",
    "DirectoryRepository",
    "PaymentRepository",
    "RepositoryFactory",
]
