# backend/slotwise/repositories/booking_repository.py
"""
Booking Repository for the Slotwise booking core.

Owns every query against the ``bookings`` table: the overlap query used by
the conflict resolver, the per-worker day index used by availability, and
the role-scoped listings.

Overlap is evaluated on half-open intervals ``[start, end)``:
``existing.start < new.end AND existing.end > new.start``. A single
predicate covers partial overlap on either side, containment and exact
equality, and lets back-to-back bookings touch.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingFilters:
    """Optional listing filters. ``status=None`` means every status."""

    status: Optional[BookingStatus] = None
    start_from: Optional[datetime] = None
    start_before: Optional[datetime] = None
    worker_id: Optional[str] = None


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    # Conflict queries

    def find_overlapping(
        self,
        worker_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        Non-cancelled bookings of ``worker_id`` whose interval intersects ``[start, end)``.

        Args:
            worker_id: Worker whose calendar is checked
            start: Candidate start (timezone-aware)
            end: Candidate end (timezone-aware)
            exclude_booking_id: Booking to ignore (the one being rescheduled)
        """
        try:
            query = self.db.query(Booking).filter(
                Booking.worker_id == worker_id,
                Booking.status != BookingStatus.CANCELLED.value,
                Booking.start_time < end,
                Booking.end_time > start,
            )
            if exclude_booking_id:
                query = query.filter(Booking.id != exclude_booking_id)
            return cast(List[Booking], query.order_by(Booking.start_time).all())
        except Exception as e:
            self.logger.error(f"Error finding overlapping bookings: {str(e)}")
            raise RepositoryException(f"Failed to check booking conflicts: {str(e)}")

    def get_worker_bookings_between(
        self, worker_id: str, window_start: datetime, window_end: datetime
    ) -> List[Booking]:
        """Booked (non-cancelled) intervals touching a window, ordered by start."""
        return self.find_overlapping(worker_id, window_start, window_end)

    def get_for_update(self, booking_id: str) -> Optional[Booking]:
        """Re-read a booking, row-locked until the current transaction ends."""
        try:
            query = (
                self.db.query(Booking)
                .filter(Booking.id == booking_id)
                .populate_existing()
                .with_for_update()
            )
            return cast(Optional[Booking], query.first())
        except Exception as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to get booking: {str(e)}")

    def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Booking]:
        try:
            return cast(
                Optional[Booking],
                self.db.query(Booking)
                .filter(Booking.payment_intent_id == payment_intent_id)
                .first(),
            )
        except Exception as e:
            self.logger.error(f"Error getting booking by payment intent: {str(e)}")
            raise RepositoryException(f"Failed to get booking: {str(e)}")

    # Listings

    def list_for_business(self, business_id: str, filters: BookingFilters) -> List[Booking]:
        return self._list(self.db.query(Booking).filter(Booking.business_id == business_id), filters)

    def list_for_worker(self, worker_id: str, filters: BookingFilters) -> List[Booking]:
        return self._list(self.db.query(Booking).filter(Booking.worker_id == worker_id), filters)

    def list_for_client(self, client_id: str, filters: BookingFilters) -> List[Booking]:
        return self._list(self.db.query(Booking).filter(Booking.client_id == client_id), filters)

    def _list(self, query: Query, filters: BookingFilters) -> List[Booking]:
        try:
            if filters.status is not None:
                query = query.filter(Booking.status == filters.status.value)
            if filters.start_from is not None:
                query = query.filter(Booking.start_time >= filters.start_from)
            if filters.start_before is not None:
                query = query.filter(Booking.start_time < filters.start_before)
            if filters.worker_id:
                query = query.filter(Booking.worker_id == filters.worker_id)
            return cast(List[Booking], query.order_by(Booking.start_time.asc()).all())
        except Exception as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")
