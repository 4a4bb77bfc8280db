# backend/slotwise/services/conflict_checker.py
"""
Conflict Resolver.

Decides whether a worker may take a candidate interval ``[start, end)``.
Only non-cancelled bookings occupy a calendar, and adjacency is not a
conflict. Callers that go on to write a booking must run the check inside
``BaseService.calendar_transaction`` for the same worker.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.exceptions import SlotUnavailableException
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

OVERLAP_CONSTRAINTS = ("bookings_no_overlap_per_worker",)


def is_overlap_violation(exc: IntegrityError) -> bool:
    """True when the database rejected a write for double-booking a worker."""
    raw_error = str(getattr(exc, "orig", exc)).lower()
    return any(name in raw_error for name in OVERLAP_CONSTRAINTS)


class ConflictChecker(BaseService):
    """Service for checking worker calendar conflicts."""

    def __init__(self, db: Session, repository: Optional[BookingRepository] = None):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)

    def find_conflicts(
        self,
        worker_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        return self.repository.find_overlapping(
            worker_id, start, end, exclude_booking_id=exclude_booking_id
        )

    @BaseService.measure_operation("has_conflict")
    def has_conflict(
        self,
        worker_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """
        Check whether ``[start, end)`` overlaps a non-cancelled booking of the worker.

        Args:
            worker_id: Worker whose calendar is checked
            start: Candidate start
            end: Candidate end
            exclude_booking_id: Booking to leave out (reschedule of itself)

        Returns:
            True if the interval is taken
        """
        return bool(self.find_conflicts(worker_id, start, end, exclude_booking_id))

    def ensure_available(
        self,
        worker_id: str,
        start: datetime,
        end: datetime,
        *,
        exclude_booking_id: Optional[str] = None,
        stage: str = "commit",
    ) -> None:
        """
        Raises:
            SlotUnavailableException: If the interval is taken.
        """
        if self.has_conflict(worker_id, start, end, exclude_booking_id):
            prometheus_metrics.record_booking_conflict(stage)
            logger.warning(
                "booking_slot_unavailable",
                extra={
                    "worker_id": worker_id,
                    "start_time": start.isoformat(),
                    "end_time": end.isoformat(),
                    "stage": stage,
                },
            )
            raise SlotUnavailableException(
                details={
                    "worker_id": worker_id,
                    "start_time": start.isoformat(),
                    "end_time": end.isoformat(),
                }
            )
