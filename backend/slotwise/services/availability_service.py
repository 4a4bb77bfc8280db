# backend/slotwise/services/availability_service.py
"""
Availability Index.

Answers which bookings occupy a worker's local day, and which generated
slots remain offerable for a service on that day.
"""

from datetime import date, datetime
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..domain.time_arithmetic import (
    end_time,
    generate_slots,
    intervals_overlap,
    local_day_bounds,
    localize,
    parse_hhmm,
)
from ..models.user import Business, Service
from ..repositories.booking_repository import BookingRepository
from ..repositories.directory_repository import DirectoryRepository
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]


class AvailabilityService(BaseService):
    def __init__(
        self,
        db: Session,
        booking_repository: Optional[BookingRepository] = None,
        directory: Optional[DirectoryRepository] = None,
    ):
        super().__init__(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.directory = directory or RepositoryFactory.create_directory_repository(db)

    def get_booked_intervals(self, worker_id: str, day: date, tz_name: str) -> List[Interval]:
        """Non-cancelled intervals of the worker touching the local day, ordered by start."""
        day_start, day_end = local_day_bounds(day, tz_name)
        bookings = self.booking_repository.get_worker_bookings_between(worker_id, day_start, day_end)
        return [(b.start_time, b.end_time) for b in bookings]

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self,
        business_id: str,
        worker_id: str,
        service_id: str,
        day: date,
        step_minutes: Optional[int] = None,
    ) -> Tuple[Business, Service, List[datetime]]:
        """
        Offerable start times for ``service`` with ``worker`` on a local date.

        A slot is offered when ``[slot, slot + duration)`` ends by closing
        time and overlaps none of the worker's non-cancelled bookings.
        """
        business, service, _worker = self.directory.resolve_bookable(
            business_id, service_id, worker_id
        )
        step = step_minutes or settings.default_slot_step_minutes

        opens = localize(day, parse_hhmm(settings.default_business_day_start), business.timezone)
        closes = localize(day, parse_hhmm(settings.default_business_day_end), business.timezone)
        booked = self.get_booked_intervals(worker_id, day, business.timezone)

        offerable: List[datetime] = []
        for slot in generate_slots(opens, closes, step):
            slot_end = end_time(slot, service.duration_minutes)
            if slot_end > closes:
                break
            if any(intervals_overlap(slot, slot_end, s, e) for s, e in booked):
                continue
            offerable.append(slot)
        return business, service, offerable

