from __future__ import annotations

from datetime import timedelta

import pytest

from slotwise.core.exceptions import NotFoundException
from slotwise.models.booking import BookingStatus
from slotwise.services.availability_service import AvailabilityService

from ...helpers import BOOKING_DAY, insert_booking, seed_directory, utc


@pytest.fixture
def availability(db) -> AvailabilityService:
    return AvailabilityService(db)


def _slots(availability, d, **kwargs):
    _business, _service, slots = availability.get_available_slots(
        d.business.id, d.worker.id, d.service.id, BOOKING_DAY, **kwargs
    )
    return slots


def test_empty_calendar_offers_every_slot_that_fits(availability, directory) -> None:
    slots = _slots(availability, directory)
    # 45-minute service, 30-minute step, 09:00-17:00: the last start that fits is 16:00.
    assert slots[0] == utc(9)
    assert slots[-1] == utc(16)
    assert len(slots) == 15


def test_booked_interval_removes_overlapping_slots(db, availability, directory) -> None:
    insert_booking(db, directory, utc(10), utc(10, 45))
    slots = _slots(availability, directory)
    assert utc(9, 30) not in slots
    assert utc(10) not in slots
    assert utc(10, 30) not in slots
    assert utc(9) in slots
    assert utc(11) in slots


def test_cancelled_and_other_worker_bookings_are_ignored(db, availability, directory) -> None:
    insert_booking(db, directory, utc(10), utc(10, 45), status=BookingStatus.CANCELLED)
    insert_booking(db, directory, utc(12), utc(12, 45), worker_id=directory.other_worker.id)
    assert len(_slots(availability, directory)) == 15


def test_custom_step(availability, directory) -> None:
    slots = _slots(availability, directory, step_minutes=60)
    assert slots == [utc(h) for h in range(9, 17)]


def test_business_timezone(db) -> None:
    d = seed_directory(db, tz_name="America/New_York")
    _business, _service, slots = AvailabilityService(db).get_available_slots(
        d.business.id, d.worker.id, d.service.id, BOOKING_DAY
    )
    assert slots[0] == utc(14)


def test_booked_intervals_for_local_day(db, availability, directory) -> None:
    insert_booking(db, directory, utc(13), utc(13, 45))
    insert_booking(db, directory, utc(9), utc(9, 45))
    next_day = BOOKING_DAY + timedelta(days=1)
    insert_booking(db, directory, utc(9, day=next_day), utc(9, 45, day=next_day))

    intervals = availability.get_booked_intervals(directory.worker.id, BOOKING_DAY, "UTC")
    assert intervals == [(utc(9), utc(9, 45)), (utc(13), utc(13, 45))]


def test_unknown_worker(availability, directory) -> None:
    with pytest.raises(NotFoundException):
        availability.get_available_slots(
            directory.business.id, directory.owner.id, directory.service.id, BOOKING_DAY
        )
