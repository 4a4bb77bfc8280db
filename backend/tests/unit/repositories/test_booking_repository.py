from __future__ import annotations

import pytest

from slotwise.models.booking import Booking, BookingStatus
from slotwise.repositories.booking_repository import BookingFilters, BookingRepository

from ...helpers import insert_booking, utc


@pytest.fixture
def repository(db) -> BookingRepository:
    return BookingRepository(db)


def test_find_overlapping_uses_half_open_intervals(db, repository, directory) -> None:
    insert_booking(db, directory, utc(10), utc(11))

    assert repository.find_overlapping(directory.worker.id, utc(11), utc(12)) == []
    assert repository.find_overlapping(directory.worker.id, utc(9), utc(10)) == []
    assert len(repository.find_overlapping(directory.worker.id, utc(10, 59), utc(12))) == 1


def test_get_by_payment_intent(db, repository, directory) -> None:
    booking = insert_booking(db, directory, utc(10), utc(11))
    repository.update(booking.id, payment_intent_id="pi_123")
    db.commit()

    assert repository.get_by_payment_intent("pi_123").id == booking.id
    assert repository.get_by_payment_intent("pi_missing") is None


def test_list_filters(db, repository, directory) -> None:
    insert_booking(db, directory, utc(13), utc(14))
    insert_booking(db, directory, utc(9), utc(10), status=BookingStatus.CANCELLED)

    everything = repository.list_for_business(directory.business.id, BookingFilters())
    assert [b.start_time for b in everything] == [utc(9), utc(13)]

    cancelled = repository.list_for_business(
        directory.business.id, BookingFilters(status=BookingStatus.CANCELLED)
    )
    assert [b.start_time for b in cancelled] == [utc(9)]

    window = repository.list_for_business(
        directory.business.id, BookingFilters(start_from=utc(12), start_before=utc(13, 30))
    )
    assert [b.start_time for b in window] == [utc(13)]


def test_get_for_update_discards_stale_identity_map_state(db, repository, directory) -> None:
    booking = insert_booking(db, directory, utc(10), utc(11))
    db.execute(
        Booking.__table__.update()
        .where(Booking.id == booking.id)
        .values(status=BookingStatus.CANCELLED.value)
    )

    locked = repository.get_for_update(booking.id)

    assert locked is booking
    assert locked.status == BookingStatus.CANCELLED.value
    assert repository.get_for_update("01ARZ3NDEKTSV4RRFFQ69G5FAV") is None
