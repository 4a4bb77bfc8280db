"""BookingService: creation, reads, listings, lifecycle and reschedule."""

from __future__ import annotations

from datetime import date, time, timedelta, timezone
from decimal import Decimal

import pytest

from slotwise.core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    SlotUnavailableException,
    ValidationException,
)
from slotwise.models.booking import Booking, BookingStatus
from slotwise.schemas.booking import ClientBookingRequest
from slotwise.services.booking_service import BookingService, requires_payment

from ...helpers import BOOKING_DAY, booking_request, insert_booking, seed_directory, utc


@pytest.fixture
def service(db) -> BookingService:
    return BookingService(db)


class TestCreateBooking:
    def test_end_is_derived_from_service_duration(self, service, directory) -> None:
        booking = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))

        assert booking.start_time == utc(9, 0)
        assert booking.end_time == utc(9, 45)
        assert booking.status == BookingStatus.SCHEDULED.value
        assert booking.worker_id == directory.worker.id

    def test_overlapping_request_is_rejected(self, service, directory) -> None:
        service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))

        with pytest.raises(SlotUnavailableException) as exc_info:
            service.create_booking(directory.owner_actor, booking_request(directory, time(9, 30)))

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == "SLOT_UNAVAILABLE"
        assert exc_info.value.details["worker_id"] == directory.worker.id

    def test_adjacent_booking_is_allowed(self, service, directory) -> None:
        service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        second = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 45)))

        assert second.start_time == utc(9, 45)
        assert second.end_time == utc(10, 30)

    def test_other_worker_is_independent(self, service, directory) -> None:
        service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        other = service.create_booking(
            directory.owner_actor,
            booking_request(directory, time(9, 0), worker_id=directory.other_worker.id),
        )
        assert other.worker_id == directory.other_worker.id

    def test_cancelled_booking_frees_the_slot(self, db, service, directory) -> None:
        insert_booking(db, directory, utc(9), utc(9, 45), status=BookingStatus.CANCELLED)
        booking = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        assert booking.start_time == utc(9)

    def test_confirmed_initial_status(self, service, directory) -> None:
        booking = service.create_booking(
            directory.owner_actor,
            booking_request(directory, time(11, 0), status=BookingStatus.CONFIRMED),
        )
        assert booking.status == BookingStatus.CONFIRMED.value

    def test_terminal_initial_status_is_rejected(self, service, directory) -> None:
        with pytest.raises(ValidationException):
            service.create_booking(
                directory.owner_actor,
                booking_request(directory, time(11, 0), status=BookingStatus.COMPLETED),
            )

    def test_admin_must_name_business(self, service, directory) -> None:
        request = booking_request(directory, time(9, 0)).model_copy(update={"business_id": None})
        with pytest.raises(ValidationException):
            service.create_booking(directory.admin_actor, request)

    def test_admin_can_create_for_named_business(self, service, directory) -> None:
        booking = service.create_booking(directory.admin_actor, booking_request(directory, time(9, 0)))
        assert booking.business_id == directory.business.id

    def test_owner_defaults_to_own_business(self, service, directory) -> None:
        request = booking_request(directory, time(9, 0)).model_copy(update={"business_id": None})
        booking = service.create_booking(directory.owner_actor, request)
        assert booking.business_id == directory.business.id

    @pytest.mark.parametrize("actor_name", ["client_actor", "worker_actor"])
    def test_non_staff_cannot_create(self, service, directory, actor_name) -> None:
        with pytest.raises(ForbiddenException):
            service.create_booking(getattr(directory, actor_name), booking_request(directory, time(9, 0)))

    def test_worker_from_other_business_is_not_found(self, db, service, directory) -> None:
        with pytest.raises(NotFoundException):
            service.create_booking(
                directory.owner_actor,
                booking_request(directory, time(9, 0), worker_id=directory.client.id),
            )

    def test_unknown_client_is_not_found(self, service, directory) -> None:
        with pytest.raises(NotFoundException):
            service.create_booking(
                directory.owner_actor,
                booking_request(directory, time(9, 0), client_id="01HUNKNOWNCLIENT000000000A"),
            )

    def test_inactive_service_is_rejected(self, db, service, directory) -> None:
        directory.service.is_active = False
        db.commit()
        with pytest.raises(ValidationException):
            service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))

    def test_business_timezone_is_applied(self, db) -> None:
        d = seed_directory(db, tz_name="America/New_York")
        booking = BookingService(db).create_booking(d.owner_actor, booking_request(d, time(9, 0)))
        assert booking.start_time == utc(14, 0)
        assert booking.end_time == utc(14, 45)


@pytest.mark.parametrize(
    "prepayment,price,expected",
    [
        (True, Decimal("30.00"), True),
        (True, Decimal("0.00"), False),
        (True, Decimal("0.004"), False),
        (False, Decimal("30.00"), False),
    ],
)
def test_requires_payment(directory, prepayment, price, expected) -> None:
    directory.business.requires_prepayment = prepayment
    directory.service.price = price
    assert requires_payment(directory.business, directory.service) is expected


def client_request(d, start: time, **overrides) -> ClientBookingRequest:
    payload = {
        "business_id": d.business.id,
        "worker_id": d.worker.id,
        "service_id": d.service.id,
        "booking_date": BOOKING_DAY,
        "start_time": start,
    }
    payload.update(overrides)
    return ClientBookingRequest(**payload)


class TestCreateClientBooking:
    @pytest.fixture
    def no_prepayment(self, db, directory) -> None:
        directory.business.requires_prepayment = False
        db.commit()

    def test_free_service_is_confirmed_without_payment(self, db, service, directory) -> None:
        directory.service.price = Decimal("0.00")
        db.commit()

        booking = service.create_client_booking(directory.client_actor, client_request(directory, time(9, 0)))

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.client_id == directory.client.id
        assert booking.payment_intent_id is None
        assert booking.end_time == utc(9, 45)

    def test_business_without_prepayment(self, service, directory, no_prepayment) -> None:
        booking = service.create_client_booking(directory.client_actor, client_request(directory, time(10, 0)))
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.start_time == utc(10, 0)

    def test_prepaid_service_must_go_through_payment(self, db, service, directory) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.create_client_booking(directory.client_actor, client_request(directory, time(9, 0)))
        assert exc_info.value.code == "PAYMENT_REQUIRED"
        assert db.query(Booking).count() == 0

    def test_overlap_is_rejected(self, db, service, directory, no_prepayment) -> None:
        insert_booking(db, directory, utc(9, 30), utc(10))
        with pytest.raises(SlotUnavailableException):
            service.create_client_booking(directory.client_actor, client_request(directory, time(9, 0)))

    def test_client_cannot_book_for_someone_else(self, service, directory, no_prepayment) -> None:
        request = client_request(directory, time(9, 0), client_id=directory.other_client.id)
        with pytest.raises(ForbiddenException):
            service.create_client_booking(directory.client_actor, request)

    def test_owner_books_for_client(self, service, directory, no_prepayment) -> None:
        request = client_request(directory, time(9, 0), client_id=directory.client.id)
        booking = service.create_client_booking(directory.owner_actor, request)
        assert booking.client_id == directory.client.id

    def test_worker_cannot_book(self, service, directory, no_prepayment) -> None:
        with pytest.raises(ForbiddenException):
            service.create_client_booking(directory.worker_actor, client_request(directory, time(9, 0)))


class TestGetBooking:
    def test_related_actors_can_read(self, service, directory) -> None:
        booking = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        for actor in (directory.client_actor, directory.worker_actor, directory.owner_actor, directory.admin_actor):
            assert service.get_booking(actor, booking.id).id == booking.id

    @pytest.mark.parametrize("actor_name", ["other_client_actor", "other_worker_actor"])
    def test_unrelated_actors_are_forbidden(self, service, directory, actor_name) -> None:
        booking = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        with pytest.raises(ForbiddenException):
            service.get_booking(getattr(directory, actor_name), booking.id)

    def test_unknown_booking(self, service, directory) -> None:
        with pytest.raises(NotFoundException):
            service.get_booking(directory.admin_actor, "01HUNKNOWNBOOKING00000000A")


class TestUpdateStatus:
    @pytest.fixture
    def booking(self, service, directory) -> Booking:
        return service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))

    def test_worker_completes_booking(self, service, directory, booking) -> None:
        updated = service.update_status(directory.worker_actor, booking.id, BookingStatus.COMPLETED)
        assert updated.status == BookingStatus.COMPLETED.value
        assert updated.completed_at is not None

    def test_client_cancels_booking(self, service, directory, booking) -> None:
        updated = service.update_status(directory.client_actor, booking.id, BookingStatus.CANCELLED)
        assert updated.status == BookingStatus.CANCELLED.value
        assert updated.cancelled_by_id == directory.client.id
        assert updated.cancelled_at is not None

    def test_cancel_is_idempotent(self, service, directory, booking) -> None:
        first = service.update_status(directory.client_actor, booking.id, BookingStatus.CANCELLED)
        cancelled_at = first.cancelled_at
        second = service.update_status(directory.owner_actor, booking.id, BookingStatus.CANCELLED)
        assert second.status == BookingStatus.CANCELLED.value
        assert second.cancelled_at == cancelled_at
        assert second.cancelled_by_id == directory.client.id

    def test_terminal_booking_is_immutable(self, service, directory, booking) -> None:
        service.update_status(directory.worker_actor, booking.id, BookingStatus.COMPLETED)
        with pytest.raises(InvalidTransitionException):
            service.update_status(directory.owner_actor, booking.id, BookingStatus.CANCELLED)
        with pytest.raises(InvalidTransitionException):
            service.update_status(directory.owner_actor, booking.id, BookingStatus.NO_SHOW)

    def test_worker_cannot_mark_no_show(self, service, directory, booking) -> None:
        with pytest.raises(ForbiddenException):
            service.update_status(directory.worker_actor, booking.id, BookingStatus.NO_SHOW)

    def test_client_cannot_complete(self, service, directory, booking) -> None:
        with pytest.raises(ForbiddenException):
            service.update_status(directory.client_actor, booking.id, BookingStatus.COMPLETED)

    def test_owner_marks_no_show(self, service, directory, booking) -> None:
        updated = service.update_status(directory.owner_actor, booking.id, BookingStatus.NO_SHOW)
        assert updated.status == BookingStatus.NO_SHOW.value

    def test_initial_status_is_not_a_target(self, service, directory, booking) -> None:
        with pytest.raises(InvalidTransitionException):
            service.update_status(directory.admin_actor, booking.id, BookingStatus.CONFIRMED)

    def test_unrelated_worker_is_forbidden_before_lifecycle(self, service, directory, booking) -> None:
        service.update_status(directory.worker_actor, booking.id, BookingStatus.COMPLETED)
        with pytest.raises(ForbiddenException):
            service.update_status(directory.other_worker_actor, booking.id, BookingStatus.CANCELLED)

    def test_cancelled_booking_no_longer_blocks(self, service, directory, booking) -> None:
        service.update_status(directory.client_actor, booking.id, BookingStatus.CANCELLED)
        replacement = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        assert replacement.start_time == booking.start_time


class TestReschedule:
    @pytest.fixture
    def booking(self, service, directory) -> Booking:
        return service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))

    def test_moves_booking_and_rederives_end(self, service, directory, booking) -> None:
        moved = service.reschedule(directory.owner_actor, booking.id, BOOKING_DAY, time(13, 0))
        assert moved.start_time == utc(13, 0)
        assert moved.end_time == utc(13, 45)
        assert moved.status == BookingStatus.SCHEDULED.value

    def test_overlapping_itself_is_not_a_conflict(self, service, directory, booking) -> None:
        moved = service.reschedule(directory.owner_actor, booking.id, BOOKING_DAY, time(9, 15))
        assert moved.start_time == utc(9, 15)

    def test_conflict_with_other_booking(self, service, directory, booking) -> None:
        service.create_booking(directory.owner_actor, booking_request(directory, time(11, 0)))
        with pytest.raises(SlotUnavailableException):
            service.reschedule(directory.owner_actor, booking.id, BOOKING_DAY, time(10, 30))

        unchanged = service.get_booking(directory.owner_actor, booking.id)
        assert unchanged.start_time == utc(9, 0)

    def test_move_to_other_worker(self, service, directory, booking) -> None:
        moved = service.reschedule(
            directory.admin_actor,
            booking.id,
            BOOKING_DAY,
            time(9, 0),
            new_worker_id=directory.other_worker.id,
        )
        assert moved.worker_id == directory.other_worker.id
        # The original worker's slot is free again.
        again = service.create_booking(directory.owner_actor, booking_request(directory, time(9, 0)))
        assert again.worker_id == directory.worker.id

    def test_terminal_booking_cannot_move(self, service, directory, booking) -> None:
        service.update_status(directory.owner_actor, booking.id, BookingStatus.CANCELLED)
        with pytest.raises(InvalidTransitionException):
            service.reschedule(directory.owner_actor, booking.id, BOOKING_DAY, time(13, 0))

    @pytest.mark.parametrize("actor_name", ["client_actor", "worker_actor"])
    def test_only_staff_may_reschedule(self, service, directory, booking, actor_name) -> None:
        with pytest.raises(ForbiddenException):
            service.reschedule(getattr(directory, actor_name), booking.id, BOOKING_DAY, time(13, 0))


class TestListBookings:
    @pytest.fixture
    def bookings(self, db, directory):
        next_day = BOOKING_DAY + timedelta(days=1)
        return [
            insert_booking(db, directory, utc(13), utc(13, 45)),
            insert_booking(db, directory, utc(9), utc(9, 45)),
            insert_booking(db, directory, utc(9), utc(9, 45), worker_id=directory.other_worker.id),
            insert_booking(db, directory, utc(9, day=next_day), utc(9, 45, day=next_day)),
            insert_booking(db, directory, utc(15), utc(15, 45), status=BookingStatus.CANCELLED),
        ]

    def test_owner_sees_business_ordered_by_start(self, service, directory, bookings) -> None:
        result = service.list_bookings(directory.owner_actor)
        assert len(result) == 5
        starts = [b.start_time for b in result]
        assert starts == sorted(starts)

    def test_admin_must_name_business(self, service, directory, bookings) -> None:
        with pytest.raises(ValidationException):
            service.list_bookings(directory.admin_actor)
        assert len(service.list_bookings(directory.admin_actor, business_id=directory.business.id)) == 5

    def test_day_and_status_filters(self, service, directory, bookings) -> None:
        result = service.list_bookings(
            directory.owner_actor, day=BOOKING_DAY, status=BookingStatus.SCHEDULED
        )
        assert [b.start_time for b in result] == [utc(9), utc(9), utc(13)]

    def test_worker_filter(self, service, directory, bookings) -> None:
        result = service.list_bookings(
            directory.owner_actor, worker_id=directory.other_worker.id
        )
        assert [b.id for b in result] == [bookings[2].id]

    def test_worker_sees_only_own_calendar(self, service, directory, bookings) -> None:
        result = service.list_bookings(directory.other_worker_actor)
        assert [b.id for b in result] == [bookings[2].id]

    def test_client_sees_own_bookings(self, service, directory, bookings) -> None:
        assert len(service.list_bookings(directory.client_actor)) == 5
        assert service.list_bookings(directory.other_client_actor) == []

    def test_empty_day(self, service, directory, bookings) -> None:
        assert service.list_bookings(directory.owner_actor, day=date(2025, 2, 1)) == []
