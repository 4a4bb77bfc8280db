"""
Concurrent writers against one worker calendar.

Each thread uses its own session on a file-backed database, the way
request handlers do.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import time
import threading
from typing import Callable, List

import pytest

from slotwise.core.exceptions import (
    InvalidTransitionException,
    PaymentCapturedBookingFailedException,
    SlotUnavailableException,
)
from slotwise.integrations.payment_gateway import FakePaymentGateway
from slotwise.models.booking import Booking, BookingStatus
from slotwise.models.payment import PaymentEscalation
from slotwise.services import booking_service as booking_service_module
from slotwise.services.booking_payment_saga import BookingPaymentSaga
from slotwise.services.booking_service import BookingService

from ..helpers import booking_request, insert_booking, quote_request, seed_directory, utc

WRITERS = 6


@pytest.fixture
def seeded(file_session_factory):
    session = file_session_factory()
    try:
        return seed_directory(session)
    finally:
        session.close()


def _race(session_factory, count: int, work: Callable) -> List[object]:
    """Run ``work(session, index)`` in ``count`` threads released together; collect results or errors."""
    barrier = threading.Barrier(count)

    def run(index: int) -> object:
        session = session_factory()
        try:
            barrier.wait()
            return work(session, index)
        except Exception as exc:
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(run, range(count)))


def test_only_one_overlapping_booking_wins(file_session_factory, seeded) -> None:
    # Staggered starts; every pair overlaps the 09:00-09:45 window of the first.
    starts = [time(9, 0), time(9, 15), time(9, 30), time(9, 0), time(9, 15), time(9, 30)]

    def create(session, index):
        return BookingService(session).create_booking(
            seeded.owner_actor, booking_request(seeded, starts[index])
        )

    results = _race(file_session_factory, WRITERS, create)

    winners = [r for r in results if isinstance(r, Booking)]
    losers = [r for r in results if isinstance(r, SlotUnavailableException)]
    assert len(winners) == 1
    assert len(losers) == WRITERS - 1

    session = file_session_factory()
    try:
        assert session.query(Booking).count() == 1
    finally:
        session.close()


def test_different_workers_do_not_block_each_other(file_session_factory, seeded) -> None:
    workers = [seeded.worker.id, seeded.other_worker.id]

    def create(session, index):
        return BookingService(session).create_booking(
            seeded.owner_actor, booking_request(seeded, time(9, 0), worker_id=workers[index])
        )

    results = _race(file_session_factory, 2, create)
    assert all(isinstance(r, Booking) for r in results)


def test_racing_paid_commits_escalate_the_loser(file_session_factory, seeded) -> None:
    gateway = FakePaymentGateway()
    actors = [seeded.client_actor, seeded.other_client_actor]

    session = file_session_factory()
    try:
        saga = BookingPaymentSaga(session, gateway)
        intent_ids = [
            saga.reserve_and_quote(actor, quote_request(seeded, time(9, 0))).id for actor in actors
        ]
        for intent_id in intent_ids:
            gateway.mark_succeeded(saga.get_intent(seeded.admin_actor, intent_id).gateway_handle)
    finally:
        session.close()

    def commit(session, index):
        return BookingPaymentSaga(session, gateway).capture_and_commit(
            actors[index], intent_ids[index], timeout_seconds=5
        )

    results = _race(file_session_factory, 2, commit)

    assert sum(isinstance(r, Booking) for r in results) == 1
    assert sum(isinstance(r, PaymentCapturedBookingFailedException) for r in results) == 1

    session = file_session_factory()
    try:
        assert session.query(Booking).count() == 1
        assert session.query(PaymentEscalation).count() == 1
    finally:
        session.close()


def test_concurrent_commits_of_one_intent_book_once(file_session_factory, seeded) -> None:
    gateway = FakePaymentGateway()
    session = file_session_factory()
    try:
        record = BookingPaymentSaga(session, gateway).reserve_and_quote(
            seeded.client_actor, quote_request(seeded, time(9, 0))
        )
        gateway.mark_succeeded(record.gateway_handle)
        intent_id = record.id
    finally:
        session.close()

    def commit(session, index):
        return BookingPaymentSaga(session, gateway).capture_and_commit(
            seeded.client_actor, intent_id, timeout_seconds=5
        )

    results = _race(file_session_factory, 3, commit)

    assert all(isinstance(r, Booking) for r in results), results
    assert len({r.id for r in results}) == 1


def test_cancel_cannot_slip_in_while_a_completion_is_applied(
    file_session_factory, seeded, monkeypatch
) -> None:
    setup = file_session_factory()
    try:
        booking_id = insert_booking(setup, seeded, utc(10), utc(11)).id
    finally:
        setup.close()

    real_plan = booking_service_module.plan_transition
    cancel_outcome: dict = {}
    completion_started = threading.Event()

    def cancel_as_client() -> None:
        session = file_session_factory()
        try:
            cancel_outcome["result"] = BookingService(session).update_status(
                seeded.client_actor, booking_id, BookingStatus.CANCELLED
            )
        except Exception as exc:
            cancel_outcome["result"] = exc
        finally:
            session.close()

    canceller = threading.Thread(target=cancel_as_client)

    def plan_with_competing_cancel(current, target, role):
        if target == BookingStatus.COMPLETED and not completion_started.is_set():
            completion_started.set()
            canceller.start()
            # Give the cancel every chance to commit between our read and our write.
            canceller.join(timeout=0.5)
        return real_plan(current, target, role)

    monkeypatch.setattr(booking_service_module, "plan_transition", plan_with_competing_cancel)

    session = file_session_factory()
    try:
        completed = BookingService(session).update_status(
            seeded.worker_actor, booking_id, BookingStatus.COMPLETED
        )
        assert completed.status == BookingStatus.COMPLETED.value
    finally:
        session.close()
    canceller.join(timeout=10)

    assert not canceller.is_alive()
    assert isinstance(cancel_outcome["result"], InvalidTransitionException)

    session = file_session_factory()
    try:
        stored = session.get(Booking, booking_id)
        assert stored.status == BookingStatus.COMPLETED.value
        assert stored.cancelled_at is None
        assert stored.cancelled_by_id is None
    finally:
        session.close()


def test_racing_terminal_transitions_leave_one_winner(file_session_factory, seeded) -> None:
    setup = file_session_factory()
    try:
        booking_id = insert_booking(setup, seeded, utc(10), utc(11)).id
    finally:
        setup.close()

    moves = [
        (seeded.worker_actor, BookingStatus.COMPLETED),
        (seeded.client_actor, BookingStatus.CANCELLED),
    ]

    def transition(session, index):
        actor, target = moves[index]
        return BookingService(session).update_status(actor, booking_id, target)

    results = _race(file_session_factory, 2, transition)

    winners = [r for r in results if isinstance(r, Booking)]
    losers = [r for r in results if isinstance(r, InvalidTransitionException)]
    assert len(winners) == 1
    assert len(losers) == 1

    session = file_session_factory()
    try:
        assert session.get(Booking, booking_id).status == winners[0].status
    finally:
        session.close()
