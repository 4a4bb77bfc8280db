"""Test data builders shared across the suite."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

from sqlalchemy.orm import Session

from slotwise.core.enums import RoleName
from slotwise.domain.access_policy import Actor
from slotwise.models.booking import Booking, BookingStatus
from slotwise.models.user import Business, Service, User
from slotwise.schemas.booking import BookingCreate
from slotwise.schemas.payment import QuoteRequest

BOOKING_DAY = date(2025, 1, 10)


def utc(hour: int, minute: int = 0, day: date = BOOKING_DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def seed_directory(session: Session, *, tz_name: str = "UTC") -> SimpleNamespace:
    """One business with an owner, two workers, two clients, an admin and a 45-minute $30 service."""
    owner = User(email="owner@example.com", name="Olive Owner", role=RoleName.BUSINESS_OWNER.value)
    admin = User(email="admin@example.com", name="Ada Admin", role=RoleName.ADMIN.value)
    client = User(email="client@example.com", name="Cleo Client", role=RoleName.CLIENT.value)
    other_client = User(email="client2@example.com", name="Carl Client", role=RoleName.CLIENT.value)
    session.add_all([owner, admin, client, other_client])
    session.flush()

    business = Business(name="Fade & Co", owner_id=owner.id, timezone=tz_name)
    session.add(business)
    session.flush()

    worker = User(
        email="worker@example.com",
        name="Wes Worker",
        role=RoleName.WORKER.value,
        business_id=business.id,
    )
    other_worker = User(
        email="worker2@example.com",
        name="Wren Worker",
        role=RoleName.WORKER.value,
        business_id=business.id,
    )
    service = Service(
        business_id=business.id, name="Haircut", duration_minutes=45, price=Decimal("30.00")
    )
    session.add_all([worker, other_worker, service])
    session.commit()

    return SimpleNamespace(
        business=business,
        owner=owner,
        admin=admin,
        client=client,
        other_client=other_client,
        worker=worker,
        other_worker=other_worker,
        service=service,
        owner_actor=Actor.of(owner.id, RoleName.BUSINESS_OWNER),
        admin_actor=Actor.of(admin.id, RoleName.ADMIN),
        client_actor=Actor.of(client.id, RoleName.CLIENT),
        other_client_actor=Actor.of(other_client.id, RoleName.CLIENT),
        worker_actor=Actor.of(worker.id, RoleName.WORKER),
        other_worker_actor=Actor.of(other_worker.id, RoleName.WORKER),
    )


def booking_request(
    d: SimpleNamespace,
    start: time,
    *,
    worker_id: Optional[str] = None,
    client_id: Optional[str] = None,
    day: date = BOOKING_DAY,
    status: BookingStatus = BookingStatus.SCHEDULED,
) -> BookingCreate:
    return BookingCreate(
        business_id=d.business.id,
        client_id=client_id or d.client.id,
        worker_id=worker_id or d.worker.id,
        service_id=d.service.id,
        booking_date=day,
        start_time=start,
        status=status,
    )


def quote_request(
    d: SimpleNamespace,
    start: time,
    *,
    worker_id: Optional[str] = None,
    day: date = BOOKING_DAY,
) -> QuoteRequest:
    return QuoteRequest(
        business_id=d.business.id,
        worker_id=worker_id or d.worker.id,
        service_id=d.service.id,
        booking_date=day,
        start_time=start,
    )


def insert_booking(
    session: Session,
    d: SimpleNamespace,
    start: datetime,
    end: datetime,
    *,
    status: BookingStatus = BookingStatus.SCHEDULED,
    worker_id: Optional[str] = None,
) -> Booking:
    """Write a booking row directly, bypassing the service layer."""
    booking = Booking(
        business_id=d.business.id,
        service_id=d.service.id,
        client_id=d.client.id,
        worker_id=worker_id or d.worker.id,
        start_time=start,
        end_time=end,
        status=status.value,
    )
    session.add(booking)
    session.commit()
    return booking
