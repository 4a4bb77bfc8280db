from __future__ import annotations

from decimal import Decimal

import pytest

from slotwise.core.exceptions import NotFoundException, ValidationException
from slotwise.models.user import Business, Service, User
from slotwise.repositories.directory_repository import DirectoryRepository


@pytest.fixture
def repository(db) -> DirectoryRepository:
    return DirectoryRepository(db)


def test_resolve_bookable(repository, directory) -> None:
    business, service, worker = repository.resolve_bookable(
        directory.business.id, directory.service.id, directory.worker.id
    )
    assert (business.id, service.id, worker.id) == (
        directory.business.id,
        directory.service.id,
        directory.worker.id,
    )


def test_service_from_other_business_is_not_found(db, repository, directory) -> None:
    other_owner = User(email="other-owner@example.com", role="BUSINESS_OWNER")
    db.add(other_owner)
    db.flush()
    other_business = Business(name="Elsewhere", owner_id=other_owner.id)
    db.add(other_business)
    db.flush()
    foreign = Service(
        business_id=other_business.id, name="Shave", duration_minutes=15, price=Decimal("10.00")
    )
    db.add(foreign)
    db.commit()

    with pytest.raises(NotFoundException) as exc_info:
        repository.resolve_bookable(directory.business.id, foreign.id, directory.worker.id)
    assert exc_info.value.details == {"service_id": foreign.id}


def test_non_worker_is_not_found(repository, directory) -> None:
    with pytest.raises(NotFoundException):
        repository.resolve_bookable(directory.business.id, directory.service.id, directory.client.id)


def test_inactive_service(db, repository, directory) -> None:
    directory.service.is_active = False
    db.commit()
    with pytest.raises(ValidationException):
        repository.resolve_bookable(directory.business.id, directory.service.id, directory.worker.id)


def test_get_business_by_owner(repository, directory) -> None:
    assert repository.get_business_by_owner(directory.owner.id).id == directory.business.id
    assert repository.get_business_by_owner(directory.client.id) is None
