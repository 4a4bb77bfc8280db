# backend/slotwise/repositories/directory_repository.py
"""
Read-only access to the account/business directory.

Users, businesses and services are managed elsewhere; the booking core
only looks them up.
"""

import logging
from typing import Optional, Tuple, cast

from sqlalchemy.orm import Session

from ..core.enums import RoleName
from ..core.exceptions import NotFoundException, RepositoryException, ValidationException
from ..models.user import Business, Service, User

logger = logging.getLogger(__name__)


class DirectoryRepository:
    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(__name__)

    def get_user(self, user_id: str) -> Optional[User]:
        return cast(Optional[User], self.db.get(User, user_id))

    def get_business(self, business_id: str) -> Optional[Business]:
        return cast(Optional[Business], self.db.get(Business, business_id))

    def get_business_by_owner(self, owner_id: str) -> Optional[Business]:
        try:
            return cast(
                Optional[Business],
                self.db.query(Business).filter(Business.owner_id == owner_id).first(),
            )
        except Exception as e:
            self.logger.error(f"Error getting business for owner {owner_id}: {str(e)}")
            raise RepositoryException(f"Failed to get business: {str(e)}")

    def get_service(self, service_id: str) -> Optional[Service]:
        return cast(Optional[Service], self.db.get(Service, service_id))

    def get_worker(self, worker_id: str) -> Optional[User]:
        """A user with the WORKER role, or None."""
        user = self.get_user(worker_id)
        if user is None or user.role != RoleName.WORKER.value:
            return None
        return user

    def resolve_bookable(
        self, business_id: str, service_id: str, worker_id: str
    ) -> Tuple[Business, Service, User]:
        """
        Resolve a booking target, enforcing that the service and worker belong to the business.

        Raises:
            NotFoundException: If any of them is missing or belongs elsewhere.
            ValidationException: If the service is no longer offered.
        """
        business = self.get_business(business_id)
        if business is None:
            raise NotFoundException("Business not found", details={"business_id": business_id})
        service = self.get_service(service_id)
        if service is None or service.business_id != business.id:
            raise NotFoundException("Service not found", details={"service_id": service_id})
        if not service.is_active:
            raise ValidationException("Service is not currently offered")
        worker = self.get_worker(worker_id)
        if worker is None or worker.business_id != business.id:
            raise NotFoundException("Worker not found", details={"worker_id": worker_id})
        return business, service, worker
