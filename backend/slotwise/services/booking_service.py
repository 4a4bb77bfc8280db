# backend/slotwise/services/booking_service.py
"""
Booking Service for the Slotwise booking core.

Staff-entered bookings, client bookings that need no prepayment, reads
and listings, lifecycle transitions and reschedules. Every write that
claims calendar time runs its conflict check and its insert/update inside
one calendar transaction for the affected worker(s).

Actors are always passed in explicitly; authorization is decided by
``domain.access_policy`` before ``domain.booking_lifecycle`` is consulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.enums import BookingAction, RoleName
from ..core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ServiceException,
    SlotUnavailableException,
    ValidationException,
)
from ..domain.access_policy import ACTION_FOR_TARGET, Actor, require_access
from ..domain.booking_lifecycle import INITIAL_STATES, is_terminal, plan_transition
from ..domain.time_arithmetic import end_time, local_day_bounds, localize
from ..models.booking import Booking, BookingStatus
from ..models.user import Business, Service
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingFilters, BookingRepository
from ..repositories.directory_repository import DirectoryRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate, ClientBookingRequest
from .base import BaseService
from .conflict_checker import ConflictChecker, is_overlap_violation

logger = logging.getLogger(__name__)


def price_to_cents(price: Decimal) -> int:
    return int((Decimal(price) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def requires_payment(business: Business, service: Service) -> bool:
    """Priced services at a business that requires prepayment are paid for up front."""
    return bool(business.requires_prepayment) and price_to_cents(service.price) > 0


@dataclass(frozen=True)
class BookingDraft:
    """A booking that does not exist yet, for CREATE policy checks."""

    client_id: str
    worker_id: Optional[str]
    business_id: str


class BookingService(BaseService):
    """Service layer for booking operations."""

    def __init__(
        self,
        db: Session,
        repository: Optional[BookingRepository] = None,
        directory: Optional[DirectoryRepository] = None,
        conflict_checker: Optional[ConflictChecker] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_booking_repository(db)
        self.directory = directory or RepositoryFactory.create_directory_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, self.repository)

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(self, actor: Actor, booking_data: BookingCreate) -> Booking:
        """
        Create a staff-entered booking.

        Business owners book into their own business; admins must name the
        business. The initial status is SCHEDULED unless CONFIRMED is asked for.

        Raises:
            ForbiddenException: Actor is not staff for the business
            ValidationException: Bad status, missing business for admins
            NotFoundException: Business, service, worker or client missing
            SlotUnavailableException: Worker already booked for the interval
        """
        business = self._business_for_staff(actor, booking_data.business_id)
        draft = BookingDraft(
            client_id=booking_data.client_id,
            worker_id=booking_data.worker_id,
            business_id=business.id,
        )
        require_access(actor, draft, BookingAction.CREATE, business_owner_id=business.owner_id)

        if booking_data.status not in INITIAL_STATES:
            raise ValidationException(
                "New bookings must start as SCHEDULED or CONFIRMED",
                details={"status": booking_data.status.value},
            )

        _business, service, _worker = self.directory.resolve_bookable(
            business.id, booking_data.service_id, booking_data.worker_id
        )
        if self.directory.get_user(booking_data.client_id) is None:
            raise NotFoundException("Client not found", details={"client_id": booking_data.client_id})

        start = localize(booking_data.booking_date, booking_data.start_time, business.timezone)
        end = end_time(start, service.duration_minutes)
        booking = self._insert_booking(
            business,
            service,
            client_id=booking_data.client_id,
            worker_id=booking_data.worker_id,
            start=start,
            end=end,
            status=booking_data.status,
            notes=booking_data.notes,
        )

        self.log_operation(
            "create_booking",
            booking_id=booking.id,
            worker_id=booking.worker_id,
            actor_id=actor.id,
            status=booking.status,
        )
        return booking

    @BaseService.measure_operation("create_client_booking")
    def create_client_booking(self, actor: Actor, request: ClientBookingRequest) -> Booking:
        """
        Book a slot that needs no up-front payment.

        Applies to free services and to any service of a business that does
        not require prepayment. The booking is CONFIRMED straight away;
        everything else goes through the payment saga.

        Raises:
            ForbiddenException: Actor may not book for this client/business
            NotFoundException: Business, service, worker or client missing
            ValidationException: The service must be paid for when booking
            SlotUnavailableException: Worker already booked for the interval
        """
        business, service, _worker = self.directory.resolve_bookable(
            request.business_id, request.service_id, request.worker_id
        )
        client_id = request.client_id or actor.id
        draft = BookingDraft(client_id=client_id, worker_id=request.worker_id, business_id=business.id)
        require_access(actor, draft, BookingAction.CREATE, business_owner_id=business.owner_id)
        if self.directory.get_user(client_id) is None:
            raise NotFoundException("Client not found", details={"client_id": client_id})
        if requires_payment(business, service):
            raise ValidationException(
                "This service must be paid for when booking",
                code="PAYMENT_REQUIRED",
                details={"service_id": service.id, "price": str(service.price)},
            )

        start = localize(request.booking_date, request.start_time, business.timezone)
        end = end_time(start, service.duration_minutes)
        booking = self._insert_booking(
            business,
            service,
            client_id=client_id,
            worker_id=request.worker_id,
            start=start,
            end=end,
            status=BookingStatus.CONFIRMED,
            notes=request.notes,
        )

        self.log_operation(
            "create_client_booking",
            booking_id=booking.id,
            worker_id=booking.worker_id,
            actor_id=actor.id,
            prepayment_required=bool(business.requires_prepayment),
        )
        return booking

    # Reads

    def get_booking(self, actor: Actor, booking_id: str) -> Booking:
        """
        Raises:
            NotFoundException: Unknown booking
            ForbiddenException: Actor is not related to the booking
        """
        booking, owner_id = self._load(booking_id)
        require_access(actor, booking, BookingAction.READ, business_owner_id=owner_id)
        return booking

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        actor: Actor,
        *,
        business_id: Optional[str] = None,
        status: Optional[BookingStatus] = None,
        day: Optional[date] = None,
        worker_id: Optional[str] = None,
    ) -> List[Booking]:
        """
        List bookings visible to the actor, ordered by start time.

        Admins list one business (``business_id`` required); owners their
        business; workers their own calendar; clients their own bookings.
        ``day`` is a local date in the business timezone (UTC for clients,
        whose bookings may span businesses).
        """
        if actor.role in (RoleName.ADMIN, RoleName.BUSINESS_OWNER):
            business = self._business_for_staff(actor, business_id)
            filters = self._filters(status, day, business.timezone, worker_id)
            return self.repository.list_for_business(business.id, filters)

        if actor.role == RoleName.WORKER:
            worker = self.directory.get_worker(actor.id)
            if worker is None:
                raise NotFoundException("Worker not found")
            business = self.directory.get_business(worker.business_id) if worker.business_id else None
            tz_name = business.timezone if business else "UTC"
            return self.repository.list_for_worker(actor.id, self._filters(status, day, tz_name, None))

        return self.repository.list_for_client(
            actor.id, self._filters(status, day, "UTC", worker_id)
        )

    # Lifecycle

    @BaseService.measure_operation("update_status")
    def update_status(self, actor: Actor, booking_id: str, new_status: BookingStatus) -> Booking:
        """
        Move a booking to a terminal status.

        Cancelling a cancelled booking succeeds without changes.

        Raises:
            NotFoundException: Unknown booking
            ForbiddenException: Access policy denies the action
            InvalidTransitionException: Not allowed from the current status or for the role
        """
        booking, owner_id = self._load(booking_id)
        action = ACTION_FOR_TARGET.get(new_status, BookingAction.READ)
        require_access(actor, booking, action, business_owner_id=owner_id)

        for _attempt in range(3):
            worker_id = booking.worker_id
            with self.calendar_transaction(worker_id):
                locked = self.repository.get_for_update(booking_id)
                if locked is None:
                    raise NotFoundException("Booking not found", details={"booking_id": booking_id})
                booking = locked
                if booking.worker_id != worker_id:
                    # Rescheduled onto another calendar while we waited for the lock.
                    continue
                transition = plan_transition(booking.status, new_status, actor.role)
                if transition.noop:
                    return booking

                now = datetime.now(timezone.utc)
                booking.status = new_status.value
                if new_status == BookingStatus.COMPLETED:
                    booking.completed_at = now
                elif new_status == BookingStatus.CANCELLED:
                    booking.cancelled_at = now
                    booking.cancelled_by_id = actor.id
                self.db.flush()
            break
        else:
            raise ServiceException("Booking is being moved; please try again")

        logger.info(
            "booking_status_changed",
            extra={
                "booking_id": booking.id,
                "from_status": transition.current.value,
                "to_status": transition.target.value,
                "actor_id": actor.id,
                "actor_role": actor.role.value,
            },
        )
        return booking

    @BaseService.measure_operation("reschedule_booking")
    def reschedule(
        self,
        actor: Actor,
        booking_id: str,
        new_date: date,
        new_start_time: time,
        new_worker_id: Optional[str] = None,
    ) -> Booking:
        """
        Move a booking to a new start (and optionally another worker).

        The end is re-derived from the service duration and the new interval
        is re-checked against the target worker's calendar, excluding the
        booking itself. Status does not change.

        Raises:
            NotFoundException: Unknown booking or worker
            ForbiddenException: Only the business owner or an admin may reschedule
            InvalidTransitionException: Booking is already in a terminal status
            SlotUnavailableException: The new interval is taken
        """
        booking, owner_id = self._load(booking_id)
        require_access(actor, booking, BookingAction.RESCHEDULE, business_owner_id=owner_id)

        business = self.directory.get_business(booking.business_id)
        if business is None:
            raise NotFoundException("Business not found")
        target_worker_id = new_worker_id or booking.worker_id
        if target_worker_id is None:
            raise ValidationException("A worker is required")
        _business, service, _worker = self.directory.resolve_bookable(
            business.id, booking.service_id, target_worker_id
        )

        start = localize(new_date, new_start_time, business.timezone)
        end = end_time(start, service.duration_minutes)
        previous_worker_id = booking.worker_id

        try:
            with self.calendar_transaction(previous_worker_id, target_worker_id):
                self.db.refresh(booking)
                if is_terminal(booking.status):
                    raise InvalidTransitionException(
                        booking.status,
                        booking.status,
                        message=f"Cannot reschedule a {booking.status} booking",
                    )
                self.conflict_checker.ensure_available(
                    target_worker_id, start, end, exclude_booking_id=booking.id
                )
                self.repository.update(
                    booking.id, start_time=start, end_time=end, worker_id=target_worker_id
                )
        except IntegrityError as exc:
            raise self._integrity_to_domain(exc)

        self.log_operation(
            "reschedule_booking",
            booking_id=booking.id,
            from_worker_id=previous_worker_id,
            worker_id=target_worker_id,
            start_time=start.isoformat(),
            actor_id=actor.id,
        )
        return booking

    # Helpers

    def _insert_booking(
        self,
        business: Business,
        service: Service,
        *,
        client_id: str,
        worker_id: str,
        start: datetime,
        end: datetime,
        status: BookingStatus,
        notes: Optional[str],
    ) -> Booking:
        try:
            with self.calendar_transaction(worker_id):
                self.conflict_checker.ensure_available(worker_id, start, end)
                return self.repository.create(
                    business_id=business.id,
                    service_id=service.id,
                    client_id=client_id,
                    worker_id=worker_id,
                    start_time=start,
                    end_time=end,
                    status=status.value,
                    notes=notes,
                )
        except IntegrityError as exc:
            raise self._integrity_to_domain(exc)

    def _load(self, booking_id: str) -> Tuple[Booking, Optional[str]]:
        booking = self.repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        business = self.directory.get_business(booking.business_id)
        return booking, business.owner_id if business else None

    def _business_for_staff(self, actor: Actor, business_id: Optional[str]) -> Business:
        if actor.role == RoleName.ADMIN:
            if not business_id:
                raise ValidationException("business_id is required for admins")
            business = self.directory.get_business(business_id)
        elif actor.role == RoleName.BUSINESS_OWNER:
            business = self.directory.get_business_by_owner(actor.id)
            if business is not None and business_id and business_id != business.id:
                raise ForbiddenException("You can only manage your own business")
        else:
            raise ForbiddenException("Only business staff can perform this action")

        if business is None:
            raise NotFoundException("Business not found")
        return business

    @staticmethod
    def _filters(
        status: Optional[BookingStatus],
        day: Optional[date],
        tz_name: str,
        worker_id: Optional[str],
    ) -> BookingFilters:
        start_from = start_before = None
        if day is not None:
            start_from, start_before = local_day_bounds(day, tz_name)
        return BookingFilters(
            status=status, start_from=start_from, start_before=start_before, worker_id=worker_id
        )

    def _integrity_to_domain(self, exc: IntegrityError) -> Exception:
        if is_overlap_violation(exc):
            prometheus_metrics.record_booking_conflict("constraint")
            logger.warning("booking_overlap_constraint_violation", extra={"error": str(exc.orig)})
            return SlotUnavailableException()
        self.logger.error(f"Unexpected integrity error: {str(exc)}")
        return exc
