# backend/slotwise/services/booking_payment_saga.py
"""
Payment-gated booking saga.

Phase 1, ``reserve_and_quote``: derive the interval from the service,
check the worker's calendar and only then open a gateway payment intent.
The request is snapshotted in a ``BookingPaymentIntent`` row. No booking
row is written and no lock is held while the client pays.

Phase 2, ``capture_and_commit``: ask the gateway for the capture status
under a caller-supplied deadline. On success the booking is written as
CONFIRMED inside a calendar transaction that re-runs the conflict check.
A Stripe ``payment_intent.succeeded`` webhook runs the same commit through
``handle_payment_succeeded`` for clients who paid but never called commit.

Failure handling:
- slot taken before any capture: the intent is cancelled at the gateway
  and the caller gets ``SlotUnavailableException``;
- gateway timeout or error: ``PaymentGatewayUnavailableException``, the
  payment outcome is unknown and the caller polls again;
- captured but the slot was lost at commit: the intent is marked
  ``captured_unbooked``, a ``PaymentEscalation`` is opened for support and
  ``PaymentCapturedBookingFailedException`` carries the payment reference.
  Nothing is refunded or retried automatically.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import Settings, settings as default_settings
from ..core.enums import BookingAction, CaptureStatus, RoleName
from ..core.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PaymentCapturedBookingFailedException,
    PaymentFailedException,
    PaymentGatewayUnavailableException,
    PaymentPendingException,
    SlotUnavailableException,
    ValidationException,
)
from ..domain.access_policy import Actor, require_access
from ..domain.time_arithmetic import end_time, localize
from ..integrations.payment_gateway import PaymentGateway, PaymentGatewayError, call_with_timeout
from ..models.booking import Booking, BookingStatus
from ..models.payment import (
    BookingPaymentIntent,
    EscalationStatus,
    PaymentEscalation,
    PaymentIntentStatus,
)
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.booking_repository import BookingRepository
from ..repositories.directory_repository import DirectoryRepository
from ..repositories.factory import RepositoryFactory
from ..repositories.payment_repository import PaymentRepository
from ..schemas.payment import QuoteRequest
from .base import BaseService
from .booking_service import BookingDraft, price_to_cents, requires_payment
from .conflict_checker import ConflictChecker, is_overlap_violation

logger = logging.getLogger(__name__)


def compute_fees(amount_cents: int, config: Settings) -> Dict[str, int]:
    """Fee breakdown for a charge: platform share, processor estimate, business remainder."""
    amount = Decimal(amount_cents)
    platform = int(
        (amount * Decimal(str(config.platform_fee_percentage)) / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    processor = int(
        (amount * Decimal(str(config.stripe_fee_percentage)) / 100).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    ) + config.stripe_fixed_fee_cents
    return {
        "platform_fee_cents": platform,
        "processor_fee_cents": processor,
        "business_amount_cents": max(amount_cents - platform - processor, 0),
    }


class BookingPaymentSaga(BaseService):
    """Coordinates a paid booking across the booking store and the payment gateway."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        *,
        booking_repository: Optional[BookingRepository] = None,
        payment_repository: Optional[PaymentRepository] = None,
        directory: Optional[DirectoryRepository] = None,
        conflict_checker: Optional[ConflictChecker] = None,
        config: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.gateway = gateway
        self.booking_repository = (
            booking_repository or RepositoryFactory.create_booking_repository(db)
        )
        self.payment_repository = (
            payment_repository or RepositoryFactory.create_payment_repository(db)
        )
        self.directory = directory or RepositoryFactory.create_directory_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, self.booking_repository)
        self.config = config or default_settings

    # Phase 1

    @BaseService.measure_operation("reserve_and_quote")
    def reserve_and_quote(self, actor: Actor, request: QuoteRequest) -> BookingPaymentIntent:
        """
        Validate the requested slot and open a payment intent for it.

        Raises:
            ForbiddenException: Actor may not book for this client/business
            NotFoundException: Business, service or worker missing
            ValidationException: No payment is needed; the client books directly
            SlotUnavailableException: Slot already taken; no intent is created
            PaymentGatewayUnavailableException: Gateway could not create the intent
        """
        business, service, _worker = self.directory.resolve_bookable(
            request.business_id, request.service_id, request.worker_id
        )
        client_id = request.client_id or actor.id
        draft = BookingDraft(client_id=client_id, worker_id=request.worker_id, business_id=business.id)
        require_access(actor, draft, BookingAction.CREATE, business_owner_id=business.owner_id)
        if self.directory.get_user(client_id) is None:
            raise NotFoundException("Client not found", details={"client_id": client_id})

        if not requires_payment(business, service):
            raise ValidationException(
                "No payment is needed for this booking; book it directly",
                code="PAYMENT_NOT_REQUIRED",
                details={"service_id": service.id},
            )
        amount_cents = price_to_cents(service.price)

        start = localize(request.booking_date, request.start_time, business.timezone)
        end = end_time(start, service.duration_minutes)

        try:
            self.conflict_checker.ensure_available(request.worker_id, start, end, stage="check")
        except SlotUnavailableException:
            prometheus_metrics.record_saga_outcome("slot_unavailable")
            raise

        fees = compute_fees(amount_cents, self.config)
        metadata = {
            "business_id": business.id,
            "service_id": service.id,
            "worker_id": request.worker_id,
            "client_id": client_id,
            "start_time": start.isoformat(),
            "end_time": end.isoformat(),
            "platform_fee_cents": str(fees["platform_fee_cents"]),
        }
        try:
            handle = self.gateway.create_intent(amount_cents, self.config.stripe_currency, metadata)
        except PaymentGatewayError as exc:
            prometheus_metrics.record_saga_outcome("gateway_unavailable")
            raise PaymentGatewayUnavailableException(
                f"Could not start payment: {str(exc)}"
            )

        with self.transaction():
            record = self.payment_repository.create(
                gateway_handle=handle.id,
                client_secret=handle.client_secret,
                business_id=business.id,
                service_id=service.id,
                client_id=client_id,
                worker_id=request.worker_id,
                start_time=start,
                end_time=end,
                notes=request.notes,
                amount_cents=amount_cents,
                currency=self.config.stripe_currency,
                status=PaymentIntentStatus.QUOTED.value,
                **fees,
            )

        prometheus_metrics.record_saga_outcome("quoted")
        self.log_operation(
            "reserve_and_quote",
            intent_id=record.id,
            payment_reference=handle.id,
            worker_id=request.worker_id,
            start_time=start.isoformat(),
            amount_cents=amount_cents,
        )
        return record

    def recheck_slot(self, actor: Actor, intent_id: str) -> BookingPaymentIntent:
        """
        Re-validate a quoted slot right before the client pays.

        If the slot has been taken the intent is cancelled at the gateway so
        no money can be captured for it.

        Raises:
            SlotUnavailableException: The slot is gone
            PaymentGatewayUnavailableException: The intent could not be cancelled
        """
        record = self.get_intent(actor, intent_id)
        if record.status == PaymentIntentStatus.SLOT_LOST.value:
            raise SlotUnavailableException(details={"payment_reference": record.gateway_handle})
        if record.status != PaymentIntentStatus.QUOTED.value:
            return record

        if self.conflict_checker.has_conflict(record.worker_id, record.start_time, record.end_time):
            self._release_lost_slot(record)
        return record

    # Phase 2

    @BaseService.measure_operation("capture_and_commit")
    def capture_and_commit(
        self, actor: Actor, intent_id: str, *, timeout_seconds: Optional[float]
    ) -> Booking:
        """
        Confirm capture with the gateway and commit the booking.

        Safe to call repeatedly: a committed intent returns its booking.

        Args:
            actor: Caller
            intent_id: ``BookingPaymentIntent`` id from phase 1
            timeout_seconds: Deadline for the gateway status poll (None waits)

        Raises:
            PaymentPendingException: Capture not reported yet; poll again
            PaymentFailedException: Gateway reported failure; nothing booked
            PaymentGatewayUnavailableException: Outcome unknown (timeout/error)
            SlotUnavailableException: Slot lost before capture; intent cancelled
            PaymentCapturedBookingFailedException: Captured, but the slot was lost
        """
        record = self.get_intent(actor, intent_id)

        settled = self._settled_outcome(record)
        if settled is not None:
            return settled

        status = self._capture_status(record, timeout_seconds)

        if status == CaptureStatus.FAILED:
            with self.transaction():
                record.status = PaymentIntentStatus.FAILED.value
            prometheus_metrics.record_saga_outcome("payment_failed")
            logger.info(
                "payment_failed", extra={"intent_id": record.id, "payment_reference": record.gateway_handle}
            )
            raise PaymentFailedException(record.gateway_handle)

        if status == CaptureStatus.PENDING:
            if self.conflict_checker.has_conflict(
                record.worker_id, record.start_time, record.end_time
            ):
                self._release_lost_slot(record)
            prometheus_metrics.record_saga_outcome("payment_pending")
            raise PaymentPendingException(record.gateway_handle)

        return self._commit(record)

    @BaseService.measure_operation("handle_payment_succeeded")
    def handle_payment_succeeded(self, payment_reference: str) -> Optional[Booking]:
        """
        Commit the booking for a capture reported by the gateway itself.

        Covers clients who paid but never came back to commit. Safe to
        replay: a committed intent returns its booking. Returns None when
        the payment is not ours or ended up escalated instead of booked.
        """
        record = self.payment_repository.get_by_handle(payment_reference)
        if record is None:
            logger.info("payment_webhook_unknown_intent", extra={"payment_reference": payment_reference})
            return None

        if record.status == PaymentIntentStatus.COMMITTED.value:
            return self._settled_outcome(record)
        if record.status == PaymentIntentStatus.CAPTURED_UNBOOKED.value:
            return None
        if record.status in (PaymentIntentStatus.SLOT_LOST.value, PaymentIntentStatus.FAILED.value):
            # Closed intents never book; a late capture goes to support.
            self._escalate(
                record,
                reason=(
                    f"Payment {record.gateway_handle} captured after the intent was closed "
                    f"as {record.status}"
                ),
            )
            return None

        try:
            return self._commit(record)
        except PaymentCapturedBookingFailedException:
            return None

    # Escalations

    def list_escalations(
        self, actor: Actor, status: Optional[EscalationStatus] = None
    ) -> List[PaymentEscalation]:
        self._require_admin(actor)
        return self.payment_repository.list_escalations(status)

    @BaseService.measure_operation("resolve_escalation")
    def resolve_escalation(
        self,
        actor: Actor,
        escalation_id: str,
        resolution: EscalationStatus,
        note: Optional[str] = None,
    ) -> PaymentEscalation:
        """
        Close a captured-but-unbooked escalation after support has acted on it.

        Raises:
            ForbiddenException: Actor is not an admin
            NotFoundException: Unknown escalation
            ValidationException: ``resolution`` is OPEN
            InvalidTransitionException: Escalation is already resolved
        """
        self._require_admin(actor)
        if resolution == EscalationStatus.OPEN:
            raise ValidationException("Resolution must be refunded, rebooked or dismissed")

        escalation = self.payment_repository.get_escalation(escalation_id)
        if escalation is None:
            raise NotFoundException("Escalation not found", details={"escalation_id": escalation_id})

        with self.transaction():
            self.db.refresh(escalation)
            if escalation.status != EscalationStatus.OPEN.value:
                raise InvalidTransitionException(
                    escalation.status,
                    resolution.value,
                    message="Escalation has already been resolved",
                )
            escalation.status = resolution.value
            escalation.resolution_note = note
            escalation.resolved_by_id = actor.id
            escalation.resolved_at = datetime.now(timezone.utc)

        logger.info(
            "payment_escalation_resolved",
            extra={
                "escalation_id": escalation.id,
                "payment_reference": escalation.payment_reference,
                "resolution": resolution.value,
                "resolved_by": actor.id,
            },
        )
        return escalation

    # Reads

    def get_intent(self, actor: Actor, intent_id: str) -> BookingPaymentIntent:
        record = self.payment_repository.get_by_id(intent_id)
        if record is None:
            raise NotFoundException("Payment intent not found", details={"intent_id": intent_id})
        business = self.directory.get_business(record.business_id)
        require_access(
            actor,
            record,
            BookingAction.READ,
            business_owner_id=business.owner_id if business else None,
        )
        return record

    # Internals

    def _settled_outcome(self, record: BookingPaymentIntent) -> Optional[Booking]:
        """Replay the outcome of an intent that already left the quoted state."""
        if record.status == PaymentIntentStatus.COMMITTED.value:
            booking = self.booking_repository.get_by_id(record.booking_id)
            if booking is None:
                raise NotFoundException("Booking not found", details={"booking_id": record.booking_id})
            return booking
        if record.status == PaymentIntentStatus.CAPTURED_UNBOOKED.value:
            escalation = self.payment_repository.get_escalation_for_intent(record.id)
            raise PaymentCapturedBookingFailedException(
                record.gateway_handle, escalation.id if escalation else None
            )
        if record.status == PaymentIntentStatus.SLOT_LOST.value:
            raise SlotUnavailableException(details={"payment_reference": record.gateway_handle})
        if record.status == PaymentIntentStatus.FAILED.value:
            raise PaymentFailedException(record.gateway_handle)
        return None

    def _capture_status(
        self, record: BookingPaymentIntent, timeout_seconds: Optional[float]
    ) -> CaptureStatus:
        try:
            return call_with_timeout(
                self.gateway.get_capture_status, record.gateway_handle, timeout=timeout_seconds
            )
        except PaymentGatewayError as exc:
            prometheus_metrics.record_saga_outcome("gateway_unavailable")
            logger.warning(
                "payment_status_unavailable",
                extra={
                    "intent_id": record.id,
                    "payment_reference": record.gateway_handle,
                    "error": str(exc),
                },
            )
            raise PaymentGatewayUnavailableException(
                "Could not confirm payment status. Please check again shortly.",
                payment_reference=record.gateway_handle,
            )

    def _release_lost_slot(self, record: BookingPaymentIntent) -> None:
        """Cancel an uncaptured intent whose slot is gone, then raise SlotUnavailable."""
        try:
            self.gateway.cancel_intent(record.gateway_handle)
        except PaymentGatewayError as exc:
            # Capture may have raced the cancel; the next commit attempt settles it.
            logger.warning(
                "payment_cancel_failed",
                extra={"payment_reference": record.gateway_handle, "error": str(exc)},
            )
            raise PaymentGatewayUnavailableException(
                "Could not release the payment for a slot that is no longer available.",
                payment_reference=record.gateway_handle,
            )

        with self.transaction():
            record.status = PaymentIntentStatus.SLOT_LOST.value

        prometheus_metrics.record_booking_conflict("check")
        prometheus_metrics.record_saga_outcome("slot_unavailable")
        logger.warning(
            "payment_intent_slot_lost",
            extra={
                "intent_id": record.id,
                "payment_reference": record.gateway_handle,
                "worker_id": record.worker_id,
                "start_time": record.start_time.isoformat(),
            },
        )
        raise SlotUnavailableException(details={"payment_reference": record.gateway_handle})

    def _commit(self, record: BookingPaymentIntent) -> Booking:
        lost_slot = False
        booking: Optional[Booking] = None
        try:
            with self.calendar_transaction(record.worker_id):
                # Another request may have committed this intent while we polled.
                self.db.refresh(record)
                if record.status == PaymentIntentStatus.COMMITTED.value:
                    booking = self.booking_repository.get_by_id(record.booking_id)
                elif self.conflict_checker.has_conflict(
                    record.worker_id, record.start_time, record.end_time
                ):
                    lost_slot = True
                else:
                    booking = self.booking_repository.create(
                        business_id=record.business_id,
                        service_id=record.service_id,
                        client_id=record.client_id,
                        worker_id=record.worker_id,
                        start_time=record.start_time,
                        end_time=record.end_time,
                        status=BookingStatus.CONFIRMED.value,
                        notes=record.notes,
                        payment_intent_id=record.gateway_handle,
                    )
                    record.status = PaymentIntentStatus.COMMITTED.value
                    record.booking_id = booking.id
                    self.db.flush()
        except IntegrityError as exc:
            if is_overlap_violation(exc):
                lost_slot = True
            else:
                existing = self.booking_repository.get_by_payment_intent(record.gateway_handle)
                if existing is None:
                    raise
                booking = existing

        if lost_slot:
            prometheus_metrics.record_booking_conflict("commit")
            escalation_id = self._escalate(record)
            raise PaymentCapturedBookingFailedException(record.gateway_handle, escalation_id)

        if booking is None:
            raise NotFoundException("Booking not found", details={"booking_id": record.booking_id})

        prometheus_metrics.record_saga_outcome("committed")
        self.log_operation(
            "capture_and_commit",
            intent_id=record.id,
            booking_id=booking.id,
            payment_reference=record.gateway_handle,
        )
        return booking

    def _escalate(
        self, record: BookingPaymentIntent, reason: Optional[str] = None
    ) -> Optional[str]:
        """Record a captured-but-unbooked payment for the support workflow."""
        reason = reason or (
            f"Payment {record.gateway_handle} captured but worker {record.worker_id} was booked "
            f"for {record.start_time.isoformat()}-{record.end_time.isoformat()} before commit"
        )
        escalation_id: Optional[str] = None
        try:
            with self.transaction():
                self.db.refresh(record)
                existing = self.payment_repository.get_escalation_for_intent(record.id)
                if existing is not None:
                    escalation_id = existing.id
                else:
                    record.status = PaymentIntentStatus.CAPTURED_UNBOOKED.value
                    escalation = self.payment_repository.create_escalation(
                        payment_intent_record_id=record.id,
                        payment_reference=record.gateway_handle,
                        reason=reason,
                        status=EscalationStatus.OPEN.value,
                    )
                    escalation_id = escalation.id
        except IntegrityError:
            existing = self.payment_repository.get_escalation_for_intent(record.id)
            escalation_id = existing.id if existing else None

        prometheus_metrics.record_saga_outcome("captured_unbooked")
        logger.error(
            "payment_captured_booking_failed",
            extra={
                "intent_id": record.id,
                "payment_reference": record.gateway_handle,
                "escalation_id": escalation_id,
                "business_id": record.business_id,
                "worker_id": record.worker_id,
                "client_id": record.client_id,
                "start_time": record.start_time.isoformat(),
                "end_time": record.end_time.isoformat(),
                "amount_cents": record.amount_cents,
            },
        )
        return escalation_id

    @staticmethod
    def _require_admin(actor: Actor) -> None:
        if actor.role != RoleName.ADMIN:
            raise ForbiddenException("Only admins can manage payment escalations")

