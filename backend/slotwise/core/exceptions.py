# backend/slotwise/core/exceptions.py
"""
Domain-specific exceptions for the Slotwise booking core.

Every expected failure of a scheduling operation is one of these typed
exceptions. The API layer converts them to HTTP responses; anything else
is an unexpected fault and surfaces as an opaque 500.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the structured error body."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when input is malformed (missing fields, bad duration, negative price)."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code or "VALIDATION_ERROR", details)


class NotFoundException(DomainException):
    """Raised when a referenced booking, service, worker or business does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code or "NOT_FOUND", details)


class UnauthorizedException(DomainException):
    """Raised when the caller is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when the access policy denies an action."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str = "You do not have access to this booking",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code or "FORBIDDEN", details)


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


# Specific scheduling exceptions


class SlotUnavailableException(ConflictException):
    """Raised when the requested interval overlaps a non-cancelled booking for the worker."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available. Please pick another time.",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class InvalidTransitionException(ConflictException):
    """Raised when a status change is not permitted from the current state or for the role."""

    def __init__(
        self,
        current_status: str,
        target_status: str,
        message: Optional[str] = None,
    ):
        super().__init__(
            message=message or f"Cannot change booking status from {current_status} to {target_status}",
            code="INVALID_TRANSITION",
            details={"current_status": current_status, "target_status": target_status},
        )


class PaymentCapturedBookingFailedException(ConflictException):
    """
    Payment was captured but the booking lost the race for its slot.

    This is the one non-retriable saga outcome. It is escalated to a human
    workflow and must never be shown to the client as a generic failure.
    """

    USER_MESSAGE = (
        "Your payment was received, but the selected time was taken before we could "
        "confirm your booking. Our team will contact you to rebook or refund you. "
        "Please do not pay again."
    )

    def __init__(self, payment_reference: str, escalation_id: Optional[str] = None):
        super().__init__(
            message=self.USER_MESSAGE,
            code="PAYMENT_CAPTURED_BOOKING_FAILED",
            details={
                "payment_reference": payment_reference,
                "escalation_id": escalation_id,
                "payment_succeeded": True,
                "retryable": False,
            },
        )
        self.payment_reference = payment_reference
        self.escalation_id = escalation_id


class PaymentPendingException(DomainException):
    """The gateway has not reported a capture outcome yet; the caller should poll again."""

    status_code = status.HTTP_202_ACCEPTED

    def __init__(self, payment_reference: str):
        super().__init__(
            message="Payment is still being processed. Please check again shortly.",
            code="PAYMENT_PENDING",
            details={"payment_reference": payment_reference},
        )


class PaymentFailedException(DomainException):
    """The gateway reported the payment as failed; no booking is created."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, payment_reference: str):
        super().__init__(
            message="Payment was not completed. No booking was made.",
            code="PAYMENT_FAILED",
            details={"payment_reference": payment_reference},
        )


class PaymentGatewayUnavailableException(DomainException):
    """The gateway timed out or errored; the payment outcome is unknown, not failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, *, payment_reference: Optional[str] = None):
        super().__init__(
            message=message,
            code="PAYMENT_GATEWAY_UNAVAILABLE",
            details={"payment_reference": payment_reference} if payment_reference else {},
        )


class ServiceException(DomainException):
    """Raised when a service operation fails for a reason the caller cannot fix."""


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as database connection
    issues or query failures.
    """
