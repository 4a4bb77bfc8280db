"""Payment gateway collaborators for the booking payment saga."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
import logging
import threading
from typing import Any, Callable, Dict, Optional, TypeVar
from uuid import uuid4

from pydantic import SecretStr
import stripe

from ..core.config import settings
from ..core.enums import CaptureStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Gateway calls made under a caller-supplied deadline run here so a hung
# request cannot block the calling thread past its timeout.
_GATEWAY_EXECUTOR = ThreadPoolExecutor(max_workers=8, thread_name_prefix="payment-gateway")


class PaymentGatewayError(RuntimeError):
    """Raised when the gateway responds with an error or cannot be reached."""

    def __init__(self, message: str, *, handle: Optional[str] = None) -> None:
        super().__init__(message)
        self.handle = handle


class PaymentGatewayTimeout(PaymentGatewayError):
    """Raised when a gateway call does not finish within the caller's deadline."""


@dataclass(frozen=True)
class PaymentHandle:
    """Opaque reference to a gateway payment intent."""

    id: str
    client_secret: Optional[str] = None


def call_with_timeout(func: Callable[..., T], *args: Any, timeout: Optional[float]) -> T:
    """
    Run ``func(*args)`` and wait at most ``timeout`` seconds for it.

    ``timeout=None`` waits indefinitely.

    Raises:
        PaymentGatewayTimeout: If the deadline passes first.
    """
    if timeout is None:
        return func(*args)
    future = _GATEWAY_EXECUTOR.submit(func, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        raise PaymentGatewayTimeout(f"Payment gateway did not respond within {timeout}s")


class PaymentGateway:
    """Interface the saga uses to talk to a payment provider."""

    def create_intent(
        self, amount_cents: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentHandle:
        raise NotImplementedError

    def get_capture_status(self, handle: str) -> CaptureStatus:
        raise NotImplementedError

    def cancel_intent(self, handle: str) -> None:
        raise NotImplementedError


class StripePaymentGateway(PaymentGateway):
    """Stripe PaymentIntents with automatic capture."""

    def __init__(
        self,
        *,
        api_key: str | SecretStr,
        http_timeout_seconds: float = 8.0,
        max_network_retries: int = 1,
    ) -> None:
        secret_value = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
        if not secret_value:
            raise ValueError("Stripe secret key must be provided")
        self._api_key = secret_value
        # Process-wide: applies to every Stripe request.
        stripe.default_http_client = stripe.RequestsClient(timeout=http_timeout_seconds)
        stripe.max_network_retries = max_network_retries
        stripe.verify_ssl_certs = True

    def create_intent(
        self, amount_cents: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentHandle:
        try:
            intent = stripe.PaymentIntent.create(
                api_key=self._api_key,
                amount=amount_cents,
                currency=currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            logger.error(f"Stripe error creating payment intent: {str(exc)}")
            raise PaymentGatewayError(f"Failed to create payment intent: {str(exc)}")
        logger.info(f"Created payment intent {intent.id} for {amount_cents} {currency}")
        return PaymentHandle(id=intent.id, client_secret=intent.client_secret)

    def get_capture_status(self, handle: str) -> CaptureStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(handle, api_key=self._api_key)
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_retrieve_failed", extra={"payment_intent_id": handle, "error": str(exc)}
            )
            raise PaymentGatewayError(f"Failed to retrieve payment intent: {str(exc)}", handle=handle)
        return map_stripe_status(intent.status, getattr(intent, "last_payment_error", None))

    def cancel_intent(self, handle: str) -> None:
        try:
            stripe.PaymentIntent.cancel(handle, api_key=self._api_key)
        except stripe.StripeError as exc:
            logger.error(f"Stripe error canceling payment intent {handle}: {str(exc)}")
            raise PaymentGatewayError(f"Failed to cancel payment intent: {str(exc)}", handle=handle)


def map_stripe_status(status: str, last_payment_error: Any = None) -> CaptureStatus:
    """
    Collapse a Stripe PaymentIntent status into pending/succeeded/failed.

    ``requires_payment_method`` is the initial state too, so it only counts
    as a failure once an attempt has been declined.
    """
    if status == "succeeded":
        return CaptureStatus.SUCCEEDED
    if status == "canceled":
        return CaptureStatus.FAILED
    if status == "requires_payment_method" and last_payment_error:
        return CaptureStatus.FAILED
    return CaptureStatus.PENDING


class FakePaymentGateway(PaymentGateway):
    """In-memory gateway for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._intents: Dict[str, Dict[str, Any]] = {}
        self._logger = logging.getLogger(self.__class__.__name__)
        self.fail_next_status_calls = 0
        self.status_delay: Optional[threading.Event] = None

    def create_intent(
        self, amount_cents: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentHandle:
        handle = f"pi_fake_{uuid4().hex}"
        with self._lock:
            self._intents[handle] = {
                "amount": amount_cents,
                "currency": currency,
                "metadata": dict(metadata),
                "status": CaptureStatus.PENDING,
                "canceled": False,
            }
        self._logger.debug("Fake payment intent created", extra={"payment_intent_id": handle})
        return PaymentHandle(id=handle, client_secret=f"{handle}_secret")

    def get_capture_status(self, handle: str) -> CaptureStatus:
        if self.status_delay is not None:
            self.status_delay.wait()
        with self._lock:
            if self.fail_next_status_calls > 0:
                self.fail_next_status_calls -= 1
                raise PaymentGatewayError("Fake gateway unavailable", handle=handle)
            return self._get(handle)["status"]

    def cancel_intent(self, handle: str) -> None:
        with self._lock:
            intent = self._get(handle)
            if intent["status"] == CaptureStatus.SUCCEEDED:
                raise PaymentGatewayError("Cannot cancel a captured payment", handle=handle)
            intent["status"] = CaptureStatus.FAILED
            intent["canceled"] = True

    # Test helpers

    def mark_succeeded(self, handle: str) -> None:
        with self._lock:
            intent = self._get(handle)
            if intent["canceled"]:
                raise PaymentGatewayError("Cannot capture a canceled payment", handle=handle)
            intent["status"] = CaptureStatus.SUCCEEDED

    def mark_failed(self, handle: str) -> None:
        with self._lock:
            self._get(handle)["status"] = CaptureStatus.FAILED

    def is_canceled(self, handle: str) -> bool:
        with self._lock:
            return bool(self._get(handle)["canceled"])

    def intent(self, handle: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._get(handle))

    def _get(self, handle: str) -> Dict[str, Any]:
        try:
            return self._intents[handle]
        except KeyError:
            raise PaymentGatewayError(f"Unknown payment intent {handle}", handle=handle)


_gateway: Optional[PaymentGateway] = None
_gateway_lock = threading.Lock()


def get_payment_gateway() -> PaymentGateway:
    """Return the process-wide gateway selected by ``settings.payment_gateway``."""
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            if settings.payment_gateway == "stripe":
                _gateway = StripePaymentGateway(
                    api_key=settings.stripe_secret_key,
                    http_timeout_seconds=settings.stripe_http_timeout_seconds,
                    max_network_retries=settings.stripe_max_network_retries,
                )
            else:
                _gateway = FakePaymentGateway()
            logger.info(f"Payment gateway initialised: {type(_gateway).__name__}")
        return _gateway
