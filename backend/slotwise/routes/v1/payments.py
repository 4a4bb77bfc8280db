# backend/slotwise/routes/v1/payments.py
"""
Payment-gated booking routes - API v1

Endpoints:
    POST /intents - Phase 1: check the slot and open a payment intent
    GET /intents/{intent_id} - Intent status
    POST /intents/{intent_id}/recheck - Re-validate the slot before paying
    POST /intents/{intent_id}/commit - Phase 2: confirm capture and book
    GET /escalations - Captured-but-unbooked payments (admin)
    POST /escalations/{escalation_id}/resolve - Close an escalation (admin)
    POST /webhooks/stripe - Gateway-reported captures (signed, no bearer token)
"""

import asyncio
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from fastapi.params import Path
import stripe

from ...api.dependencies import get_booking_payment_saga, get_current_actor
from ...core.config import settings
from ...core.exceptions import DomainException
from ...domain.access_policy import Actor
from ...models.payment import BookingPaymentIntent, EscalationStatus
from ...schemas.booking import BookingResponse
from ...schemas.payment import (
    CommitRequest,
    EscalationResolve,
    EscalationResponse,
    PaymentIntentResponse,
    QuoteRequest,
    WebhookResponse,
)
from ...services.booking_payment_saga import BookingPaymentSaga
from . import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


def _intent_response(record: BookingPaymentIntent, actor: Actor) -> PaymentIntentResponse:
    """Only the paying client may see the gateway client secret."""
    response = PaymentIntentResponse.model_validate(record)
    if actor.id != record.client_id:
        return response.model_copy(update={"client_secret": None})
    return response


@router.post("/intents", response_model=PaymentIntentResponse, status_code=status.HTTP_201_CREATED)
async def reserve_and_quote(
    request: QuoteRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> PaymentIntentResponse:
    """Check the slot is free and open a payment intent. No booking is created yet."""
    try:
        record = await asyncio.to_thread(saga.reserve_and_quote, actor, request)
        return _intent_response(record, actor)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/intents/{intent_id}", response_model=PaymentIntentResponse)
async def get_intent(
    intent_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> PaymentIntentResponse:
    try:
        record = await asyncio.to_thread(saga.get_intent, actor, intent_id)
        return _intent_response(record, actor)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/intents/{intent_id}/recheck", response_model=PaymentIntentResponse)
async def recheck_slot(
    intent_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> PaymentIntentResponse:
    """Re-validate the slot; a lost slot cancels the intent so nothing is captured."""
    try:
        record = await asyncio.to_thread(saga.recheck_slot, actor, intent_id)
        return _intent_response(record, actor)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/intents/{intent_id}/commit", response_model=BookingResponse)
async def capture_and_commit(
    intent_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: Optional[CommitRequest] = Body(None),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> BookingResponse:
    """
    Confirm the capture and commit the booking.

    202 means the payment is still processing, 503 that its outcome is
    unknown; poll again in both cases. 409 with code
    PAYMENT_CAPTURED_BOOKING_FAILED means the payment went through but the
    slot was lost; support follows up and the client must not pay again.
    """
    timeout = payload.timeout_seconds if payload and payload.timeout_seconds else None
    try:
        booking = await asyncio.to_thread(
            saga.capture_and_commit,
            actor,
            intent_id,
            timeout_seconds=timeout or settings.gateway_status_timeout_seconds,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/escalations", response_model=List[EscalationResponse])
async def list_escalations(
    status_filter: Literal["open", "refunded", "rebooked", "dismissed", "all"] = Query(
        "open", alias="status"
    ),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> List[EscalationResponse]:
    try:
        escalations = await asyncio.to_thread(
            saga.list_escalations,
            actor,
            None if status_filter == "all" else EscalationStatus(status_filter),
        )
        return [EscalationResponse.model_validate(e) for e in escalations]
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/escalations/{escalation_id}/resolve", response_model=EscalationResponse)
async def resolve_escalation(
    escalation_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: EscalationResolve = Body(...),
    actor: Actor = Depends(get_current_actor),
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> EscalationResponse:
    try:
        escalation = await asyncio.to_thread(
            saga.resolve_escalation,
            actor,
            escalation_id,
            EscalationStatus(payload.status),
            payload.note,
        )
        return EscalationResponse.model_validate(escalation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    saga: BookingPaymentSaga = Depends(get_booking_payment_saga),
) -> WebhookResponse:
    """
    Stripe event receiver, verified against STRIPE_WEBHOOK_SECRET.

    ``payment_intent.succeeded`` commits the booking for a client who paid
    but never called commit. Other event types are acknowledged and ignored.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        logger.warning("Webhook received without signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No signature")

    secret = settings.stripe_webhook_secret.get_secret_value()
    if not secret:
        logger.error("No webhook secret configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook configuration error"
        )

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Webhook signature verification failed: {str(e)}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    event_type = event["type"]
    if event_type != "payment_intent.succeeded":
        logger.info(f"Ignoring webhook event: {event_type}")
        return WebhookResponse(status="ignored", event_type=event_type)

    payment_reference = event["data"]["object"]["id"]
    try:
        booking = await asyncio.to_thread(saga.handle_payment_succeeded, payment_reference)
        return WebhookResponse(
            status="processed",
            event_type=event_type,
            booking_id=booking.id if booking else None,
        )
    except DomainException as e:
        handle_domain_exception(e)
