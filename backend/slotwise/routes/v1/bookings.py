# backend/slotwise/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    GET / - List bookings visible to the caller
    POST / - Create a staff-entered booking
    POST /direct - Client booking that needs no prepayment
    GET /{booking_id} - Booking details
    PATCH /{booking_id}/status - Complete, cancel or mark no-show
    POST /{booking_id}/cancel - Cancel a booking (idempotent)
    POST /{booking_id}/reschedule - Move a booking to a new time/worker
"""

import asyncio
from datetime import date
import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.params import Path

from ...api.dependencies import get_booking_service, get_current_actor
from ...core.exceptions import DomainException
from ...domain.access_policy import Actor
from ...models.booking import BookingStatus
from ...schemas.booking import (
    BookingCreate,
    BookingReschedule,
    BookingResponse,
    BookingStatusUpdate,
    ClientBookingRequest,
)
from ...services.booking_service import BookingService
from . import ULID_PATH_PATTERN, handle_domain_exception

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

StatusFilter = Literal["all", "SCHEDULED", "CONFIRMED", "COMPLETED", "CANCELLED", "NO_SHOW"]


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: StatusFilter = Query("all", alias="status"),
    day: Optional[date] = Query(None, alias="date", description="Local date (YYYY-MM-DD)"),
    worker_id: Optional[str] = Query(None),
    business_id: Optional[str] = Query(None, description="Required for admins"),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """List bookings visible to the caller, ordered by start time."""
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_bookings,
            actor,
            business_id=business_id,
            status=None if status_filter == "all" else BookingStatus(status_filter),
            day=day,
            worker_id=worker_id,
        )
        return [BookingResponse.model_validate(b) for b in bookings]
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Create a booking on behalf of a client.

    Business owners and admins only; the conflict check and insert run
    atomically for the worker.
    """
    try:
        booking = await asyncio.to_thread(booking_service.create_booking, actor, booking_data)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/direct", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_client_booking(
    request: ClientBookingRequest = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Book a free service, or any service of a business without prepayment.

    Returns 400 with code PAYMENT_REQUIRED when the slot has to be paid for
    through /api/v1/payments/intents instead.
    """
    try:
        booking = await asyncio.to_thread(booking_service.create_client_booking, actor, request)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, actor, booking_id)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    update: BookingStatusUpdate = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Move a booking to COMPLETED, CANCELLED or NO_SHOW."""
    try:
        booking = await asyncio.to_thread(
            booking_service.update_status, actor, booking_id, update.status
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking. Cancelling a cancelled booking succeeds unchanged."""
    try:
        booking = await asyncio.to_thread(
            booking_service.update_status, actor, booking_id, BookingStatus.CANCELLED
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    payload: BookingReschedule = Body(...),
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Move a booking to a new start time and optionally another worker."""
    try:
        booking = await asyncio.to_thread(
            booking_service.reschedule,
            actor,
            booking_id,
            payload.booking_date,
            payload.start_time,
            payload.worker_id,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)
