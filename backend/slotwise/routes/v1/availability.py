# backend/slotwise/routes/v1/availability.py
"""
Availability routes - API v1

    GET /slots - Offerable start times for a worker, service and local date
"""

import asyncio
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_availability_service
from ...core.config import settings
from ...core.exceptions import DomainException
from ...schemas.booking import AvailableSlotsResponse
from ...services.availability_service import AvailabilityService
from . import handle_domain_exception

router = APIRouter(tags=["availability-v1"])


@router.get("/slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    business_id: str = Query(...),
    worker_id: str = Query(...),
    service_id: str = Query(...),
    day: date = Query(..., alias="date"),
    step_minutes: Optional[int] = Query(None, ge=5, le=240),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailableSlotsResponse:
    """Public: slots whose full service duration fits business hours and the worker's calendar."""
    try:
        business, service, slots = await asyncio.to_thread(
            availability_service.get_available_slots,
            business_id,
            worker_id,
            service_id,
            day,
            step_minutes,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return AvailableSlotsResponse(
        business_id=business.id,
        worker_id=worker_id,
        service_id=service.id,
        date=day,
        timezone=business.timezone,
        step_minutes=step_minutes or settings.default_slot_step_minutes,
        duration_minutes=service.duration_minutes,
        slots=slots,
    )
