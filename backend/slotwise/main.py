# backend/slotwise/main.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from . import __version__
from .core.config import settings
from .core.exceptions import DomainException, RepositoryException
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import availability as availability_v1, bookings as bookings_v1, payments as payments_v1

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Slotwise Booking API",
    description="Booking scheduling and conflict-resolution core",
    version=__version__,
)


def _error_body(message: str, code: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"detail": {"message": message, "code": code, "details": details}}


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content=_error_body(exc.message, exc.code, exc.details)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("Invalid request", "VALIDATION_ERROR", {"errors": errors}),
    )


@app.exception_handler(RepositoryException)
async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
    logger.error(f"Data access failure on {request.method} {request.url.path}: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", "INTERNAL_ERROR", {}),
    )


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(payments_v1.router, prefix="/payments")
app.include_router(api_v1)


@app.get("/health")
def health_check() -> Dict[str, str]:
    return {"status": "healthy", "version": __version__, "environment": settings.environment}


@app.get("/metrics/prometheus", include_in_schema=False)
def prometheus_endpoint() -> Response:
    return Response(content=prometheus_metrics.get_metrics(), media_type=CONTENT_TYPE_LATEST)
