"""
API Exception Handlers: Domain Error → HTTP Error Mapping

Centralized exception handling for clean error responses.
Maps domain-specific exceptions to appropriate HTTP status codes:

- AdmissionDeniedError → 429 with the reason-coded denial payload
- ValidationError → 400, request schema errors → 422
- MediaError → 502 (standalone image requests)
- UsageStoreError → 503 (admission cannot be decided)
- Any other ContentDashboardException → 500 without internals
"""

from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.exceptions import (
    AdmissionDeniedError,
    ContentDashboardException,
    MediaError,
    UsageStoreError,
    ValidationError,
)
from infrastructure.monitoring import get_logger

logger = get_logger(__name__)


def _error_body(request: Request, error: str, detail) -> dict:
    return {
        "error": error,
        "detail": detail,
        "timestamp": datetime.utcnow().isoformat(),
        "request_id": getattr(request.state, "request_id", None),
    }


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation Error", jsonable_encoder(exc.errors())),
    )


async def domain_validation_handler(request: Request, exc: ValidationError):
    """Handle request validation failures raised by domain code."""
    body = _error_body(request, "Validation Error", exc.message)
    body["field"] = exc.field
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def admission_denied_handler(request: Request, exc: AdmissionDeniedError):
    """Handle quota denials with the reason-coded payload the client renders."""
    logger.info(
        "generation_denied",
        reason=exc.denied.reason.value,
        usage_count=exc.denied.usage_count,
        usage_limit=exc.denied.usage_limit,
    )
    body = _error_body(request, exc.denied.reason.value, exc.denied.message)
    body.update(exc.denied.model_dump(mode="json", by_alias=True))
    return JSONResponse(status_code=status.HTTP_429_TOO_MANY_REQUESTS, content=body)


async def media_error_handler(request: Request, exc: MediaError):
    """Handle image provider failures on standalone media requests."""
    logger.warning("media_generation_failed", error_id=str(exc.error_id), error=exc.message)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(request, "Bad Gateway", exc.message),
    )


async def usage_store_error_handler(request: Request, exc: UsageStoreError):
    """Handle usage store outages."""
    logger.error("usage_store_unavailable", error_id=str(exc.error_id), error=exc.message)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(request, "Service Unavailable", "Usage tracking is temporarily unavailable"),
    )


async def domain_error_handler(request: Request, exc: ContentDashboardException):
    """Handle any other domain error without leaking internals."""
    logger.error("unhandled_domain_error", **exc.to_dict())
    body = _error_body(request, "Internal Error", "The request could not be completed")
    body["error_id"] = str(exc.error_id)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def add_exception_handlers(app: FastAPI):
    """Add all exception handlers to the FastAPI app."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, domain_validation_handler)
    app.add_exception_handler(AdmissionDeniedError, admission_denied_handler)
    app.add_exception_handler(UsageStoreError, usage_store_error_handler)
    app.add_exception_handler(MediaError, media_error_handler)
    app.add_exception_handler(ContentDashboardException, domain_error_handler)
