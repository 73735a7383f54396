"""FastAPI routes and API modules for idlink.

Provides common response models, error handlers, and dependencies.
"""

from functools import lru_cache
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from ..errors import (
    ConcurrencyConflict,
    ContactNotFound,
    IdentityError,
    IntegrityFault,
    InvalidRequest,
    StoreUnavailable,
)
from ..logging import get_logger
from ..resolution import IdentityEngine

logger = get_logger(__name__)


# =========================
# Response Models
# =========================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
    error_code: str
    retryable: bool = False
    details: list[ErrorDetail] | None = None


# =========================
# Error Mapping
# =========================


# HTTP status per identity error kind
IDENTITY_ERROR_STATUS: dict[type[IdentityError], int] = {
    InvalidRequest: 400,
    ContactNotFound: 404,
    ConcurrencyConflict: 409,
    IntegrityFault: 500,
    StoreUnavailable: 503,
}

RETRY_AFTER_SECONDS = 1


# =========================
# Dependencies
# =========================


@lru_cache
def get_identity_engine() -> IdentityEngine:
    """FastAPI dependency providing the shared identity engine."""
    return IdentityEngine()


# =========================
# Exception Handlers
# =========================


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    """Map identity error kinds to HTTP responses."""
    status_code = next(
        (
            status
            for kind, status in IDENTITY_ERROR_STATUS.items()
            if isinstance(exc, kind)
        ),
        500,
    )

    if status_code >= 500:
        logger.error(
            f"{exc.error_code}: {exc.message}",
            extra={"error_code": exc.error_code, "path": request.url.path},
            exc_info=exc if isinstance(exc, IntegrityFault) else None,
        )

    headers = {"X-Error-Code": exc.error_code}
    if exc.retryable:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.message,
            error_code=exc.error_code,
            retryable=exc.retryable,
        ).model_dump(),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle request body validation errors."""
    details = [
        ErrorDetail(
            code=str(error.get("type", "invalid")),
            message=str(error.get("msg", "")),
            field=".".join(str(part) for part in error.get("loc", ()) if part != "body")
            or None,
        )
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error="Request validation failed",
            error_code="VALIDATION_ERROR",
            details=details,
        ).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle generic HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            error_code="HTTP_ERROR",
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="An unexpected error occurred",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


def register_exception_handlers(app):
    """Register exception handlers with the FastAPI app."""
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
