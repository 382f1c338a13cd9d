"""
Standardized Error Handling for PayFlow API.

Every error leaves the API with the same JSON shape:
    {"error": <code>, "message": <text>, "details": <list|null>, "request_id": <str|null>}
"""

import logging
import math
import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str  # Error code (e.g., "validation_error", "not_found")
    message: str  # Human-readable message
    details: list[dict[str, Any]] | None = None
    request_id: str | None = None


# Documented on every API route via include_router(responses=...)
ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Permission denied"},
    404: {"model": ErrorResponse, "description": "Not found"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Internal error"},
}


# =============================================================================
# Custom Exceptions
# =============================================================================

class PayflowError(Exception):
    """Base exception for PayFlow errors that map onto an HTTP response."""

    def __init__(
        self,
        message: str,
        error_code: str = "payflow_error",
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(PayflowError):
    """Malformed or missing input."""

    def __init__(self, message: str, details: list[dict] | None = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=400,
            details=details,
        )


class AuthenticationError(PayflowError):
    """Missing, invalid or expired credentials. Never says which."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            message=message,
            error_code="authentication_required",
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(PayflowError):
    """Authenticated but not permitted."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            error_code="permission_denied",
            status_code=403,
        )


class NotFoundError(PayflowError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(
            message=message,
            error_code="not_found",
            status_code=404,
        )


class ConflictError(PayflowError):
    """Resource conflict (e.g., duplicate email)."""

    def __init__(self, message: str = "Resource conflict"):
        super().__init__(
            message=message,
            error_code="conflict",
            status_code=409,
        )


class RateLimitError(PayflowError):
    """Rate limit or login lockout tripped."""

    def __init__(self, retry_after: float, message: str | None = None):
        seconds = max(1, math.ceil(retry_after))
        minutes = max(1, math.ceil(seconds / 60))
        if message is None:
            message = (
                f"Too many requests. Try again in {minutes} "
                f"minute{'s' if minutes != 1 else ''}."
            )
        self.retry_after = seconds
        super().__init__(
            message=message,
            error_code="rate_limit_exceeded",
            status_code=429,
            details=[{"retry_after": seconds, "retry_after_minutes": minutes}],
            headers={"Retry-After": str(seconds)},
        )


class InternalError(PayflowError):
    """Unhandled backend fault. The message sent to clients stays generic."""

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(
            message=message,
            error_code="internal_error",
            status_code=500,
        )


class StorageError(InternalError):
    """Storage backend failure (connectivity, unexpected constraint)."""

    def __init__(self, operation: str = "storage operation"):
        self.operation = operation
        super().__init__()


# =============================================================================
# Exception Handlers
# =============================================================================

def get_request_id(request: Request) -> Optional[str]:
    """Extract request ID from request."""
    return request.headers.get("X-Request-Id")


async def payflow_error_handler(request: Request, exc: PayflowError) -> JSONResponse:
    """Handle PayFlow-specific exceptions."""
    if exc.status_code >= 500:
        logger.error(
            "PayflowError: %s on %s",
            exc.error_code,
            request.url.path,
            exc_info=exc.__cause__ or exc,
            extra={"error_code": exc.error_code, "path": request.url.path},
        )
    else:
        logger.warning(
            "PayflowError: %s - %s",
            exc.error_code,
            exc.message,
            extra={"error_code": exc.error_code, "path": request.url.path},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": get_request_id(request),
        },
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions."""
    error_codes = {
        400: "bad_request",
        401: "authentication_required",
        403: "permission_denied",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        422: "validation_error",
        429: "rate_limit_exceeded",
        500: "internal_error",
        502: "bad_gateway",
        503: "service_unavailable",
    }

    error_code = error_codes.get(exc.status_code, "error")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error_code,
            "message": str(exc.detail) if exc.detail else f"HTTP {exc.status_code}",
            "details": None,
            "request_id": get_request_id(request),
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors as 400 with field-level details."""
    details = []
    for error in exc.errors():
        details.append({
            "loc": [str(part) for part in error.get("loc", [])],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        })

    logger.info(
        "Validation error on %s: %d issues",
        request.url.path,
        len(details),
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": details,
            "request_id": get_request_id(request),
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        str(exc),
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        }
    )

    # Internal details stay in the logs
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "details": None,
            "request_id": get_request_id(request),
        },
    )


# =============================================================================
# Setup Function
# =============================================================================

def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI app.

    Call during app initialization:
        setup_exception_handlers(app)
    """
    app.add_exception_handler(PayflowError, payflow_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


__all__ = [
    "PayflowError",
    "ErrorResponse",
    "ERROR_RESPONSES",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "InternalError",
    "StorageError",
    "setup_exception_handlers",
]
