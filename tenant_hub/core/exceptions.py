"""
Domain exceptions and their mapping to the JSON error envelope
"""

import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
import structlog

logger = structlog.get_logger(__name__)


class TenantHubError(Exception):
    """Base class for errors that map onto an HTTP status"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TenantHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class InvalidCredentialsError(TenantHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid credentials"


class InvalidTokenError(TenantHubError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid or expired token"


class AuthenticationError(TenantHubError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class ForbiddenError(TenantHubError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class NotFoundError(TenantHubError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(TenantHubError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


def error_body(error: str, message: Optional[str] = None, **extra: Any) -> dict:
    """Build the failure envelope returned by every error path"""
    body = {"success": False, "error": error}
    if message:
        body["message"] = message
    body.update(extra)
    return body


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


async def tenant_hub_error_handler(request: Request, exc: TenantHubError) -> JSONResponse:
    """Map domain errors to their status code"""
    if exc.status_code >= 500:
        request_id = _request_id(request)
        logger.error("request_failed", error=exc.message, request_id=request_id, path=request.url.path)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body("Internal server error", "An unexpected error occurred", request_id=request_id),
        )

    logger.info(
        "request_rejected",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report the first failing field of a malformed body or query"""
    errors = exc.errors()
    message = None
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    logger.info("request_validation_failed", path=request.url.path, error_count=len(errors))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Validation failed", message),
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Rate limit responses (invoked synchronously by SlowAPIMiddleware)"""
    logger.warning("rate_limit_exceeded", client=request.client.host if request.client else None, path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body("Too many requests", "Too many requests from this IP, please try again later"),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Generic 500 that never leaks internals to the client"""
    request_id = _request_id(request)
    logger.exception("unhandled_exception", request_id=request_id, path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", "An unexpected error occurred", request_id=request_id),
        headers={"x-request-id": request_id},
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Register every error handler on the application"""
    app.add_exception_handler(TenantHubError, tenant_hub_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
