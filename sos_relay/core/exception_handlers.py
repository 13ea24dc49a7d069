"""Global exception handlers for consistent error responses.

Every failure leaves the API as ``{"error": <code>, "message": ..., "request_id": ...}``
so clients can branch on the machine-readable code alone. Rate limited
responses also carry ``retry_after`` (seconds) and a ``Retry-After`` header.

Design:
- AppError subclasses carry their own HTTP status (400, 404, 409, 429, 503)
- Unknown routes and methods -> 404 ``not_found``
- Unexpected Exception -> generic 500 (safety net, nothing internal leaks)
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from sos_relay.core.config import settings
from sos_relay.core.errors import AppError, RateLimitedAppError
from sos_relay.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _error_body(code: str, message: str) -> dict:
    return {
        "error": code,
        "message": message,
        "request_id": get_request_id(),
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a domain error with the status its class declares.

    Args:
        request: FastAPI request object.
        exc: AppError instance (or subclass).

    Returns:
        JSONResponse with the error code, message and request id.
    """
    status_code = exc.status_code
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
            "request_id": get_request_id(),
        },
    )

    content = _error_body(exc.code, exc.message)
    headers: dict[str, str] = {}

    if isinstance(exc, RateLimitedAppError):
        content["retry_after"] = exc.retry_after
        cfg = getattr(request.app.state, "settings", settings)
        if cfg.rate_limit.include_headers:
            headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(status_code=status_code, content=content, headers=headers or None)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing failures (no such path or method) become ``not_found``."""
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content=_error_body("not_found", "Not found"))

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("http_error", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(
        "request_validation_failed",
        extra={"error_count": len(exc.errors()), "request_path": request.url.path},
    )
    return JSONResponse(status_code=400, content=_error_body("invalid_request", "Malformed request"))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Fallback handler for unexpected errors (safety net).

    Logs the failure for debugging while returning a generic message, so no
    stack traces or internal state reach the client.

    Args:
        request: FastAPI request object.
        exc: Exception instance (unexpected).

    Returns:
        JSONResponse with generic error (no implementation details leaked).
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_method": request.method,
            "request_id": get_request_id(),
        },
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app) -> None:
    """Register all exception handlers with a FastAPI app.

    Example:
        >>> from fastapi import FastAPI
        >>> from sos_relay.core.exception_handlers import setup_exception_handlers
        >>> app = FastAPI()
        >>> setup_exception_handlers(app)
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(StarletteHTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
