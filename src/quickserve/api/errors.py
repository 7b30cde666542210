"""Render gate errors into the ``{message, error}`` JSON envelope."""

from typing import cast

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quickserve.errors import (
    AuthorizationError,
    GateError,
    RateLimitedError,
    ValidationError,
)

logger = structlog.get_logger()


def error_body(exc: GateError) -> dict[str, str]:
    """Envelope for *exc*. Role failures carry the caller's role."""
    message = exc.message
    if isinstance(exc, ValidationError) and exc.param:
        message = f"Invalid {exc.param}"
    body = {"message": message, "error": exc.code}
    if isinstance(exc, AuthorizationError) and exc.role is not None:
        body["userRole"] = str(exc.role)
    return body


def _log_gate_error(request: Request, exc: GateError) -> None:
    fields: dict[str, object] = {
        "error": exc.code,
        "status_code": exc.status_code,
        "method": request.method,
        "path": request.url.path,
    }
    if isinstance(exc, AuthorizationError):
        fields["role"] = exc.role
        fields["permission"] = exc.permission
    if exc.status_code >= 500:
        logger.error("request_failed", **fields, exc_info=exc)
    elif exc.status_code in (401, 403, 429):
        logger.warning("request_denied", **fields)
    else:
        logger.info("request_rejected", **fields)


async def gate_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = cast(GateError, exc)
    _log_gate_error(request, error)
    headers = None
    if isinstance(error, RateLimitedError):
        headers = {"Retry-After": str(error.retry_after)}
    return JSONResponse(
        status_code=error.status_code, content=error_body(error), headers=headers
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all handler for unhandled exceptions."""
    logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal server error", "error": "internal_error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GateError, gate_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
