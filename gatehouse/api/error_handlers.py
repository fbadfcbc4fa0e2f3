"""Error Handlers — global exception handlers for the Gatehouse API.

Invariants:
    - GatehouseError → {"error": {"code", "message"[, "details"]}} at its http_status
    - RequestValidationError → 400 VALIDATION_ERROR with field-level details
    - Exception (catch-all) → 500 INTERNAL_SERVER_ERROR, never leaks internal details
    - In production, 5xx messages are replaced with a generic one

Design Decisions:
    - Three-layer handler: domain (GatehouseError), validation (Pydantic), catch-all (Exception)
    - Extracted from main.py to keep the app factory short
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from gatehouse.core.errors import GatehouseError, RateLimitedError

logger = logging.getLogger(__name__)

GENERIC_SERVER_MESSAGE = "An unexpected error occurred"


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_gatehouse_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _is_production(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return bool(settings and settings.is_production)


def _register_gatehouse_error_handler(app: FastAPI) -> None:
    """Register domain/infrastructure error handler."""

    @app.exception_handler(GatehouseError)
    async def gatehouse_error_handler(request: Request, exc: GatehouseError):
        """Handle all Gatehouse domain/infrastructure errors."""
        log = logger.error if exc.http_status >= 500 else logger.info
        log(
            f"{type(exc).__name__}: {exc.message}",
            extra={
                "error_code": exc.code,
                "path": request.url.path,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        message = None
        if exc.http_status >= 500 and _is_production(request):
            message = GENERIC_SERVER_MESSAGE
        headers = None
        if isinstance(exc, RateLimitedError) and exc.context.retry_after_ms:
            headers = {"Retry-After": str(-(-exc.context.retry_after_ms // 1000))}
        return JSONResponse(
            status_code=exc.http_status,
            content=exc.to_response(message),
            headers=headers,
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    """Register Pydantic validation error handler."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.info(
            f"Validation error on {request.url.path}",
            extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_build_validation_error_response(exc),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": GENERIC_SERVER_MESSAGE,
                },
            },
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response. Input values are never echoed."""
    return {
        "error": {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }
