"""Error Hierarchy - typed, categorized exceptions for every Gatehouse failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
      and an HTTP status
    - to_response() produces the REST envelope {"error": {"code", "message"[, "details"]}}
    - Unknown user, wrong password and locked account all raise the same
      InvalidCredentialsError with the same message
    - Store-specific error codes never appear here; infrastructure maps them
      once (infrastructure/database.py)

Design Decisions:
    - Single hierarchy with GatehouseError base: one FastAPI handler catches all
    - Timestamps live in ErrorContext, not in the response body, so two
      failures of the same kind serialize identically
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"
    CONFIGURATION = "configuration"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str | None = None
    user_id: str | None = None
    job_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


def _to_code(value: str) -> str:
    """'Password reset token' -> 'PASSWORD_RESET_TOKEN'."""
    return re.sub(r"[^a-zA-Z0-9]+", "_", value.strip()).strip("_").upper()


class GatehouseError(Exception):
    """Base exception for all Gatehouse errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.details = details

    def to_response(self, message: str | None = None) -> dict:
        """Convert to standardized REST error response."""
        body: dict[str, Any] = {
            "code": self.code,
            "message": message or self.message,
        }
        if self.details:
            body["details"] = self.details
        return {"error": body}


# ─── Client Errors (400-level) ──────────────────────────────────

class ValidationError(GatehouseError):
    """Malformed input: request bodies, job payloads."""
    def __init__(
        self,
        message: str = "Validation error",
        details: dict | list | None = None,
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400, details,
        )


class InvalidCredentialsError(GatehouseError):
    """Authentication failed. Deliberately says nothing about why."""
    def __init__(
        self, message: str = "Invalid credentials", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, "UNAUTHORIZED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class NotFoundError(GatehouseError):
    """Requested resource does not exist."""
    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        code: str | None = None,
        context: ErrorContext | None = None,
        message: str | None = None,
    ):
        if message is None:
            message = (
                f"{resource} '{resource_id}' not found" if resource_id
                else f"{resource} not found"
            )
        super().__init__(
            message, code or f"{_to_code(resource)}_NOT_FOUND",
            ErrorCategory.RESOURCE_NOT_FOUND, ErrorSeverity.ERROR, context, 404,
        )
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(GatehouseError):
    """Uniqueness or concurrent-modification conflict."""
    def __init__(
        self, message: str, code: str = "CONFLICT", context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


class RateLimitedError(GatehouseError):
    """Raised by an external rate limiter in front of the auth routes."""
    def __init__(
        self, retry_after_ms: int | None = None, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            "Too many requests", "TOO_MANY_REQUESTS", ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
        )


# ─── Server Errors (500-level) ──────────────────────────────────

class ServiceUnavailableError(GatehouseError):
    """A dependency (database, SMTP, Redis) is unreachable."""
    def __init__(
        self,
        message: str = "Service unavailable",
        code: str = "SERVICE_UNAVAILABLE",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.UNAVAILABLE,
            ErrorSeverity.CRITICAL, context, 503,
        )


class InternalError(GatehouseError):
    """Unexpected failure or integrity violation."""
    def __init__(
        self,
        message: str = "Internal server error",
        code: str = "INTERNAL_SERVER_ERROR",
        context: ErrorContext | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


class UnknownJobTypeError(GatehouseError):
    """A job type outside the closed JobType set. Never retried."""
    def __init__(self, job_type: str, context: ErrorContext | None = None):
        super().__init__(
            f"Unknown job type: {job_type}", "UNKNOWN_JOB_TYPE",
            ErrorCategory.CONFIGURATION, ErrorSeverity.CRITICAL, context, 500,
        )
        self.job_type = job_type
