"""Domain Types - rich types that replace bare primitives across the codebase.

Invariants:
    - UserId, SessionId wrap UUIDs; JobId wraps the string idempotency key
    - JobType is the closed set of background work; anything else is
      UnknownJobTypeError, never ignored
    - All valid states encoded as Enums, no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: values are the persisted/wire representation
"""

from enum import Enum
from typing import NewType
from uuid import UUID

from gatehouse.core.errors import UnknownJobTypeError


# ─── Identity Types ──────────────────────────────────────────────

UserId = NewType("UserId", UUID)
SessionId = NewType("SessionId", UUID)
JobId = NewType("JobId", str)


# ─── Enums ───────────────────────────────────────────────────────

class JobType(str, Enum):
    """Every job the worker knows how to run."""
    VERIFICATION = "email:verification"
    PASSWORD_RESET = "email:password-reset"
    WELCOME = "email:welcome"
    ACCOUNT_LOCKED = "email:account-locked"
    INVITATION = "email:invitation"


class JobState(str, Enum):
    """Delivery state of a queued job - maps to DB `state` column."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class LoginFailureReason(str, Enum):
    """Audit-only reasons; never sent to the client."""
    NOT_FOUND = "not_found"
    LOCKED = "locked"
    UNVERIFIED = "unverified"
    INACTIVE = "inactive"
    WRONG_PASSWORD = "wrong_password"
    LOCKED_NOW = "locked_now"


def parse_job_type(name: str) -> JobType:
    """Resolve a persisted job type name. Raises UnknownJobTypeError."""
    try:
        return JobType(name)
    except ValueError:
        raise UnknownJobTypeError(name) from None
