"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - All IO operations accessed through Protocol types
    - Implementations provided by shell via explicit construction at startup
    - Every primitive that mutates lockout or session state is atomic at the store

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Boundary value types are frozen dataclasses, not ORM rows: callers can't
      mutate persisted state by attribute assignment
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from gatehouse.core.domain_types import JobId, JobState, JobType, SessionId, UserId


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class UserRecord:
    id: UserId
    email: str
    password_hash: str
    is_active: bool
    email_verified_at: datetime | None
    failed_login_attempts: int
    locked_at: datetime | None
    sessions_invalid_before: datetime | None
    role_name: str | None = None


@dataclass(frozen=True)
class LockoutState:
    """Post-increment lockout columns, as returned by the atomic update."""
    failed_login_attempts: int
    locked_at: datetime | None


@dataclass(frozen=True)
class SessionData:
    token_hash: str
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class SessionRecord:
    id: SessionId
    user_id: UserId
    expires_at: datetime
    created_at: datetime
    last_active_at: datetime
    revoked_at: datetime | None


@dataclass(frozen=True)
class ResetTokenRecord:
    user_id: UserId
    expires_at: datetime
    used_at: datetime | None


@dataclass(frozen=True)
class JobHandle:
    id: JobId
    type: JobType
    state: JobState


@dataclass(frozen=True)
class QueuedJob:
    id: JobId
    type: str
    payload: dict[str, Any]
    state: JobState
    attempts: int
    max_attempts: int
    run_at: datetime
    last_error: str | None = None


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    to: str
    subject: str
    html: str
    text: str


# ─── Contracts ───────────────────────────────────────────────────

class CredentialStore(Protocol):
    """Persists identity, lockout and session state. Implemented by shell."""
    async def find_user_by_email(self, email: str) -> UserRecord | None: ...
    async def find_user_by_id(self, user_id: UserId) -> UserRecord | None: ...
    async def increment_failed_attempts_and_maybe_lock(
        self, user_id: UserId, max_attempts: int,
    ) -> LockoutState: ...
    async def reset_failed_attempts(self, user_id: UserId) -> None: ...
    async def create_session_and_reset_attempts(
        self, user_id: UserId, data: SessionData,
    ) -> SessionRecord: ...
    async def find_session_by_token_hash(
        self, token_hash: str,
    ) -> SessionRecord | None: ...
    async def touch_session(self, session_id: SessionId) -> None: ...
    async def revoke_session(self, session_id: SessionId) -> None: ...
    async def revoke_all_sessions(
        self, user_id: UserId, current_session_id: SessionId | None = None,
    ) -> None: ...


class PasswordResetStore(Protocol):
    """Single-use reset token persistence. Implemented by shell."""
    async def replace_reset_token(
        self, user_id: UserId, token_hash: str, expires_at: datetime,
    ) -> None: ...
    async def find_reset_token(self, token_hash: str) -> ResetTokenRecord | None: ...
    async def consume_reset_token(
        self, token_hash: str, new_password_hash: str,
    ) -> bool: ...


class JobEnqueuer(Protocol):
    """Producer side of the job queue."""
    async def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        *,
        job_id: str | None = None,
        max_attempts: int | None = None,
        delay_ms: int = 0,
    ) -> JobHandle: ...


class SentMarkerStore(Protocol):
    """Records that a job's external side effect already happened."""
    async def is_sent(self, job_id: JobId) -> bool: ...
    async def mark_sent(self, job_id: JobId) -> None: ...
    async def close(self) -> None: ...


class EmailTransport(Protocol):
    """Outbound email. send() raises on any delivery failure."""
    async def send(self, message: EmailMessage) -> None: ...
    async def verify(self) -> None: ...
