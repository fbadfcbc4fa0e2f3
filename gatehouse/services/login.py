"""Login Orchestrator — lookup, status checks, password verify, then lockout or session.

Invariants:
    - Password verification runs before any branch on user existence (dummy hash
      for unknown users), so response timing does not reveal accounts
    - Unknown user, locked, unverified, inactive and wrong password all raise the
      same InvalidCredentialsError; only the audit record tells them apart
    - A wrong password always increments atomically, whether or not it locks
    - Exactly one account-locked email per lock episode; enqueue failure is
      logged and never changes the response
    - A user vanishing between lookup and increment/issue is an InternalError

Design Decisions:
    - Argon2 runs in a worker thread (asyncio.to_thread): the event loop keeps
      serving other logins while one hashes
    - Status checks follow the order lock -> verified -> active
"""

import asyncio
import logging
from dataclasses import dataclass

from gatehouse.core.credentials import normalize_email, verify_password_or_dummy
from gatehouse.core.domain_types import JobType, LoginFailureReason
from gatehouse.core.errors import (
    ErrorContext, InternalError, InvalidCredentialsError, NotFoundError,
    GatehouseError,
)
from gatehouse.core.lockout import is_locked
from gatehouse.core.repository_protocols import (
    CredentialStore, JobEnqueuer, SessionRecord, UserRecord,
)
from gatehouse.services.audit import AuditAction, audit, audit_login_failed
from gatehouse.services.lockout import LockoutCoordinator
from gatehouse.services.session_issuer import SessionIssuer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    token: str
    session: SessionRecord
    user: UserRecord


class LoginService:
    def __init__(
        self,
        store: CredentialStore,
        lockout: LockoutCoordinator,
        issuer: SessionIssuer,
        jobs: JobEnqueuer,
    ):
        self._store = store
        self._lockout = lockout
        self._issuer = issuer
        self._jobs = jobs

    async def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
        request_id: str | None = None,
    ) -> LoginResult:
        user = await self._store.find_user_by_email(normalize_email(email))
        valid_password = await asyncio.to_thread(
            verify_password_or_dummy,
            user.password_hash if user else None,
            password,
        )

        def reject(reason: LoginFailureReason) -> InvalidCredentialsError:
            audit_login_failed(
                reason, user_id=user.id if user else None,
                ip_address=ip_address, request_id=request_id,
            )
            return InvalidCredentialsError(
                context=ErrorContext(request_id=request_id),
            )

        if user is None:
            raise reject(LoginFailureReason.NOT_FOUND)
        if is_locked(user.locked_at):
            raise reject(LoginFailureReason.LOCKED)
        if user.email_verified_at is None:
            raise reject(LoginFailureReason.UNVERIFIED)
        if not user.is_active:
            raise reject(LoginFailureReason.INACTIVE)

        if not valid_password:
            try:
                outcome = await self._lockout.record_failure(user.id)
            except NotFoundError as e:
                raise InternalError("User disappeared during login") from e
            if outcome.just_locked:
                await self._notify_locked(user)
                raise reject(LoginFailureReason.LOCKED_NOW)
            raise reject(LoginFailureReason.WRONG_PASSWORD)

        try:
            issued = await self._issuer.issue(user.id, ip_address, user_agent)
        except NotFoundError as e:
            raise InternalError("User disappeared during login") from e

        logger.info(
            "Login successful",
            extra={"user_id": str(user.id), "session_id": str(issued.session.id)},
        )
        audit(
            AuditAction.LOGIN, user_id=user.id, session_id=issued.session.id,
            ip_address=ip_address, request_id=request_id,
        )
        return LoginResult(token=issued.token, session=issued.session, user=user)

    async def _notify_locked(self, user: UserRecord) -> None:
        """Queue the lock notification. Failure here never fails the login response."""
        try:
            await self._jobs.enqueue(
                JobType.ACCOUNT_LOCKED,
                {"to": user.email, "user_id": str(user.id)},
            )
        except GatehouseError as e:
            logger.error(
                f"Failed to queue account-locked email: {e.message}",
                extra={"user_id": str(user.id), "error_code": e.code},
            )
