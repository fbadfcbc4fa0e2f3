"""Session Authenticator — resolves a bearer token to a principal; logout and logout-all.

Invariants:
    - A token authenticates only if its session exists, is unrevoked and unexpired,
      its user is active and unlocked, and the session was created at or after
      the user's sessions_invalid_before
    - Every rejection is the same InvalidCredentialsError("Unauthorized")
    - last_active_at is refreshed at most once per staleness window; a failed
      refresh never fails the request
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from gatehouse.core.credentials import hash_token
from gatehouse.core.errors import GatehouseError, InvalidCredentialsError
from gatehouse.core.lockout import is_locked
from gatehouse.core.repository_protocols import (
    CredentialStore, SessionRecord, UserRecord,
)
from gatehouse.db.base import utcnow
from gatehouse.services.audit import AuditAction, audit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    user: UserRecord
    session: SessionRecord


def _unauthorized() -> InvalidCredentialsError:
    return InvalidCredentialsError("Unauthorized")


class SessionAuthenticator:
    def __init__(self, store: CredentialStore, staleness_seconds: int = 300):
        self._store = store
        self._staleness = timedelta(seconds=staleness_seconds)

    async def authenticate(self, token: str | None) -> Principal:
        if not token:
            raise _unauthorized()
        session = await self._store.find_session_by_token_hash(hash_token(token))
        now = utcnow()
        if session is None or session.revoked_at is not None:
            raise _unauthorized()
        if session.expires_at < now:
            raise _unauthorized()

        user = await self._store.find_user_by_id(session.user_id)
        if user is None or not user.is_active or is_locked(user.locked_at):
            raise _unauthorized()
        if (
            user.sessions_invalid_before is not None
            and session.created_at < user.sessions_invalid_before
        ):
            raise _unauthorized()

        if session.last_active_at < now - self._staleness:
            try:
                await self._store.touch_session(session.id)
            except GatehouseError as e:
                logger.warning(
                    f"Failed to refresh session activity: {e.message}",
                    extra={"session_id": str(session.id), "error_code": e.code},
                )
        return Principal(user=user, session=session)

    async def logout(
        self, principal: Principal, request_id: str | None = None,
    ) -> None:
        await self._store.revoke_session(principal.session.id)
        audit(
            AuditAction.LOGOUT, user_id=principal.user.id,
            session_id=principal.session.id, request_id=request_id,
        )

    async def logout_all(
        self, principal: Principal, request_id: str | None = None,
    ) -> None:
        await self._store.revoke_all_sessions(
            principal.user.id, principal.session.id,
        )
        audit(
            AuditAction.LOGOUT_ALL, user_id=principal.user.id,
            session_id=principal.session.id, request_id=request_id,
        )
