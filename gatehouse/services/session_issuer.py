"""Session Issuer — mints bearer tokens and persists sessions atomically with an attempts reset.

Invariants:
    - The raw token leaves this module only inside IssuedSession (for the cookie);
      the store receives its SHA-256 hash
    - Attempts reset and session insert are one transaction (store primitive)
"""

from dataclasses import dataclass
from datetime import timedelta

from gatehouse.core.credentials import generate_token, hash_token
from gatehouse.core.domain_types import UserId
from gatehouse.core.repository_protocols import (
    CredentialStore, SessionData, SessionRecord,
)
from gatehouse.db.base import utcnow


@dataclass(frozen=True)
class IssuedSession:
    token: str
    session: SessionRecord


class SessionIssuer:
    def __init__(self, store: CredentialStore, expiry_days: int):
        self._store = store
        self._lifetime = timedelta(days=expiry_days)

    async def issue(
        self,
        user_id: UserId,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedSession:
        token = generate_token()
        session = await self._store.create_session_and_reset_attempts(
            user_id,
            SessionData(
                token_hash=hash_token(token),
                expires_at=utcnow() + self._lifetime,
                ip_address=ip_address,
                user_agent=user_agent,
            ),
        )
        return IssuedSession(token=token, session=session)
