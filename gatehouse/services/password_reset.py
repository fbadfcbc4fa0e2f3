"""Password Reset — single-use emailed tokens; confirm swaps the hash and kills old sessions.

Invariants:
    - request() behaves the same whether or not the account exists (the caller
      always gets the same message; unknown emails still pay a hashing cost)
    - Issuing a token deletes the user's earlier unused tokens
    - confirm() consumes the token, sets the new hash and sessions_invalid_before
      in one transaction; a token works once, even under concurrent confirms
    - Unknown, expired and used tokens are all INVALID_RESET_TOKEN (404)
"""

import asyncio
import logging
from datetime import datetime, timedelta

from gatehouse.core.credentials import (
    generate_token, hash_password, hash_token, normalize_email,
    verify_password_or_dummy,
)
from gatehouse.core.domain_types import JobType
from gatehouse.core.errors import GatehouseError, NotFoundError
from gatehouse.core.repository_protocols import (
    CredentialStore, JobEnqueuer, PasswordResetStore,
)
from gatehouse.db.base import utcnow
from gatehouse.services.audit import AuditAction, audit

logger = logging.getLogger(__name__)


def _invalid_token() -> NotFoundError:
    return NotFoundError(
        "Reset token", code="INVALID_RESET_TOKEN",
        message="Invalid or expired token",
    )


class PasswordResetService:
    def __init__(
        self,
        users: CredentialStore,
        tokens: PasswordResetStore,
        jobs: JobEnqueuer,
        expiry_hours: int = 1,
    ):
        self._users = users
        self._tokens = tokens
        self._jobs = jobs
        self._lifetime = timedelta(hours=expiry_hours)

    async def request(self, email: str, request_id: str | None = None) -> None:
        user = await self._users.find_user_by_email(normalize_email(email))
        if user is None or not user.is_active:
            await asyncio.to_thread(verify_password_or_dummy, None, email)
            logger.debug("Password reset requested for unknown or inactive account")
            return

        token = generate_token()
        await self._tokens.replace_reset_token(
            user.id, hash_token(token), utcnow() + self._lifetime,
        )
        try:
            await self._jobs.enqueue(
                JobType.PASSWORD_RESET,
                {"to": user.email, "user_id": str(user.id), "token": token},
            )
        except GatehouseError as e:
            logger.error(
                f"Failed to queue password-reset email: {e.message}",
                extra={"user_id": str(user.id), "error_code": e.code},
            )
        audit(
            AuditAction.PASSWORD_RESET_REQUESTED, user_id=user.id,
            request_id=request_id,
        )

    async def validate(self, token: str) -> datetime:
        """Return the token's expiry, or raise INVALID_RESET_TOKEN."""
        record = await self._tokens.find_reset_token(hash_token(token))
        if record is None or record.used_at is not None or record.expires_at <= utcnow():
            raise _invalid_token()
        return record.expires_at

    async def confirm(
        self, token: str, password: str, request_id: str | None = None,
    ) -> None:
        token_hash = hash_token(token)
        record = await self._tokens.find_reset_token(token_hash)
        if record is None or record.used_at is not None or record.expires_at <= utcnow():
            raise _invalid_token()

        new_hash = await asyncio.to_thread(hash_password, password)
        if not await self._tokens.consume_reset_token(token_hash, new_hash):
            logger.warning(
                "Reset token consumed concurrently",
                extra={"user_id": str(record.user_id)},
            )
            raise _invalid_token()

        logger.info("Password reset completed", extra={"user_id": str(record.user_id)})
        audit(
            AuditAction.PASSWORD_CHANGED, user_id=record.user_id,
            request_id=request_id,
        )
