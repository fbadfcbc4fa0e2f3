"""SQL Credential Store — atomic lockout, session and reset-token primitives.

Invariants:
    - increment_failed_attempts_and_maybe_lock is ONE UPDATE ... RETURNING:
      N concurrent failures advance the counter by exactly N, and the lock
      stamp is written by the first crosser only (guarded by locked_at IS NULL)
    - sessions_invalid_before is stamped in the same statement as locked_at
    - create_session_and_reset_attempts runs reset + insert in one transaction
    - consume_reset_token flips used_at with a conditional update; a lost race
      returns False and changes nothing
    - A user id that matches no row raises NotFoundError, never a silent no-op

Design Decisions:
    - Core SQL expressions (update/case) over ORM attribute mutation: the store,
      not Python, decides the transition, so there is no read-modify-write window
    - synchronize_session=False: these statements never touch identity-map objects
"""

import logging
from datetime import datetime

from sqlalchemy import and_, case, delete, literal, select, update

from gatehouse.core.domain_types import SessionId, UserId
from gatehouse.core.errors import NotFoundError
from gatehouse.core.repository_protocols import (
    LockoutState, ResetTokenRecord, SessionData, SessionRecord, UserRecord,
)
from gatehouse.db.base import UTCDateTime, utcnow
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.models.auth_session import AuthSession
from gatehouse.models.password_reset_token import PasswordResetToken
from gatehouse.models.user import User

logger = logging.getLogger(__name__)


def _to_user_record(user: User) -> UserRecord:
    return UserRecord(
        id=UserId(user.id),
        email=user.email,
        password_hash=user.password_hash,
        is_active=user.is_active,
        email_verified_at=user.email_verified_at,
        failed_login_attempts=user.failed_login_attempts,
        locked_at=user.locked_at,
        sessions_invalid_before=user.sessions_invalid_before,
        role_name=user.role.name if user.role else None,
    )


def _to_session_record(row: AuthSession) -> SessionRecord:
    return SessionRecord(
        id=SessionId(row.id),
        user_id=UserId(row.user_id),
        expires_at=row.expires_at,
        created_at=row.created_at,
        last_active_at=row.last_active_at,
        revoked_at=row.revoked_at,
    )


class SqlCredentialStore:
    """CredentialStore + PasswordResetStore over SQLAlchemy async."""

    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    # ─── Users ───────────────────────────────────────────────────

    async def find_user_by_email(self, email: str) -> UserRecord | None:
        async with self._db.session() as s:
            user = (await s.execute(
                select(User).where(User.email == email),
            )).scalar_one_or_none()
            return _to_user_record(user) if user else None

    async def find_user_by_id(self, user_id: UserId) -> UserRecord | None:
        async with self._db.session() as s:
            user = await s.get(User, user_id)
            return _to_user_record(user) if user else None

    # ─── Lockout ─────────────────────────────────────────────────

    async def increment_failed_attempts_and_maybe_lock(
        self, user_id: UserId, max_attempts: int,
    ) -> LockoutState:
        stamp = literal(utcnow(), UTCDateTime())
        crossing = and_(
            User.failed_login_attempts + 1 >= max_attempts,
            User.locked_at.is_(None),
        )
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=User.failed_login_attempts + 1,
                locked_at=case((crossing, stamp), else_=User.locked_at),
                sessions_invalid_before=case(
                    (crossing, stamp), else_=User.sessions_invalid_before,
                ),
            )
            .returning(User.failed_login_attempts, User.locked_at)
            .execution_options(synchronize_session=False)
        )
        async with self._db.transaction() as s:
            row = (await s.execute(stmt)).one_or_none()
        if row is None:
            raise NotFoundError("User", str(user_id))
        return LockoutState(
            failed_login_attempts=row.failed_login_attempts,
            locked_at=row.locked_at,
        )

    async def reset_failed_attempts(self, user_id: UserId) -> None:
        async with self._db.transaction() as s:
            await self._reset_attempts(s, user_id)

    @staticmethod
    async def _reset_attempts(s, user_id: UserId) -> None:
        result = await s.execute(
            update(User)
            .where(User.id == user_id)
            .values(failed_login_attempts=0)
            .execution_options(synchronize_session=False),
        )
        if result.rowcount == 0:
            raise NotFoundError("User", str(user_id))

    # ─── Sessions ────────────────────────────────────────────────

    async def create_session_and_reset_attempts(
        self, user_id: UserId, data: SessionData,
    ) -> SessionRecord:
        async with self._db.transaction() as s:
            await self._reset_attempts(s, user_id)
            row = AuthSession(
                user_id=user_id,
                token_hash=data.token_hash,
                expires_at=data.expires_at,
                ip_address=data.ip_address,
                user_agent=data.user_agent,
            )
            s.add(row)
            await s.flush()
        return _to_session_record(row)

    async def find_session_by_token_hash(
        self, token_hash: str,
    ) -> SessionRecord | None:
        async with self._db.session() as s:
            row = (await s.execute(
                select(AuthSession).where(AuthSession.token_hash == token_hash),
            )).scalar_one_or_none()
            return _to_session_record(row) if row else None

    async def touch_session(self, session_id: SessionId) -> None:
        async with self._db.transaction() as s:
            await s.execute(
                update(AuthSession)
                .where(AuthSession.id == session_id)
                .values(last_active_at=utcnow())
                .execution_options(synchronize_session=False),
            )

    async def revoke_session(self, session_id: SessionId) -> None:
        async with self._db.transaction() as s:
            await s.execute(
                update(AuthSession)
                .where(
                    AuthSession.id == session_id,
                    AuthSession.revoked_at.is_(None),
                )
                .values(revoked_at=utcnow())
                .execution_options(synchronize_session=False),
            )

    async def revoke_all_sessions(
        self, user_id: UserId, current_session_id: SessionId | None = None,
    ) -> None:
        """Invalidate every session issued so far; revoke the caller's outright."""
        now = utcnow()
        async with self._db.transaction() as s:
            result = await s.execute(
                update(User)
                .where(User.id == user_id)
                .values(sessions_invalid_before=now)
                .execution_options(synchronize_session=False),
            )
            if result.rowcount == 0:
                raise NotFoundError("User", str(user_id))
            if current_session_id is not None:
                await s.execute(
                    update(AuthSession)
                    .where(
                        AuthSession.id == current_session_id,
                        AuthSession.revoked_at.is_(None),
                    )
                    .values(revoked_at=now)
                    .execution_options(synchronize_session=False),
                )

    # ─── Password reset tokens ───────────────────────────────────

    async def replace_reset_token(
        self, user_id: UserId, token_hash: str, expires_at: datetime,
    ) -> None:
        """Drop the user's unused tokens and store a fresh one."""
        async with self._db.transaction() as s:
            await s.execute(
                delete(PasswordResetToken)
                .where(
                    PasswordResetToken.user_id == user_id,
                    PasswordResetToken.used_at.is_(None),
                )
                .execution_options(synchronize_session=False),
            )
            s.add(PasswordResetToken(
                user_id=user_id, token_hash=token_hash, expires_at=expires_at,
            ))

    async def find_reset_token(self, token_hash: str) -> ResetTokenRecord | None:
        async with self._db.session() as s:
            row = (await s.execute(
                select(PasswordResetToken)
                .where(PasswordResetToken.token_hash == token_hash),
            )).scalar_one_or_none()
            if row is None:
                return None
            return ResetTokenRecord(
                user_id=UserId(row.user_id),
                expires_at=row.expires_at,
                used_at=row.used_at,
            )

    async def consume_reset_token(
        self, token_hash: str, new_password_hash: str,
    ) -> bool:
        """Mark the token used and set the new password, atomically.

        Returns False when the token is unknown, expired or already used
        (including losing a race against a concurrent confirm).
        """
        now = utcnow()
        async with self._db.transaction() as s:
            user_id = (await s.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.token_hash == token_hash,
                    PasswordResetToken.used_at.is_(None),
                    PasswordResetToken.expires_at > now,
                )
                .values(used_at=now)
                .returning(PasswordResetToken.user_id)
                .execution_options(synchronize_session=False),
            )).scalar_one_or_none()
            if user_id is None:
                return False
            await s.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=new_password_hash, sessions_invalid_before=now)
                .execution_options(synchronize_session=False),
            )
        return True
