"""AuthSession ORM — one row per issued login session.

Invariants:
    - token_hash is the SHA-256 hex of the bearer value; the raw value is never stored
    - Rows are created only by the session issuer, in the same transaction
      that resets the user's failed attempts
    - A session authenticates only while unrevoked, unexpired and created at or
      after the user's sessions_invalid_before

Design Decisions:
    - Class named AuthSession so it never shadows sqlalchemy's Session
    - Revocation is a timestamp, not a delete: logout history stays queryable
"""

import uuid
from datetime import datetime

from sqlalchemy import String, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse.db.base import Base, UTCDateTime, utcnow


class AuthSession(Base):
    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True,
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    last_active_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )
