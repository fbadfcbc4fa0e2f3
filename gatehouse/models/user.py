"""User ORM — identity plus lockout and session-invalidation state.

Invariants:
    - email is unique and stored normalized (trimmed, lowercase)
    - failed_login_attempts >= 0; only increments until an explicit reset
    - locked_at goes null -> set once per lock episode, never cleared implicitly
    - sessions_invalid_before is stamped together with locked_at

Design Decisions:
    - Lockout columns mutated only through services/credential_store.py
      single-statement updates, never through ORM attribute assignment
"""

import uuid
from typing import Optional
from datetime import datetime

from sqlalchemy import (
    String, Integer, Boolean, ForeignKey, CheckConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.db.base import Base, UTCDateTime, utcnow


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "failed_login_attempts >= 0", name="ck_users_failed_attempts_nonneg",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(320), nullable=False, unique=True, index=True,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    locked_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    sessions_invalid_before: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True,
    )
    role_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("roles.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow,
    )

    role: Mapped[Optional["Role"]] = relationship(  # noqa: F821
        "Role", lazy="selectin",
    )
