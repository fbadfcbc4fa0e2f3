"""SQLAlchemy Declarative Base — shared base class and column types for all ORM models.

Invariants:
    - All models inherit from Base
    - Base is the single source of truth for table metadata
    - UTCDateTime always hands back timezone-aware UTC datetimes, on every backend

Design Decisions:
    - Separate file for Base: avoids circular imports between models
    - UTCDateTime over plain DateTime(timezone=True): SQLite drops tzinfo on read,
      and lock/expiry comparisons must not mix naive and aware values
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """DateTime that is stored as UTC and always read back as aware UTC."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all Gatehouse ORM models."""
    pass
