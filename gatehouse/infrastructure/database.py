"""Database Session Manager — async connection pool with automatic rollback and error normalization.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Connection pool uses pool_pre_ping for stale connection detection
    - All SQLAlchemy exceptions leave this module as GatehouseError subclasses
      (normalize_db_error); driver codes never reach services or routes

Design Decisions:
    - One manager built at startup (FastAPI lifespan / worker main) and passed
      to stores explicitly: no module-level singleton
    - expire_on_commit=False: prevents lazy-load issues in async context
    - transaction() wraps session.begin(): multi-statement units (reset attempts +
      insert session) commit together or not at all
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import (
    IntegrityError, OperationalError, DBAPIError, SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker,
)

from gatehouse.core.errors import (
    ConflictError, GatehouseError, InternalError, ServiceUnavailableError,
)

logger = logging.getLogger(__name__)


def normalize_db_error(exc: SQLAlchemyError) -> GatehouseError:
    """Map a SQLAlchemy/driver error onto the Gatehouse taxonomy."""
    if isinstance(exc, IntegrityError):
        return ConflictError(
            "Unique constraint violation", code="UNIQUE_CONSTRAINT_VIOLATION",
        )
    if isinstance(exc, OperationalError):
        return ServiceUnavailableError("Database unavailable")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return ServiceUnavailableError("Database connection lost")
    return InternalError("Database operation failed")


class DatabaseSessionManager:
    """Manages async database sessions with pooling, rollback, and health checks."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(
        cls, database_url: str, pool_size: int = 20, max_overflow: int = 10,
    ) -> "DatabaseSessionManager":
        if database_url.startswith("sqlite"):
            # SQLite pools take no size arguments
            return cls(create_async_engine(database_url))
        engine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        return cls(engine)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            mapped = normalize_db_error(e)
            logger.error(
                f"DB error ({type(e).__name__}): {e}",
                extra={"error_code": mapped.code},
            )
            raise mapped from e
        except BaseException:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Session inside BEGIN ... COMMIT; rolled back if the block raises."""
        async with self.session() as session:
            async with session.begin():
                yield session

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except GatehouseError as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()
