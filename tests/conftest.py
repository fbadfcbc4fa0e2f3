"""Root conftest — shared settings, in-memory database and seeding helpers.

Invariants:
    - Every test gets a fresh in-memory SQLite database (schema via create_all)
    - Settings never read a developer's .env (_env_file=None)
    - SMTP and Redis are replaced by in-process fakes (tests/fakes.py)

Design Decisions:
    - SQLite in-memory: fast, no external dependency; UPDATE ... RETURNING is
      supported, so the atomic lockout statement runs unchanged
    - Tests that need real concurrency use file_engine (separate connections)
"""

import os
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SENT_MARKER_BACKEND", "database")

from gatehouse.bootstrap import Services, build_services  # noqa: E402
from gatehouse.config import Settings  # noqa: E402
from gatehouse.core.credentials import hash_password  # noqa: E402
from gatehouse.db.base import Base, utcnow  # noqa: E402
from gatehouse.infrastructure.database import DatabaseSessionManager  # noqa: E402
import gatehouse.models  # noqa: E402,F401
from gatehouse.models.role import Role  # noqa: E402
from gatehouse.models.user import User  # noqa: E402
from tests.fakes import FakeTransport, InMemorySentMarkerStore  # noqa: E402

PASSWORD = "correct horse battery staple"
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        sent_marker_backend="database",
        max_failed_login_attempts=5,
        session_expiry_days=7,
        job_max_attempts=3,
        job_backoff_base_ms=0,
        job_backoff_max_ms=0,
        email_from="noreply@gatehouse.example.org",
        app_base_url="https://app.gatehouse.test",
    )


@pytest.fixture
async def test_engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed SQLite: every session gets its own connection, so
    concurrent statements really contend at the database."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'gatehouse.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db(test_engine) -> DatabaseSessionManager:
    return DatabaseSessionManager(test_engine)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def markers() -> InMemorySentMarkerStore:
    return InMemorySentMarkerStore()


@pytest.fixture
def services(settings, db, transport, markers) -> Services:
    return build_services(
        settings, db, with_email=True, transport=transport, markers=markers,
    )


async def create_user(
    db: DatabaseSessionManager,
    email: str = "ada@example.org",
    *,
    password_hash: str = _PASSWORD_HASH,
    verified: bool = True,
    is_active: bool = True,
    failed_login_attempts: int = 0,
    locked_at: datetime | None = None,
    role_name: str | None = None,
) -> User:
    async with db.transaction() as s:
        role = None
        if role_name:
            role = Role(name=role_name)
            s.add(role)
        user = User(
            email=email,
            password_hash=password_hash,
            is_active=is_active,
            email_verified_at=utcnow() if verified else None,
            failed_login_attempts=failed_login_attempts,
            locked_at=locked_at,
            role=role,
        )
        s.add(user)
    return user


async def reload_user(db: DatabaseSessionManager, user_id) -> User:
    async with db.session() as s:
        return await s.get(User, user_id)


@pytest.fixture
async def user(db) -> User:
    return await create_user(db)
