"""Tests for LoginService — status checks, lockout, session issue and audit.

Tests:
    - Correct password issues a session whose token hashes to the stored row
    - A success below the threshold resets the failed-attempt counter
    - Unknown, locked, unverified and inactive users raise the same error
    - Locked accounts reject the correct password without touching the counter
    - The threshold-crossing failure queues exactly one account-locked email
    - An enqueue failure never changes the login outcome
    - Concurrent wrong passwords crossing the threshold queue one email
    - Every rejection is audited with its reason
"""

import asyncio
import logging

import pytest
from sqlalchemy import func, select

from gatehouse.core.credentials import hash_token
from gatehouse.core.domain_types import JobType
from gatehouse.core.errors import InvalidCredentialsError
from gatehouse.db.base import utcnow
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.infrastructure.observability import AUDIT_LOGGER
from gatehouse.models.auth_session import AuthSession
from gatehouse.services.credential_store import SqlCredentialStore
from gatehouse.services.lockout import LockoutCoordinator
from gatehouse.services.login import LoginService
from gatehouse.services.session_issuer import SessionIssuer
from tests.conftest import PASSWORD, create_user, reload_user
from tests.fakes import RecordingEnqueuer


def make_login(db, jobs=None, max_attempts=5) -> LoginService:
    store = SqlCredentialStore(db)
    return LoginService(
        store,
        LockoutCoordinator(store, max_attempts),
        SessionIssuer(store, expiry_days=7),
        jobs or RecordingEnqueuer(),
    )


def audit_reasons(caplog) -> list[str]:
    return [r.reason for r in caplog.records if r.name == AUDIT_LOGGER and r.reason]


async def test_success_issues_session(db, user):
    result = await make_login(db).login(" Ada@Example.org ", PASSWORD, "10.0.0.1", "pytest")

    assert result.user.id == user.id
    async with db.session() as s:
        row = (await s.execute(select(AuthSession))).scalar_one()
    assert row.token_hash == hash_token(result.token)
    assert row.ip_address == "10.0.0.1"
    assert row.expires_at == result.session.expires_at


async def test_success_resets_failed_attempts(db):
    user = await create_user(db, failed_login_attempts=4)

    await make_login(db).login(user.email, PASSWORD)

    assert (await reload_user(db, user.id)).failed_login_attempts == 0


@pytest.mark.parametrize("overrides", [
    {"verified": False},
    {"is_active": False},
    {"locked_at": utcnow()},
])
async def test_ineligible_accounts_rejected_with_correct_password(db, overrides):
    user = await create_user(db, **overrides)

    with pytest.raises(InvalidCredentialsError) as exc_info:
        await make_login(db).login(user.email, PASSWORD)

    assert exc_info.value.message == "Invalid credentials"
    assert (await reload_user(db, user.id)).failed_login_attempts == 0


async def test_unknown_email_rejected(db):
    with pytest.raises(InvalidCredentialsError):
        await make_login(db).login("nobody@example.org", PASSWORD)


async def test_wrong_password_increments(db, user):
    with pytest.raises(InvalidCredentialsError):
        await make_login(db).login(user.email, "wrong password!!")

    reloaded = await reload_user(db, user.id)
    assert reloaded.failed_login_attempts == 1
    assert reloaded.locked_at is None


async def test_threshold_failure_locks_and_notifies_once(db):
    user = await create_user(db, failed_login_attempts=4)
    jobs = RecordingEnqueuer()
    login = make_login(db, jobs)

    with pytest.raises(InvalidCredentialsError):
        await login.login(user.email, "wrong password!!")
    with pytest.raises(InvalidCredentialsError):
        await login.login(user.email, "wrong password!!")

    reloaded = await reload_user(db, user.id)
    assert reloaded.failed_login_attempts == 5
    assert reloaded.locked_at is not None
    assert jobs.calls == [
        (JobType.ACCOUNT_LOCKED, {"to": user.email, "user_id": str(user.id)}),
    ]


async def test_enqueue_failure_does_not_change_outcome(db):
    user = await create_user(db, failed_login_attempts=4)

    with pytest.raises(InvalidCredentialsError):
        await make_login(db, RecordingEnqueuer(fail=True)).login(
            user.email, "wrong password!!",
        )

    assert (await reload_user(db, user.id)).locked_at is not None


async def test_concurrent_failures_notify_once(file_engine):
    db = DatabaseSessionManager(file_engine)
    user = await create_user(db)
    jobs = RecordingEnqueuer()
    login = make_login(db, jobs)

    results = await asyncio.gather(
        *(login.login(user.email, "wrong password!!") for _ in range(7)),
        return_exceptions=True,
    )

    assert all(isinstance(r, InvalidCredentialsError) for r in results)
    assert len(jobs.calls) == 1
    reloaded = await reload_user(db, user.id)
    assert reloaded.locked_at is not None
    # Failures that raced past the status check still count
    assert reloaded.failed_login_attempts >= 5


async def test_rejections_are_audited_with_reason(db, caplog):
    caplog.set_level(logging.INFO, logger=AUDIT_LOGGER)
    user = await create_user(db, failed_login_attempts=3)
    unverified = await create_user(db, "grace@example.org", verified=False)
    login = make_login(db)

    for email, password in [
        ("nobody@example.org", PASSWORD),
        (unverified.email, PASSWORD),
        (user.email, "wrong password!!"),
        (user.email, "wrong password!!"),
        (user.email, PASSWORD),
    ]:
        with pytest.raises(InvalidCredentialsError):
            await login.login(email, password)

    assert audit_reasons(caplog) == [
        "not_found", "unverified", "wrong_password", "locked_now", "locked",
    ]


async def test_session_count_after_success(db, user):
    login = make_login(db)
    await login.login(user.email, PASSWORD)
    await login.login(user.email, PASSWORD)

    async with db.session() as s:
        count = (await s.execute(select(func.count()).select_from(AuthSession))).scalar_one()
    assert count == 2
