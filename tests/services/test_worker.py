"""Tests for the job worker — routing, outcomes, retries and shutdown.

Tests:
    - handler_for routes every JobType to a handler
    - A queued job is sent and completed
    - Invalid stored payloads and unknown types fail without retry
    - A flaky transport is retried until it succeeds (one email)
    - A dead transport exhausts max_attempts and leaves the job failed
    - Redelivery after a lost ack does not send twice
    - run_forever processes work and stops cleanly on stop()
    - A store outage while recording the outcome is logged; the job stays leased
"""

import asyncio
import logging

import pytest

from gatehouse.core.domain_types import JobState, JobType
from gatehouse.core.errors import ServiceUnavailableError
from gatehouse.db.base import utcnow
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.infrastructure.sent_markers import SqlSentMarkerStore
from gatehouse.models.job import Job
from gatehouse.services.email_dispatcher import EmailDispatcher
from gatehouse.services.email_templates import EmailRenderer
from gatehouse.services.job_queue import JobQueue
from gatehouse.services.worker import Worker
from tests.fakes import FakeTransport

WELCOME = {"to": "ada@example.org", "user_id": "u-1"}


def make_worker(db, transport, concurrency=1, max_attempts=3) -> tuple[Worker, JobQueue]:
    queue = JobQueue(db, default_max_attempts=max_attempts, backoff_base_ms=0, backoff_max_ms=0)
    emails = EmailDispatcher(
        transport, SqlSentMarkerStore(db),
        EmailRenderer("https://app.gatehouse.example.org"),
        "noreply@gatehouse.example.org",
    )
    worker = Worker(
        queue, emails, concurrency=concurrency, poll_interval_ms=10,
        shutdown_timeout_seconds=1, worker_id="test-worker",
    )
    return worker, queue


@pytest.mark.parametrize("job_type", list(JobType))
async def test_every_job_type_has_a_handler(db, job_type):
    worker, _ = make_worker(db, FakeTransport())
    assert callable(worker.handler_for(job_type))


async def test_job_is_sent_and_completed(db):
    transport = FakeTransport()
    worker, queue = make_worker(db, transport)
    handle = await queue.enqueue(JobType.WELCOME, WELCOME)

    assert await worker.run_until_idle() == 1

    assert (await queue.get(handle.id)).state is JobState.COMPLETED
    assert [m.subject for m in transport.sent] == ["Welcome aboard"]


async def _insert_raw_job(db, job_id, job_type, payload):
    async with db.transaction() as s:
        s.add(Job(
            id=job_id, type=job_type, payload=payload, state="waiting",
            attempts=0, max_attempts=3, run_at=utcnow(),
        ))


async def test_bad_stored_jobs_fail_without_retry(db):
    transport = FakeTransport()
    worker, queue = make_worker(db, transport)
    await _insert_raw_job(db, "bad-payload", "email:welcome", {"to": "ada@example.org"})
    await _insert_raw_job(db, "bad-type", "email:newsletter", WELCOME)

    await worker.run_until_idle()

    for job_id, code in [("bad-payload", "VALIDATION_ERROR"), ("bad-type", "UNKNOWN_JOB_TYPE")]:
        job = await queue.get(job_id)
        assert job.state is JobState.FAILED
        assert job.attempts == 1
        assert job.last_error.startswith(code)
    assert transport.calls == 0


async def test_flaky_transport_is_retried(db):
    transport = FakeTransport(fail_times=2)
    worker, queue = make_worker(db, transport)
    handle = await queue.enqueue(JobType.WELCOME, WELCOME)

    await worker.run_until_idle()

    job = await queue.get(handle.id)
    assert job.state is JobState.COMPLETED
    assert job.attempts == 3
    assert len(transport.sent) == 1


async def test_dead_transport_exhausts_attempts(db):
    transport = FakeTransport(fail_times=100)
    worker, queue = make_worker(db, transport, max_attempts=3)
    handle = await queue.enqueue(JobType.WELCOME, WELCOME)

    await worker.run_until_idle()

    job = await queue.get(handle.id)
    assert job.state is JobState.FAILED
    assert job.attempts == 3
    assert transport.calls == 3
    assert "EMAIL_SEND_FAILED" in job.last_error


async def test_lost_ack_redelivery_sends_once(db):
    transport = FakeTransport()
    worker, queue = make_worker(db, transport)
    await queue.enqueue(JobType.WELCOME, WELCOME)

    # First delivery sends but the ack never reaches the queue
    job = await queue.claim("crashed-worker")
    await worker.handler_for(JobType.WELCOME)(job.id, JobType.WELCOME, job.payload)
    await queue.fail(job.id, "worker crashed")

    await worker.run_until_idle()

    assert (await queue.get(job.id)).state is JobState.COMPLETED
    assert len(transport.sent) == 1


async def test_run_forever_processes_and_stops(file_engine):
    db = DatabaseSessionManager(file_engine)
    transport = FakeTransport()
    worker, queue = make_worker(db, transport, concurrency=3)
    handles = [
        await queue.enqueue(JobType.WELCOME, {**WELCOME, "user_id": f"u-{i}"})
        for i in range(6)
    ]

    runner = asyncio.create_task(worker.run_forever())
    for _ in range(200):
        states = [(await queue.get(h.id)).state for h in handles]
        if all(s is JobState.COMPLETED for s in states):
            break
        await asyncio.sleep(0.02)
    worker.stop()
    await asyncio.wait_for(runner, timeout=5)

    assert all(s is JobState.COMPLETED for s in states)
    assert len(transport.sent) == 6


async def test_unrecorded_outcome_is_logged_and_left_to_the_lease(db, monkeypatch, caplog):
    transport = FakeTransport()
    worker, queue = make_worker(db, transport)
    handle = await queue.enqueue(JobType.WELCOME, WELCOME)

    async def store_down(job_id):
        raise ServiceUnavailableError("Database unavailable")

    monkeypatch.setattr(queue, "complete", store_down)
    caplog.set_level(logging.ERROR, logger="gatehouse.services.worker")

    assert await worker.run_until_idle() == 1

    assert (await queue.get(handle.id)).state is JobState.ACTIVE
    assert len(transport.sent) == 1
    records = [r for r in caplog.records if r.name == "gatehouse.services.worker"]
    assert any(
        getattr(r, "error_code", None) == "SERVICE_UNAVAILABLE" and r.job_id == handle.id
        for r in records
    )
