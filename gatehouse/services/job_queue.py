"""Job Queue — durable, at-least-once work queue on the relational store.

Invariants:
    - enqueue validates the payload for its type before anything is persisted;
      an unknown type raises UnknownJobTypeError, never a silent drop
    - Enqueueing an existing job id returns the existing job (idempotent producer)
    - claim is ONE conditional UPDATE: a job is active at one worker at a time,
      and an active job whose lease (locked_until) expired is claimable again
      while it has attempts left; otherwise claim marks it failed ("lease expired")
    - attempts counts deliveries started; a job never runs more than max_attempts times
    - Retries back off exponentially: base * 2^(attempts-1), capped at max
    - Exhausted or non-retryable jobs end in state failed and are kept for replay

Design Decisions:
    - Visibility-timeout lease over row locks held across the handler: a crashed
      worker's job comes back on its own without any reaper process
    - complete/fail are guarded by state=active: a late ack from a worker whose
      lease already expired can't clobber the redelivered attempt's outcome
"""

import logging
import uuid
from datetime import timedelta
from typing import Any

from sqlalchemy import and_, or_, select, update

from gatehouse.core.domain_types import JobId, JobState, JobType, parse_job_type
from gatehouse.core.errors import ConflictError, NotFoundError
from gatehouse.core.repository_protocols import JobHandle, QueuedJob
from gatehouse.db.base import utcnow
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.models.job import Job
from gatehouse.schemas.jobs import validate_payload

logger = logging.getLogger(__name__)


def backoff_delay_ms(attempts: int, base_ms: int, max_ms: int) -> int:
    """Delay before the next delivery after `attempts` deliveries have failed."""
    return min(base_ms * (2 ** max(attempts - 1, 0)), max_ms)


def _to_queued_job(row: Job) -> QueuedJob:
    return QueuedJob(
        id=JobId(row.id),
        type=row.type,
        payload=row.payload,
        state=JobState(row.state),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        run_at=row.run_at,
        last_error=row.last_error,
    )


class JobQueue:
    """Producer and consumer operations over the jobs table."""

    def __init__(
        self,
        db: DatabaseSessionManager,
        default_max_attempts: int = 3,
        backoff_base_ms: int = 1000,
        backoff_max_ms: int = 60_000,
        visibility_timeout_seconds: int = 60,
    ):
        self._db = db
        self.default_max_attempts = default_max_attempts
        self.backoff_base_ms = backoff_base_ms
        self.backoff_max_ms = backoff_max_ms
        self.visibility_timeout = timedelta(seconds=visibility_timeout_seconds)

    # ─── Producer ────────────────────────────────────────────────

    async def enqueue(
        self,
        job_type: JobType | str,
        payload: dict[str, Any],
        *,
        job_id: str | None = None,
        max_attempts: int | None = None,
        delay_ms: int = 0,
    ) -> JobHandle:
        resolved = job_type if isinstance(job_type, JobType) else parse_job_type(job_type)
        validated = validate_payload(resolved, payload)

        if job_id is not None:
            existing = await self.get(JobId(job_id))
            if existing is not None:
                return JobHandle(id=existing.id, type=resolved, state=existing.state)

        row_id = job_id or str(uuid.uuid4())
        try:
            async with self._db.transaction() as s:
                s.add(Job(
                    id=row_id,
                    type=resolved.value,
                    payload=validated.model_dump(mode="json"),
                    state=JobState.WAITING.value,
                    attempts=0,
                    max_attempts=max_attempts or self.default_max_attempts,
                    run_at=utcnow() + timedelta(milliseconds=delay_ms),
                ))
        except ConflictError:
            # Concurrent enqueue with the same id won the insert
            existing = await self.get(JobId(row_id))
            if existing is None:
                raise
            return JobHandle(id=existing.id, type=resolved, state=existing.state)

        logger.info(
            "Job enqueued",
            extra={"job_id": row_id, "job_type": resolved.value},
        )
        return JobHandle(id=JobId(row_id), type=resolved, state=JobState.WAITING)

    # ─── Consumer ────────────────────────────────────────────────

    async def claim(self, worker_id: str) -> QueuedJob | None:
        """Lease the oldest due job, or return None when nothing is claimable."""
        now = utcnow()
        lease_expired = and_(
            Job.state == JobState.ACTIVE.value, Job.locked_until < now,
        )
        # Expired leases that already used every attempt are dead, not redelivered
        exhaust = (
            update(Job)
            .where(lease_expired, Job.attempts >= Job.max_attempts)
            .values(
                state=JobState.FAILED.value,
                locked_until=None,
                last_error="lease expired",
                finished_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        claimable = or_(
            and_(Job.state == JobState.WAITING.value, Job.run_at <= now),
            and_(lease_expired, Job.attempts < Job.max_attempts),
        )
        candidate = (
            select(Job.id)
            .where(claimable)
            .order_by(Job.run_at, Job.created_at)
            .limit(1)
            .scalar_subquery()
        )
        stmt = (
            update(Job)
            .where(Job.id == candidate, claimable)
            .values(
                state=JobState.ACTIVE.value,
                attempts=Job.attempts + 1,
                locked_until=now + self.visibility_timeout,
                locked_by=worker_id,
            )
            .returning(Job)
            .execution_options(synchronize_session=False)
        )
        async with self._db.transaction() as s:
            exhausted = (await s.execute(exhaust)).rowcount
            row = (await s.execute(stmt)).scalar_one_or_none()
            job = _to_queued_job(row) if row else None
        if exhausted:
            logger.error(
                f"{exhausted} job(s) failed after their last lease expired",
            )
        return job

    async def complete(self, job_id: JobId) -> None:
        async with self._db.transaction() as s:
            await s.execute(
                update(Job)
                .where(Job.id == job_id, Job.state == JobState.ACTIVE.value)
                .values(
                    state=JobState.COMPLETED.value,
                    locked_until=None,
                    finished_at=utcnow(),
                )
                .execution_options(synchronize_session=False),
            )

    async def fail(
        self, job_id: JobId, error: str, retryable: bool = True,
    ) -> JobState:
        """Record a failed delivery. Returns the job's resulting state."""
        job = await self.get(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        if job.state != JobState.ACTIVE:
            return job.state

        now = utcnow()
        if retryable and job.attempts < job.max_attempts:
            delay = backoff_delay_ms(
                job.attempts, self.backoff_base_ms, self.backoff_max_ms,
            )
            values = {
                "state": JobState.WAITING.value,
                "run_at": now + timedelta(milliseconds=delay),
            }
        else:
            values = {"state": JobState.FAILED.value, "finished_at": now}

        # Guarded on attempts: a redelivery that started meanwhile owns the job now
        async with self._db.transaction() as s:
            result = await s.execute(
                update(Job)
                .where(
                    Job.id == job_id,
                    Job.state == JobState.ACTIVE.value,
                    Job.attempts == job.attempts,
                )
                .values(locked_until=None, last_error=error[:2000], **values)
                .execution_options(synchronize_session=False),
            )
            updated = result.rowcount
        if updated == 0:
            current = await self.get(job_id)
            return current.state if current else job.state
        return JobState(values["state"])

    # ─── Inspection ──────────────────────────────────────────────

    async def get(self, job_id: JobId) -> QueuedJob | None:
        async with self._db.session() as s:
            row = await s.get(Job, job_id)
            return _to_queued_job(row) if row else None

    async def replay(self, job_id: JobId) -> JobHandle:
        """Move a failed job back to waiting with a fresh attempt budget."""
        async with self._db.transaction() as s:
            result = await s.execute(
                update(Job)
                .where(Job.id == job_id, Job.state == JobState.FAILED.value)
                .values(
                    state=JobState.WAITING.value,
                    attempts=0,
                    run_at=utcnow(),
                    finished_at=None,
                )
                .returning(Job.type)
                .execution_options(synchronize_session=False),
            )
            job_type = result.scalar_one_or_none()
        if job_type is None:
            existing = await self.get(job_id)
            if existing is None:
                raise NotFoundError("Job", job_id)
            raise ConflictError(
                f"Job '{job_id}' is {existing.state.value}, only failed jobs can be replayed",
            )
        logger.info("Job replayed", extra={"job_id": job_id, "job_type": job_type})
        return JobHandle(
            id=job_id, type=parse_job_type(job_type), state=JobState.WAITING,
        )
