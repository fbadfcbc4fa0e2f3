"""Job Worker — claims queued jobs and routes each to its handler, with bounded concurrency.

Invariants:
    - Routing is an exhaustive match over JobType: adding a member without a
      case is a type-check error (assert_never)
    - At most `concurrency` jobs in flight per worker process
    - Payload ValidationError and UnknownJobTypeError are terminal (retrying
      can't fix them); every other failure is retried with backoff
    - stop() stops claiming at once; in-flight jobs get up to the shutdown
      timeout to finish, after which their leases expire and they are redelivered
    - The worker loop survives store outages: claim and ack errors are logged;
      claims are polled again, unacked jobs come back when their lease expires
"""

import asyncio
import logging
import os
import socket
from collections.abc import Awaitable, Callable
from typing import Any, assert_never

from gatehouse.core.domain_types import JobId, JobState, JobType, parse_job_type
from gatehouse.core.errors import GatehouseError, UnknownJobTypeError, ValidationError
from gatehouse.core.repository_protocols import QueuedJob
from gatehouse.services.email_dispatcher import EmailDispatcher
from gatehouse.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

Handler = Callable[[JobId, JobType, dict[str, Any]], Awaitable[Any]]


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


class Worker:
    def __init__(
        self,
        queue: JobQueue,
        emails: EmailDispatcher,
        concurrency: int = 5,
        poll_interval_ms: int = 500,
        shutdown_timeout_seconds: float = 10,
        worker_id: str | None = None,
    ):
        self._queue = queue
        self._emails = emails
        self.concurrency = concurrency
        self.poll_interval = poll_interval_ms / 1000
        self.shutdown_timeout = shutdown_timeout_seconds
        self.worker_id = worker_id or default_worker_id()
        self._stopping = asyncio.Event()
        self._in_flight: set[asyncio.Task] = set()

    def handler_for(self, job_type: JobType) -> Handler:
        match job_type:
            case (
                JobType.VERIFICATION
                | JobType.PASSWORD_RESET
                | JobType.WELCOME
                | JobType.ACCOUNT_LOCKED
                | JobType.INVITATION
            ):
                return self._emails.dispatch
            case _:
                assert_never(job_type)

    async def process(self, job: QueuedJob) -> JobState:
        """Run one delivery of a claimed job and record its outcome.

        If the outcome can't be recorded the job stays active and its lease
        expiry brings it back.
        """
        extra = {"job_id": job.id, "job_type": job.type, "attempt": job.attempts}
        logger.info("Job started", extra=extra)
        try:
            return await self._deliver(job, extra)
        except GatehouseError as e:
            logger.error(
                f"Failed to record job outcome: {e.message}",
                extra={**extra, "error_code": e.code},
            )
            return JobState.ACTIVE

    async def _deliver(self, job: QueuedJob, extra: dict) -> JobState:
        try:
            job_type = parse_job_type(job.type)
            await self.handler_for(job_type)(job.id, job_type, job.payload)
        except (ValidationError, UnknownJobTypeError) as e:
            logger.error(
                f"Job rejected: {e.message}",
                extra={**extra, "error_code": e.code},
            )
            return await self._queue.fail(
                job.id, f"{e.code}: {e.message}", retryable=False,
            )
        except Exception as e:
            code = e.code if isinstance(e, GatehouseError) else type(e).__name__
            logger.error(
                f"Job failed: {e}", extra={**extra, "error_code": code},
                exc_info=not isinstance(e, GatehouseError),
            )
            state = await self._queue.fail(job.id, f"{code}: {e}", retryable=True)
            if state is JobState.FAILED:
                logger.error("Job exhausted its attempts", extra=extra)
            return state

        await self._queue.complete(job.id)
        logger.info("Job completed", extra=extra)
        return JobState.COMPLETED

    async def _claim(self) -> QueuedJob | None:
        try:
            return await self._queue.claim(self.worker_id)
        except GatehouseError as e:
            logger.error(
                f"Claim failed: {e.message}", extra={"error_code": e.code},
            )
            return None

    def _start(self, job: QueuedJob) -> None:
        task = asyncio.create_task(self.process(job), name=f"job:{job.id}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def run_until_idle(self) -> int:
        """Process jobs until none is claimable. Returns how many ran."""
        ran = 0
        while True:
            batch = []
            while len(batch) < self.concurrency:
                job = await self._claim()
                if job is None:
                    break
                batch.append(job)
            if not batch:
                return ran
            await asyncio.gather(*(self.process(job) for job in batch))
            ran += len(batch)

    async def run_forever(self) -> None:
        logger.info(
            f"Worker {self.worker_id} started (concurrency={self.concurrency})",
        )
        while not self._stopping.is_set():
            claimed = False
            while len(self._in_flight) < self.concurrency and not self._stopping.is_set():
                job = await self._claim()
                if job is None:
                    break
                self._start(job)
                claimed = True

            if len(self._in_flight) >= self.concurrency:
                await asyncio.wait(
                    self._in_flight, return_when=asyncio.FIRST_COMPLETED,
                )
            elif not claimed:
                try:
                    await asyncio.wait_for(
                        self._stopping.wait(), timeout=self.poll_interval,
                    )
                except asyncio.TimeoutError:
                    pass

        await self._drain()

    async def _drain(self) -> None:
        if not self._in_flight:
            logger.info("Worker stopped")
            return
        logger.info(f"Waiting for {len(self._in_flight)} in-flight job(s)")
        _, pending = await asyncio.wait(
            set(self._in_flight), timeout=self.shutdown_timeout,
        )
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                f"Shutdown timeout: {len(pending)} job(s) left for redelivery",
            )
        logger.info("Worker stopped")

    def stop(self) -> None:
        self._stopping.set()
