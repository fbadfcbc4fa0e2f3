"""Sent Markers — per-job record that an email already went out.

Invariants:
    - mark_sent is written only after a confirmed transport success (caller's duty)
    - mark_sent is idempotent: marking twice is not an error
    - Backend failures surface as ServiceUnavailableError; the dispatcher decides
      whether to proceed

Design Decisions:
    - Redis SET NX EX by default: markers expire on their own once no redelivery
      could still be in flight
    - SQL backend for deployments without Redis; same contract, no TTL
"""

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from gatehouse.core.domain_types import JobId
from gatehouse.core.errors import ConflictError, ServiceUnavailableError
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.models.sent_marker import SentMarker

logger = logging.getLogger(__name__)


class RedisSentMarkerStore:
    KEY_PREFIX = "email:sent:"

    def __init__(self, client: Redis, ttl_seconds: int):
        self._redis = client
        self._ttl = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisSentMarkerStore":
        return cls(Redis.from_url(url, decode_responses=True), ttl_seconds)

    def _key(self, job_id: JobId) -> str:
        return f"{self.KEY_PREFIX}{job_id}"

    async def is_sent(self, job_id: JobId) -> bool:
        try:
            return bool(await self._redis.exists(self._key(job_id)))
        except RedisError as e:
            raise ServiceUnavailableError("Sent marker store unavailable") from e

    async def mark_sent(self, job_id: JobId) -> None:
        try:
            await self._redis.set(self._key(job_id), "1", nx=True, ex=self._ttl)
        except RedisError as e:
            raise ServiceUnavailableError("Sent marker store unavailable") from e

    async def close(self) -> None:
        await self._redis.aclose()


class SqlSentMarkerStore:
    def __init__(self, db: DatabaseSessionManager):
        self._db = db

    async def is_sent(self, job_id: JobId) -> bool:
        async with self._db.session() as s:
            return await s.get(SentMarker, job_id) is not None

    async def mark_sent(self, job_id: JobId) -> None:
        try:
            async with self._db.transaction() as s:
                s.add(SentMarker(job_id=job_id))
        except ConflictError:
            logger.debug("Sent marker already present", extra={"job_id": job_id})

    async def close(self) -> None:
        return None
