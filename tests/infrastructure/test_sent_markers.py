"""Tests for the sent-marker stores.

Tests:
    - Redis store: SET NX EX under the email:sent: prefix; exists answers is_sent
    - Redis errors surface as ServiceUnavailableError
    - SQL store: marking is idempotent
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gatehouse.core.domain_types import JobId
from gatehouse.core.errors import ServiceUnavailableError
from gatehouse.infrastructure.sent_markers import RedisSentMarkerStore, SqlSentMarkerStore


class RecordingRedis:
    def __init__(self):
        self.data: dict[str, str] = {}
        self.set_calls = []
        self.closed = False

    async def exists(self, key):
        return int(key in self.data)

    async def set(self, key, value, nx=False, ex=None):
        self.set_calls.append((key, value, nx, ex))
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    async def aclose(self):
        self.closed = True


class DownRedis:
    async def exists(self, key):
        raise RedisConnectionError("connection refused")

    async def set(self, *args, **kwargs):
        raise RedisConnectionError("connection refused")


async def test_redis_marks_with_nx_and_ttl():
    client = RecordingRedis()
    store = RedisSentMarkerStore(client, ttl_seconds=3600)

    assert not await store.is_sent(JobId("job-1"))
    await store.mark_sent(JobId("job-1"))
    await store.mark_sent(JobId("job-1"))

    assert await store.is_sent(JobId("job-1"))
    assert client.set_calls[0] == ("email:sent:job-1", "1", True, 3600)
    await store.close()
    assert client.closed


async def test_redis_errors_are_service_unavailable():
    store = RedisSentMarkerStore(DownRedis(), ttl_seconds=60)

    with pytest.raises(ServiceUnavailableError):
        await store.is_sent(JobId("job-1"))
    with pytest.raises(ServiceUnavailableError):
        await store.mark_sent(JobId("job-1"))


async def test_sql_marker_is_idempotent(db):
    store = SqlSentMarkerStore(db)

    assert not await store.is_sent(JobId("job-1"))
    await store.mark_sent(JobId("job-1"))
    await store.mark_sent(JobId("job-1"))

    assert await store.is_sent(JobId("job-1"))
