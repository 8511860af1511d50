"""Redis collection backend tests.

Runs against the Redis at PROG_REDIS_URL (database flushed after each test);
skipped when no server is reachable.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from progression.config import get_settings
from progression.errors import ConcurrencyConflictError, MaintenanceLockError, StoreUnavailableError
from progression.models import TEAMS, Team
from progression.store.records import RecordStore
from progression.store.redis_backend import RedisCollectionBackend


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[redis.Redis, None]:
    """Redis client for testing, flushed after use."""
    client = redis.from_url(get_settings().redis_url, decode_responses=True)
    try:
        await client.ping()
    except RedisError:
        await client.aclose()
        pytest.skip("Redis not reachable")
    yield client
    await client.flushdb()
    await client.aclose()


@pytest.fixture
def redis_backend(redis_client) -> RedisCollectionBackend:
    return RedisCollectionBackend(redis_client, prefix="test-tenant-a")


class _UnreachableRedis:
    async def hgetall(self, key: str) -> dict:
        raise RedisConnectionError("connection refused")

    async def ping(self) -> bool:
        raise RedisConnectionError("connection refused")


class TestRedisCollectionBackend:
    @pytest.mark.asyncio
    async def test_absent_collection_reads_empty(self, redis_backend):
        snapshot = await redis_backend.load(TEAMS)
        assert snapshot.version == 0
        assert snapshot.records == []

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, redis_backend):
        assert await redis_backend.save(TEAMS, [{"id": "a"}], 0) == 1
        assert await redis_backend.save(TEAMS, [{"id": "a"}, {"id": "b"}], 1) == 2
        snapshot = await redis_backend.load(TEAMS)
        assert snapshot.version == 2
        assert snapshot.records == [{"id": "a"}, {"id": "b"}]

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self, redis_backend):
        await redis_backend.save(TEAMS, [{"id": "a"}], 0)
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await redis_backend.save(TEAMS, [{"id": "b"}], 0)
        assert exc_info.value.actual_version == 1
        assert (await redis_backend.load(TEAMS)).records == [{"id": "a"}]

    @pytest.mark.asyncio
    async def test_key_prefix_scopes_tenants(self, redis_client, redis_backend):
        other = RedisCollectionBackend(redis_client, prefix="test-tenant-b")
        await redis_backend.save(TEAMS, [{"id": "a"}], 0)
        assert (await other.load(TEAMS)).records == []
        assert await redis_client.exists("test-tenant-a:collection:teams")

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_unavailable(self, redis_client, redis_backend):
        await redis_client.hset("test-tenant-a:collection:teams", mapping={"version": 1, "data": "{not json"})
        with pytest.raises(StoreUnavailableError):
            await redis_backend.load(TEAMS)

    @pytest.mark.asyncio
    async def test_record_store_round_trip(self, redis_backend):
        store = RecordStore(redis_backend, TEAMS, Team)
        await store.create(Team(id="a", name="A", member_ids=["u1"]))
        await store.update("a", {"name": "B"})
        team = await store.get_by_id("a")
        assert team.name == "B"
        assert team.member_ids == ["u1"]

    @pytest.mark.asyncio
    async def test_lock_is_exclusive(self, redis_backend):
        async with redis_backend.lock("integrity-sweep", 5.0):
            with pytest.raises(MaintenanceLockError):
                async with redis_backend.lock("integrity-sweep", 5.0):
                    pass
        async with redis_backend.lock("integrity-sweep", 5.0):
            pass

    @pytest.mark.asyncio
    async def test_ping(self, redis_backend):
        assert await redis_backend.ping() is True


@pytest.mark.asyncio
async def test_unreachable_redis() -> None:
    backend = RedisCollectionBackend(_UnreachableRedis())
    with pytest.raises(StoreUnavailableError):
        await backend.load(TEAMS)
    assert await backend.ping() is False
