"""Redis collection backend.

Each collection lives in one hash: ``{prefix}:collection:{name}`` with a
``data`` field (the JSON array) and a ``version`` field. Writes are guarded
by WATCH/MULTI/EXEC so a stale read can never overwrite a newer collection.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from redis.exceptions import LockError, RedisError, WatchError

from progression.errors import ConcurrencyConflictError, MaintenanceLockError, StoreUnavailableError
from progression.store.backend import CollectionBackend, CollectionSnapshot, RawRecord

logger = logging.getLogger(__name__)


class RedisCollectionBackend(CollectionBackend):
    """Whole-collection storage on a Redis instance, scoped by key prefix."""

    def __init__(self, client: redis.Redis, prefix: str = "default") -> None:
        self._client = client
        self._prefix = prefix

    def _key(self, collection: str) -> str:
        return f"{self._prefix}:collection:{collection}"

    async def load(self, collection: str) -> CollectionSnapshot:
        key = self._key(collection)
        try:
            raw = await self._client.hgetall(key)
        except RedisError as exc:
            logger.warning("Failed to read collection %s", key, exc_info=True)
            raise StoreUnavailableError(collection, f"read failed: {exc}") from exc

        if not raw:
            return CollectionSnapshot(name=collection, version=0, records=[])

        try:
            records = json.loads(raw.get("data", "[]"))
        except json.JSONDecodeError as exc:
            raise StoreUnavailableError(collection, "stored payload is not valid JSON") from exc
        return CollectionSnapshot(
            name=collection,
            version=int(raw.get("version", 0)),
            records=records,
        )

    async def save(self, collection: str, records: list[RawRecord], expected_version: int) -> int:
        key = self._key(collection)
        payload = json.dumps(records)
        new_version = expected_version + 1

        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.hget(key, "version")
                current_version = int(current) if current is not None else 0
                if current_version != expected_version:
                    await pipe.unwatch()
                    raise ConcurrencyConflictError(collection, expected_version, current_version)

                pipe.multi()
                pipe.hset(key, mapping={"version": new_version, "data": payload})
                await pipe.execute()
        except WatchError as exc:
            raise ConcurrencyConflictError(collection, expected_version) from exc
        except RedisError as exc:
            logger.warning("Failed to write collection %s", key, exc_info=True)
            raise StoreUnavailableError(collection, f"write failed: {exc}") from exc

        return new_version

    @asynccontextmanager
    async def lock(self, name: str, timeout: float) -> AsyncIterator[None]:
        lock = self._client.lock(
            f"{self._prefix}:lock:{name}",
            timeout=timeout,
            blocking_timeout=0,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as exc:
            raise StoreUnavailableError(name, f"lock failed: {exc}") from exc
        if not acquired:
            raise MaintenanceLockError(name, "lock is held by another run")

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Maintenance lock %s expired before release", name)

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False
