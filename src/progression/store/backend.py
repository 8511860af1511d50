"""Collection backends: whole-collection get / versioned replace.

The physical store only knows named collections, each a JSON array of
records. A collection also carries a monotonically increasing version that
every successful write bumps; a write names the version it was computed from
and is rejected when another writer got there first.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from progression.errors import ConcurrencyConflictError, MaintenanceLockError

RawRecord = dict[str, Any]


@dataclass(frozen=True)
class CollectionSnapshot:
    """One consistent read of a collection."""

    name: str
    version: int
    records: list[RawRecord] = field(default_factory=list)


class CollectionBackend(ABC):
    """Storage contract the record store is built on."""

    @abstractmethod
    async def load(self, collection: str) -> CollectionSnapshot:
        """Read the whole collection. Absent collections read as version 0, empty."""

    @abstractmethod
    async def save(self, collection: str, records: list[RawRecord], expected_version: int) -> int:
        """Replace the whole collection if it is still at expected_version.

        Returns the new version. Raises ConcurrencyConflictError otherwise.
        """

    @abstractmethod
    def lock(self, name: str, timeout: float) -> Any:  # noqa: ANN401
        """Async context manager holding an exclusive named lock."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True if the backend is reachable."""


class InMemoryBackend(CollectionBackend):
    """Process-local backend for tests and single-process runs.

    Collections are kept serialized so callers never share mutable state
    with the store, exactly as with a remote backend.
    """

    def __init__(self) -> None:
        self._collections: dict[str, tuple[int, str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def load(self, collection: str) -> CollectionSnapshot:
        version, payload = self._collections.get(collection, (0, "[]"))
        return CollectionSnapshot(name=collection, version=version, records=json.loads(payload))

    async def save(self, collection: str, records: list[RawRecord], expected_version: int) -> int:
        current, _ = self._collections.get(collection, (0, "[]"))
        if current != expected_version:
            raise ConcurrencyConflictError(collection, expected_version, current)
        new_version = current + 1
        self._collections[collection] = (new_version, json.dumps(records))
        return new_version

    @asynccontextmanager
    async def lock(self, name: str, timeout: float) -> AsyncIterator[None]:
        lock = self._locks.setdefault(name, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout)
        except asyncio.TimeoutError as exc:
            raise MaintenanceLockError(name, "lock is held by another run") from exc
        try:
            yield
        finally:
            lock.release()

    async def ping(self) -> bool:
        return True
