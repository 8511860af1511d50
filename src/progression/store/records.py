"""Typed CRUD over a named collection.

Every mutation is read whole collection -> mutate in memory -> versioned
write of the whole collection. A write computed from a stale read is
rejected by the backend and the whole read-mutate-write is replayed, so
concurrent writers to the same collection never silently drop each other's
changes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from progression.errors import (
    ConcurrencyConflictError,
    CorruptRecordError,
    DuplicateIdError,
    RecordNotFoundError,
    StoreUnavailableError,
)
from progression.models import OwnedRecord, Record
from progression.store.backend import CollectionBackend, CollectionSnapshot

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=Record)
OwnedT = TypeVar("OwnedT", bound=OwnedRecord)
ResultT = TypeVar("ResultT")

DEFAULT_MAX_RETRIES = 5


class RecordStore(Generic[RecordT]):
    """Generic typed CRUD over one collection."""

    def __init__(
        self,
        backend: CollectionBackend,
        collection: str,
        model: type[RecordT],
        *,
        timeout: float | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self._backend = backend
        self.collection = collection
        self.model = model
        self._timeout = timeout
        self._max_retries = max(1, max_retries)

    def with_timeout(self, seconds: float | None) -> RecordStore[RecordT]:
        """Return a copy of this store whose backend calls expire after `seconds`."""
        return type(self)(
            self._backend,
            self.collection,
            self.model,
            timeout=seconds,
            max_retries=self._max_retries,
        )

    # ------------------------------------------------------------------
    # Backend access
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[Any]) -> Any:  # noqa: ANN401
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError(self.collection, f"timed out after {self._timeout}s") from exc

    async def _load(self) -> CollectionSnapshot:
        return await self._call(self._backend.load(self.collection))

    def _parse(self, raw: Iterable[dict]) -> list[RecordT]:
        records = []
        for item in raw:
            try:
                records.append(self.model.model_validate(item))
            except ValidationError as exc:
                record_id = item.get("id", "") if isinstance(item, dict) else ""
                logger.warning("Malformed record %s in %s", record_id, self.collection)
                raise CorruptRecordError(self.collection, str(record_id), str(exc)) from exc
        return records

    async def transform(
        self,
        fn: Callable[[list[RecordT]], tuple[list[RecordT] | None, ResultT]],
    ) -> ResultT:
        """Apply `fn` to the whole collection and write the result atomically.

        `fn` returns ``(new_records, result)``; ``new_records=None`` means
        nothing changed and no write happens. `fn` may run more than once
        when a concurrent writer wins the race, so it must be pure.
        """
        snapshot: CollectionSnapshot | None = None
        for attempt in range(1, self._max_retries + 1):
            snapshot = await self._load()
            updated, result = fn(self._parse(snapshot.records))
            if updated is None:
                return result
            try:
                await self._call(
                    self._backend.save(
                        self.collection,
                        [record.to_storage() for record in updated],
                        snapshot.version,
                    )
                )
            except ConcurrencyConflictError:
                logger.info(
                    "Write conflict on %s (attempt %d/%d), retrying",
                    self.collection, attempt, self._max_retries,
                )
                continue
            return result

        version = snapshot.version if snapshot is not None else 0
        raise ConcurrencyConflictError(self.collection, version)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> list[RecordT]:
        """Return the whole collection. Raises StoreUnavailableError if unreadable."""
        snapshot = await self._load()
        return self._parse(snapshot.records)

    async def get_by_id(self, record_id: str) -> RecordT | None:
        snapshot = await self._load()
        for raw in snapshot.records:
            if raw.get("id") == record_id:
                return self._parse([raw])[0]
        return None

    async def get_by_ids(self, ids: Iterable[str]) -> list[RecordT]:
        wanted = set(ids)
        snapshot = await self._load()
        return self._parse(raw for raw in snapshot.records if raw.get("id") in wanted)

    async def find(self, predicate: Callable[[RecordT], bool]) -> list[RecordT]:
        return [record for record in await self.get_all() if predicate(record)]

    async def count(self) -> int:
        snapshot = await self._load()
        return len(snapshot.records)

    async def exists(self, record_id: str) -> bool:
        snapshot = await self._load()
        return any(raw.get("id") == record_id for raw in snapshot.records)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, record: RecordT) -> RecordT:
        def _append(records: list[RecordT]) -> tuple[list[RecordT], RecordT]:
            if any(existing.id == record.id for existing in records):
                raise DuplicateIdError(self.collection, record.id)
            return [*records, record], record

        return await self.transform(_append)

    async def update(self, record_id: str, updates: dict[str, Any]) -> RecordT:
        """Shallow-merge `updates` into the record. Keys may be field names or aliases."""
        changes = self._to_aliases(updates)

        def _merge(records: list[RecordT]) -> tuple[list[RecordT], RecordT]:
            for index, existing in enumerate(records):
                if existing.id == record_id:
                    merged = {**existing.to_storage(), **changes, "id": record_id}
                    updated = self.model.model_validate(merged)
                    return [*records[:index], updated, *records[index + 1:]], updated
            raise RecordNotFoundError(self.collection, record_id)

        return await self.transform(_merge)

    async def delete(self, record_id: str) -> bool:
        """Remove a record. Returns True iff something was removed."""

        def _remove(records: list[RecordT]) -> tuple[list[RecordT] | None, bool]:
            kept = [record for record in records if record.id != record_id]
            if len(kept) == len(records):
                return None, False
            return kept, True

        return await self.transform(_remove)

    async def modify(
        self,
        record_id: str,
        mutator: Callable[[RecordT], RecordT],
        *,
        default: Callable[[], RecordT] | None = None,
    ) -> tuple[RecordT, RecordT]:
        """Atomically replace one record with ``mutator(current)``.

        When the record is absent, `default()` seeds it (or RecordNotFoundError
        is raised if no default is given). An unchanged record is not written.
        Returns ``(before, after)``.
        """

        def _apply(records: list[RecordT]) -> tuple[list[RecordT] | None, tuple[RecordT, RecordT]]:
            for index, existing in enumerate(records):
                if existing.id == record_id:
                    after = mutator(existing.model_copy(deep=True))
                    if after.id != record_id:
                        msg = f"mutator changed record id {record_id!r} to {after.id!r}"
                        raise ValueError(msg)
                    if after == existing:
                        return None, (existing, after)
                    return [*records[:index], after, *records[index + 1:]], (existing, after)
            if default is None:
                raise RecordNotFoundError(self.collection, record_id)
            before = default()
            after = mutator(before.model_copy(deep=True))
            return [*records, after], (before, after)

        return await self.transform(_apply)

    def _to_aliases(self, updates: dict[str, Any]) -> dict[str, Any]:
        aliases = {name: (info.alias or name) for name, info in self.model.model_fields.items()}
        return {aliases.get(key, key): value for key, value in updates.items()}


class UserScopedStore(RecordStore[OwnedT]):
    """Record store with owner-filtered views over a collection shared by all users."""

    async def get_by_user_id(self, user_id: str) -> list[OwnedT]:
        return await self.find(lambda record: record.user_id == user_id)

    async def delete_by_user_id(self, user_id: str) -> int:
        """Remove every record owned by `user_id` in one write. Returns the count."""

        def _remove(records: list[OwnedT]) -> tuple[list[OwnedT] | None, int]:
            kept = [record for record in records if record.user_id != user_id]
            removed = len(records) - len(kept)
            return (kept if removed else None), removed

        return await self.transform(_remove)
