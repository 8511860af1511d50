"""Exception hierarchy shared by the store, the ledger and the integrity sweep."""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for every error raised by the engine."""


class StoreError(ProgressionError):
    """Base class for record store failures."""

    def __init__(self, collection: str, message: str) -> None:
        super().__init__(f"{collection}: {message}")
        self.collection = collection


class DuplicateIdError(StoreError):
    """create() was called with an id that already exists in the collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(collection, f"record with id {record_id} already exists")
        self.record_id = record_id


class RecordNotFoundError(StoreError):
    """update() targeted an id that is not in the collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(collection, f"record with id {record_id} not found")
        self.record_id = record_id


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or did not answer in time."""


class ConcurrencyConflictError(StoreError):
    """A versioned write lost the race against another writer."""

    def __init__(self, collection: str, expected_version: int, actual_version: int | None = None) -> None:
        detail = f"expected version {expected_version}"
        if actual_version is not None:
            detail += f", found {actual_version}"
        super().__init__(collection, f"concurrent modification ({detail})")
        self.expected_version = expected_version
        self.actual_version = actual_version


class MaintenanceLockError(StoreError):
    """Another maintenance run holds the named lock."""


class CorruptRecordError(StoreError):
    """A stored record does not match its collection's model."""

    def __init__(self, collection: str, record_id: str, message: str) -> None:
        super().__init__(collection, f"record {record_id or '<no id>'} is malformed: {message}")
        self.record_id = record_id


class InvalidReferenceError(ProgressionError):
    """A record points at a user or course id that does not exist."""

    def __init__(
        self,
        collection: str,
        record_id: str,
        field: str,
        reference: str,
        record_name: str = "",
    ) -> None:
        super().__init__(f"{collection}/{record_id}: {field} references unknown id {reference}")
        self.collection = collection
        self.record_id = record_id
        self.field = field
        self.reference = reference
        self.record_name = record_name


class ActivePairingExistsError(ProgressionError):
    """The mentee already has an active mentorship pairing."""

    def __init__(self, mentee_id: str, pairing_id: str) -> None:
        super().__init__(f"Mentee {mentee_id} already has an active mentor (pairing {pairing_id})")
        self.mentee_id = mentee_id
        self.pairing_id = pairing_id