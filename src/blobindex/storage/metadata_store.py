"""blobindex MetadataStore interface definition.

Provides the MetadataStore interface the index core consumes, plus an
in-memory implementation for development and testing. A SQL implementation
lives in ``blobindex.persistence.repositories.object_records``.

Records handed out by a store are copies: callers may mutate them freely
without affecting stored state until they call ``update``.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod

from blobindex.storage.errors import NotFoundError
from blobindex.storage.models import ObjectRecord

logger = logging.getLogger(__name__)


class MetadataStore(ABC):
    """Abstract base class for metadata backends."""

    @abstractmethod
    def insert(self, record: ObjectRecord) -> ObjectRecord:
        """Persist a new record.

        Returns:
            A copy of the record carrying its store-assigned id.

        Raises:
            MetadataStoreError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def update(self, record: ObjectRecord) -> ObjectRecord:
        """Persist changes to an existing record (matched by id).

        Raises:
            NotFoundError: If no record has this id.
            MetadataStoreError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def delete_by_id(self, record_id: int) -> None:
        """Delete a record. Missing ids are ignored."""
        ...

    @abstractmethod
    def find_by_id(self, record_id: int) -> ObjectRecord | None:
        """Return the record with this id, or None."""
        ...

    @abstractmethod
    def find_by_path(self, path: str) -> list[ObjectRecord]:
        """Return all records stored under ``path``."""
        ...

    @abstractmethod
    def find_all_by_owner(self, owner_id: int) -> list[ObjectRecord]:
        """Return all records owned by ``owner_id``, ordered by id."""
        ...


class InMemoryMetadataStore(MetadataStore):
    """In-memory metadata store for testing and development.

    Thread-safe. Production should use SqlMetadataStore.
    """

    def __init__(self) -> None:
        self._records: dict[int, ObjectRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def insert(self, record: ObjectRecord) -> ObjectRecord:
        with self._lock:
            record_id = next(self._ids)
            stored = record.copy(id=record_id, payload=None)
            self._records[record_id] = stored
        logger.debug("Inserted record: id=%s path=%s", stored.id, stored.path)
        return stored.copy()

    def update(self, record: ObjectRecord) -> ObjectRecord:
        with self._lock:
            if record.id is None or record.id not in self._records:
                raise NotFoundError(
                    "Cannot update missing record", path=record.path, record_id=record.id
                )
            stored = record.copy(payload=None)
            self._records[record.id] = stored
        return stored.copy()

    def delete_by_id(self, record_id: int) -> None:
        with self._lock:
            self._records.pop(record_id, None)

    def find_by_id(self, record_id: int) -> ObjectRecord | None:
        with self._lock:
            stored = self._records.get(record_id)
            return stored.copy() if stored is not None else None

    def find_by_path(self, path: str) -> list[ObjectRecord]:
        with self._lock:
            return [r.copy() for r in self._records.values() if r.path == path]

    def find_all_by_owner(self, owner_id: int) -> list[ObjectRecord]:
        with self._lock:
            matches = [r.copy() for r in self._records.values() if r.owner_user_id == owner_id]
        return sorted(matches, key=lambda r: r.id or 0)

    def clear(self) -> None:
        """Remove all records. For testing only."""
        with self._lock:
            self._records.clear()
