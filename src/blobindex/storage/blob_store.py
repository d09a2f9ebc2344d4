"""blobindex BlobStore interface definition.

Provides the BlobStore interface the index core consumes, plus an in-memory
backend for development and testing. Paths passed to a BlobStore are already
normalized by the caller.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

from blobindex.storage.errors import StorageIOError
from blobindex.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Abstract base class for blob storage backends.

    Implementations:
    - InMemoryBlobStore: process-local dict (dev/test)
    - FilesystemBlobStore: local filesystem
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "filesystem")."""
        ...

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if an object is stored at ``path``.

        Raises:
            StorageIOError: If the backend cannot answer.
        """
        ...

    @abstractmethod
    def read_all(self, path: str) -> bytes:
        """Read the full content stored at ``path``.

        Raises:
            StorageIOError: If the object is missing or cannot be read.
        """
        ...

    @abstractmethod
    def write_all(self, path: str, data: bytes) -> None:
        """Store ``data`` at ``path``, replacing any existing content.

        Raises:
            StorageIOError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def move(self, path: str, new_path: str) -> None:
        """Move the object at ``path`` to ``new_path``.

        Raises:
            StorageIOError: If the source is missing or the move fails.
        """
        ...

    @abstractmethod
    def ensure_directory(self, path: str) -> None:
        """Make sure the directory at ``path`` exists, creating parents as needed.

        Backends without real directories may treat this as a no-op.

        Raises:
            StorageIOError: If the directory cannot be created.
        """
        ...


class InMemoryBlobStore(BlobStore):
    """In-memory blob store for testing and development.

    Thread-safe. Production should use a durable backend.
    """

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    @traced_storage_operation("exists")
    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._objects

    @traced_storage_operation("read_all")
    def read_all(self, path: str) -> bytes:
        with self._lock:
            data = self._objects.get(path)
        if data is None:
            raise StorageIOError("Object not found in blob store", path=path)
        return data

    @traced_storage_operation("write_all")
    def write_all(self, path: str, data: bytes) -> None:
        with self._lock:
            self._objects[path] = bytes(data)
        logger.debug("Stored blob: path=%s size=%d", path, len(data))

    @traced_storage_operation("move")
    def move(self, path: str, new_path: str) -> None:
        with self._lock:
            if path not in self._objects:
                raise StorageIOError("Cannot move missing object", path=path)
            self._objects[new_path] = self._objects.pop(path)
        logger.debug("Moved blob: %s -> %s", path, new_path)

    @traced_storage_operation("ensure_directory")
    def ensure_directory(self, path: str) -> None:
        return None

    def delete(self, path: str) -> None:
        """Remove a blob out-of-band. For testing only."""
        with self._lock:
            self._objects.pop(path, None)

    def clear(self) -> None:
        """Remove all blobs. For testing only."""
        with self._lock:
            self._objects.clear()
