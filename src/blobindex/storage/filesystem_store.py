"""blobindex filesystem BlobStore backend.

Stores each object at ``{base_dir}{path}``, so ``/7/photo.png`` lands in
``{base_dir}/7/photo.png`` and trash moves are plain renames. Provides:
- Path traversal protection
- Atomic writes via temp file + rename

Environment Variables:
    BLOBINDEX_BLOB_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / blobindex_objects)
"""

from __future__ import annotations

import logging
import os
import tempfile
import uuid
from pathlib import Path

from blobindex.storage.blob_store import BlobStore
from blobindex.storage.errors import PathTraversalError, StorageIOError
from blobindex.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BLOBINDEX_BLOB_BASE_DIR_ENV = "BLOBINDEX_BLOB_BASE_DIR"
DEFAULT_BASE_DIR_NAME = "blobindex_objects"

_TMP_SUFFIX = ".tmp"


def _is_path_traversal(path: str) -> bool:
    """Check if a logical path could escape the storage root.

    Detects:
    - Paths that are not absolute within the store
    - "." and ".." segments
    - Backslashes (Windows path separators)
    - Null bytes and other control characters
    """
    if not path.startswith("/"):
        return True

    if "\\" in path:
        return True

    if any(ord(ch) < 32 for ch in path):
        return True

    segments = path.split("/")[1:]
    return any(segment in (".", "..") for segment in segments)


class FilesystemBlobStore(BlobStore):
    """Filesystem-based blob storage implementation."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                BLOBINDEX_BLOB_BASE_DIR env var or OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(BLOBINDEX_BLOB_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / DEFAULT_BASE_DIR_NAME
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        logger.debug("FilesystemBlobStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _resolve(self, path: str) -> Path:
        """Map a logical path to a filesystem path inside the base directory."""
        if _is_path_traversal(path):
            raise PathTraversalError(path=path)

        resolved = (self._base_dir / path.lstrip("/")).resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory", path=path
            ) from e
        return resolved

    @traced_storage_operation("exists")
    def exists(self, path: str) -> bool:
        """Return True if a regular file is stored at ``path``."""
        return self._resolve(path).is_file()

    @traced_storage_operation("read_all")
    def read_all(self, path: str) -> bytes:
        """Read the object stored at ``path``."""
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to read object: {e.strerror or e}", path=path, cause=e
            ) from e

    @traced_storage_operation("write_all")
    def write_all(self, path: str, data: bytes) -> None:
        """Write ``data`` to ``path`` atomically."""
        target = self._resolve(path)
        tmp_file = target.with_name(f".{target.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_bytes(data)
            tmp_file.replace(target)
        except OSError as e:
            tmp_file.unlink(missing_ok=True)
            raise StorageIOError(
                message=f"Failed to write object: {e.strerror or e}", path=path, cause=e
            ) from e

        logger.debug("Stored blob: path=%s size=%d", path, len(data))

    @traced_storage_operation("move")
    def move(self, path: str, new_path: str) -> None:
        """Rename the object at ``path`` to ``new_path``."""
        source = self._resolve(path)
        target = self._resolve(new_path)

        if not source.is_file():
            raise StorageIOError(message="Cannot move missing object", path=path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            source.replace(target)
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to move object to {new_path}: {e.strerror or e}",
                path=path,
                cause=e,
            ) from e

        logger.debug("Moved blob: %s -> %s", path, new_path)

    @traced_storage_operation("ensure_directory")
    def ensure_directory(self, path: str) -> None:
        """Create the directory at ``path`` (and its parents) if it does not exist."""
        directory = self._resolve(path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to create directory: {e.strerror or e}", path=path, cause=e
            ) from e
