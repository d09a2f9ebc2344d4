"""blobindex storage error types.

Provides typed exceptions for index and blob-store operations. Validation
errors are raised before any store is mutated; backend failures are surfaced
as-is without retry.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        path: Normalized object path associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)


class BadInputError(ObjectStorageError):
    """Raised when a request is invalid (empty payload, illegal type change, bad field)."""

    def __init__(self, message: str = "Bad input", *, path: str | None = None) -> None:
        super().__init__(message, path=path)


class ConflictError(ObjectStorageError):
    """Raised when the target path is already occupied by another object."""

    def __init__(
        self, message: str = "Object already exists at path", *, path: str | None = None
    ) -> None:
        super().__init__(message, path=path)


class NotFoundError(ObjectStorageError):
    """Raised when an id, path or name cannot be resolved.

    For path lookups this is raised only after the read-after-write retry
    bound is exhausted.
    """

    def __init__(
        self,
        message: str = "Object not found",
        *,
        path: str | None = None,
        record_id: int | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.record_id = record_id

    def __str__(self) -> str:
        text = super().__str__()
        if self.record_id is not None:
            text = f"{text} id={self.record_id}"
        return text


class MalformedPathError(ObjectStorageError):
    """Raised when a path does not carry a numeric owner segment."""

    def __init__(
        self, message: str = "Path has no owner segment", *, path: str | None = None
    ) -> None:
        super().__init__(message, path=path)


class AccessDeniedError(ObjectStorageError):
    """Raised when the access policy denies an operation on a record.

    Attributes:
        code: Machine-readable decision code from the access policy.
    """

    def __init__(
        self,
        message: str = "Access denied",
        *,
        path: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.code = code


class PathTraversalError(ObjectStorageError):
    """Raised when a path would escape the blob store root.

    Rejects ".." segments, null bytes and other unsafe characters before the
    path reaches the filesystem.
    """

    def __init__(
        self, message: str = "Invalid path: traversal detected", *, path: str | None = None
    ) -> None:
        super().__init__(message, path=path)


class StorageIOError(ObjectStorageError):
    """Raised when the blob backend cannot complete an operation.

    Indicates the backend itself failed (missing source, permission denied,
    disk full) rather than a logical error in the request.
    """

    def __init__(
        self,
        message: str = "Blob storage I/O error",
        *,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.cause = cause


class MetadataStoreError(ObjectStorageError):
    """Raised when the metadata backend cannot complete an operation."""

    def __init__(
        self,
        message: str = "Metadata store error",
        *,
        path: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.cause = cause
