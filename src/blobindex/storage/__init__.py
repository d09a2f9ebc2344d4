"""blobindex Object Storage Core.

Pairs every object in a blob store with a metadata record and keeps the two
reconciled under concurrent create/read/update/delete traffic.

Backends:
- InMemoryBlobStore: process-local dict (dev/test)
- FilesystemBlobStore: local filesystem
- InMemoryMetadataStore / SqlMetadataStore: metadata index

Environment Variables:
    BLOBINDEX_BLOB_BASE_DIR: Base directory for the filesystem backend
        (default: OS temp dir / blobindex_objects)
"""

from blobindex.storage.access import (
    AccessDecision,
    AccessDecisionCode,
    AccessPolicy,
    OwnershipPolicy,
    PublicVisibilityPolicy,
)
from blobindex.storage.blob_store import BlobStore, InMemoryBlobStore
from blobindex.storage.errors import (
    AccessDeniedError,
    BadInputError,
    ConflictError,
    MalformedPathError,
    MetadataStoreError,
    NotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageIOError,
)
from blobindex.storage.filesystem_store import FilesystemBlobStore
from blobindex.storage.markers import ExpiringMarkerSet
from blobindex.storage.metadata_store import InMemoryMetadataStore, MetadataStore
from blobindex.storage.models import MarkerKey, ObjectRecord, Principal
from blobindex.storage.orchestrator import ObjectStorageOrchestrator
from blobindex.storage.reconciliation import ReconcileReport, ReconciliationEngine

__all__ = [
    "AccessDecision",
    "AccessDecisionCode",
    "AccessDeniedError",
    "AccessPolicy",
    "BadInputError",
    "BlobStore",
    "ConflictError",
    "ExpiringMarkerSet",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "InMemoryMetadataStore",
    "MalformedPathError",
    "MarkerKey",
    "MetadataStore",
    "MetadataStoreError",
    "NotFoundError",
    "ObjectRecord",
    "ObjectStorageError",
    "ObjectStorageOrchestrator",
    "OwnershipPolicy",
    "PathTraversalError",
    "Principal",
    "PublicVisibilityPolicy",
    "ReconcileReport",
    "ReconciliationEngine",
    "StorageIOError",
]
