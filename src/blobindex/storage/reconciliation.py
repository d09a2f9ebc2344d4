"""Reconciliation between blob existence and metadata existence.

Every existence check doubles as a repair step:
- blob present, metadata missing: the blob is adopted (a non-public record is created)
- metadata present, blob missing: the record is reaped through the delete flow
- both present or both absent: nothing to do

Healing is best effort. Adopt/reap failures are logged and never abort the
request that triggered them; the next access retries the repair.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from blobindex.storage.access import AccessPolicy
from blobindex.storage.blob_store import BlobStore
from blobindex.storage.errors import NotFoundError, ObjectStorageError
from blobindex.storage.markers import ExpiringMarkerSet
from blobindex.storage.metadata_store import MetadataStore
from blobindex.storage.models import ObjectRecord, Principal
from blobindex.storage.paths import (
    content_type_from_name,
    file_name_from_path,
    normalize,
    owner_id_from_path,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TRIES = 10

Reaper = Callable[[ObjectRecord], object]


@dataclass(frozen=True)
class ReconcileReport:
    """Outcome of a batch reconciliation over one owner's records.

    Attributes:
        owner_id: Owner whose records were checked.
        checked: Number of records examined.
        missing: Paths whose blob was gone (reaped, or queued for the next access
            if reaping failed).
    """

    owner_id: int
    checked: int
    missing: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        """Convert the report to a dictionary."""
        return {"owner_id": self.owner_id, "checked": self.checked, "missing": list(self.missing)}


class ReconciliationEngine:
    """Detects and repairs divergence between the blob and metadata stores."""

    def __init__(
        self,
        blob_store: BlobStore,
        metadata_store: MetadataStore,
        access_policy: AccessPolicy,
        *,
        trash_root: str = "/Trash",
        max_tries: int = DEFAULT_MAX_TRIES,
        reaper: Reaper | None = None,
        markers: ExpiringMarkerSet | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            blob_store: Backend holding object bytes.
            metadata_store: Backend holding records.
            access_policy: Policy applied to path lookups.
            trash_root: Trash prefix, stripped when parsing owners of adopted blobs.
            max_tries: Bound on lookups while metadata catches up with a blob.
            reaper: Callback removing a record whose blob is gone. Defaults to
                deleting the metadata row.
            markers: In-flight write markers. Records with an active marker are
                never reaped, since their blob may not be written yet.
        """
        if max_tries <= 0:
            raise ValueError(f"max_tries must be positive, got {max_tries}")

        self._blobs = blob_store
        self._metadata = metadata_store
        self._access = access_policy
        self._trash_root = normalize(trash_root)
        self._max_tries = max_tries
        self._reaper = reaper
        self._markers = markers
        self._adopt_lock = threading.Lock()

    @property
    def max_tries(self) -> int:
        return self._max_tries

    def find_by_path(self, path: str) -> ObjectRecord | None:
        """Return the record stored exactly at ``path``, or None."""
        for record in self._metadata.find_by_path(path):
            if record.path == path:
                return record
        return None

    def is_file_exist(self, path: str) -> bool:
        """Return whether a blob exists at ``path``, healing any divergence.

        Raises:
            StorageIOError: If the blob store cannot answer the existence query.
            MetadataStoreError: If the metadata store cannot be queried.
        """
        path = normalize(path)
        blob_exists = self._blobs.exists(path)
        record = self.find_by_path(path)

        if blob_exists and record is None:
            try:
                self.adopt(path)
            except ObjectStorageError as e:
                logger.warning("Failed to adopt orphan blob: path=%s error=%s", path, e)
        elif not blob_exists and record is not None:
            if self._markers is not None and self._markers.contains(record.marker_key):
                logger.debug("Skipping reap of record with write in flight: path=%s", path)
            elif self._blobs.exists(path):
                # A writer finished between the blob check and the lookup.
                logger.debug("Blob appeared before reap, keeping record: path=%s", path)
                return True
            else:
                try:
                    self.reap(record)
                except ObjectStorageError as e:
                    logger.warning("Failed to reap orphan record: path=%s error=%s", path, e)

        return blob_exists

    def adopt(self, path: str) -> ObjectRecord:
        """Create a non-public record for a blob that has no metadata.

        Reads the blob to compute its size. Returns the existing record if one
        appeared concurrently.

        Raises:
            MalformedPathError: If the owner cannot be parsed from ``path``.
            StorageIOError: If the blob cannot be read.
        """
        path = normalize(path)
        owner_id = owner_id_from_path(path, root=self._trash_root)

        with self._adopt_lock:
            existing = self.find_by_path(path)
            if existing is not None:
                return existing

            data = self._blobs.read_all(path)
            record = ObjectRecord(
                path=path,
                original_filename=file_name_from_path(path),
                content_type=content_type_from_name(path),
                size=len(data),
                owner_user_id=owner_id,
                publicity=False,
            )
            stored = self._metadata.insert(record)

        logger.info(
            "Adopted orphan blob: path=%s id=%s owner=%d size=%d",
            path,
            stored.id,
            owner_id,
            len(data),
        )
        return stored

    def reap(self, record: ObjectRecord) -> None:
        """Remove a record whose blob no longer exists."""
        if self._reaper is not None:
            self._reaper(record)
        elif record.id is not None:
            self._metadata.delete_by_id(record.id)
        logger.info("Reaped record without blob: path=%s id=%s", record.path, record.id)

    def lookup_by_path_with_retry(
        self, path: str, principal: Principal | None
    ) -> ObjectRecord | None:
        """Resolve ``path`` to a record, waiting for a concurrent metadata write.

        A blob without metadata may belong to a writer that has not committed its
        row yet (or to an orphan being adopted), so the lookup is retried up to
        ``max_tries`` times. A principal of None skips the access check.

        Returns:
            The record, or None if neither metadata nor blob exist.

        Raises:
            AccessDeniedError: If the principal may not see the record.
            NotFoundError: If the blob exists but no record appeared in time.
        """
        path = normalize(path)

        for attempt in range(1, self._max_tries + 1):
            record = self.find_by_path(path)
            if record is not None:
                if principal is not None:
                    self._access.check(record, principal)
                return record

            if not self.is_file_exist(path):
                return None

            logger.debug(
                "Metadata missing for stored blob, retrying: path=%s attempt=%d/%d",
                path,
                attempt,
                self._max_tries,
            )

        raise NotFoundError(
            f"Metadata did not appear after {self._max_tries} attempts", path=path
        )

    def reconcile_owner(self, owner_id: int) -> ReconcileReport:
        """Run the existence check over every record of ``owner_id``."""
        records = self._metadata.find_all_by_owner(owner_id)
        missing = [record.path for record in records if not self.is_file_exist(record.path)]

        logger.info(
            "Reconciled owner records: owner=%d checked=%d missing=%d",
            owner_id,
            len(records),
            len(missing),
        )
        return ReconcileReport(owner_id=owner_id, checked=len(records), missing=tuple(missing))
