"""Object storage orchestrator.

Composes the blob store, metadata store, access policy and reconciliation
engine into the public CRUD surface of the index:
- Writes are bracketed by an in-flight marker so concurrent reads skip the
  payload fetch instead of racing the writer
- A failed blob write after the metadata insert is compensated by deleting
  the inserted row
- Deletes are soft: the blob moves to ``{trash_root}/{owner}/{name}`` with a
  " (n)" suffix on collisions, then the metadata row is removed

No cross-store transactions are used. Divergence left behind by a crash is
healed on next access by the reconciliation engine.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import fields
from typing import Any, Final

from blobindex.config import StorageConfig, load_storage_config
from blobindex.storage.access import AccessPolicy, OwnershipPolicy, PublicVisibilityPolicy
from blobindex.storage.blob_store import BlobStore
from blobindex.storage.errors import (
    BadInputError,
    ConflictError,
    NotFoundError,
    ObjectStorageError,
)
from blobindex.storage.markers import ExpiringMarkerSet
from blobindex.storage.metadata_store import MetadataStore
from blobindex.storage.models import MarkerKey, ObjectRecord, Principal
from blobindex.storage.paths import (
    build_path,
    content_type_from_name,
    file_name_from_path,
    normalize,
    owner_id_from_path,
    parent_of,
    with_collision_suffix,
)
from blobindex.storage.reconciliation import ReconcileReport, ReconciliationEngine

logger = logging.getLogger(__name__)

READ_ONLY_FIELDS: Final[frozenset[str]] = frozenset({"id", "path", "size", "payload"})
PATCHABLE_FIELDS: Final[frozenset[str]] = frozenset(
    f.name for f in fields(ObjectRecord) if f.name not in READ_ONLY_FIELDS
)


class ObjectStorageOrchestrator:
    """Public CRUD surface over a blob store paired with a metadata index."""

    def __init__(
        self,
        blob_store: BlobStore,
        metadata_store: MetadataStore,
        access_policy: AccessPolicy | None = None,
        *,
        config: StorageConfig | None = None,
        markers: ExpiringMarkerSet | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            blob_store: Backend holding object bytes.
            metadata_store: Backend holding records.
            access_policy: Record-level policy. Defaults to public visibility
                layered over ownership.
            config: Storage configuration. If None, loads from environment.
            markers: In-flight write markers. Defaults to a set using the
                configured TTL.
        """
        if config is None:
            config = load_storage_config()

        self._config = config
        self._blobs = blob_store
        self._metadata = metadata_store
        self._access = (
            access_policy
            if access_policy is not None
            else PublicVisibilityPolicy(OwnershipPolicy())
        )
        self._markers = (
            markers if markers is not None else ExpiringMarkerSet(ttl=config.marker_ttl_seconds)
        )
        self._engine = ReconciliationEngine(
            blob_store,
            metadata_store,
            self._access,
            trash_root=config.trash_root,
            max_tries=config.lookup_max_tries,
            reaper=self._drop_record,
            markers=self._markers,
        )
        # Serializes existence check + claim of a path (create, rename).
        self._claim_lock = threading.Lock()
        # Serializes the trash collision probe with the move.
        self._trash_lock = threading.Lock()

    @property
    def config(self) -> StorageConfig:
        return self._config

    @property
    def engine(self) -> ReconciliationEngine:
        return self._engine

    @property
    def markers(self) -> ExpiringMarkerSet:
        return self._markers

    # --- Formatting ---

    def format_record(self, record: ObjectRecord) -> ObjectRecord:
        """Normalize the record path and re-derive its file name in place."""
        record.path = normalize(record.path)
        record.original_filename = file_name_from_path(record.path)
        return record

    def _assign_owner(self, record: ObjectRecord) -> None:
        """Set the owner from the path, rejecting a mismatching explicit owner."""
        owner_id = owner_id_from_path(record.path)
        if record.owner_user_id is not None and record.owner_user_id != owner_id:
            raise BadInputError(
                f"Owner {record.owner_user_id} does not match path owner {owner_id}",
                path=record.path,
            )
        record.owner_user_id = owner_id

    # --- Reads ---

    def get_by_id(self, record_id: int) -> ObjectRecord:
        """Return the record with ``record_id``.

        Raises:
            NotFoundError: If no such record exists.
        """
        record = self._metadata.find_by_id(record_id)
        if record is None:
            raise NotFoundError(record_id=record_id)
        return record

    def get_by_path(
        self,
        path: str,
        principal: Principal,
        *,
        include_payload: bool = True,
    ) -> ObjectRecord | None:
        """Resolve ``path`` to a visible record, optionally with its payload.

        Returns:
            The record, or None if neither blob nor metadata exist.

        Raises:
            AccessDeniedError: If the principal may not see the record.
            NotFoundError: If the blob vanished or metadata did not appear in time.
        """
        record = self._engine.lookup_by_path_with_retry(normalize(path), principal)
        if record is None or not include_payload:
            return record
        return self._attach_payload(record)

    def get_by_name(
        self,
        file_name: str,
        principal: Principal,
        *,
        include_payload: bool = True,
    ) -> ObjectRecord | None:
        """Resolve ``file_name`` within the principal's own namespace."""
        return self.get_by_path(
            build_path(principal.user_id, file_name), principal, include_payload=include_payload
        )

    def get_by_criteria(
        self,
        principal: Principal,
        *,
        record_id: int | None = None,
        path: str | None = None,
        file_name: str | None = None,
        include_payload: bool = True,
    ) -> ObjectRecord | None:
        """Resolve a record by id, then path, then name; the first hit wins."""
        if record_id is not None:
            record = self._metadata.find_by_id(record_id)
            if record is not None:
                self._access.check(record, principal)
                return self._attach_payload(record) if include_payload else record

        if path:
            record = self.get_by_path(path, principal, include_payload=include_payload)
            if record is not None:
                return record

        if file_name:
            return self.get_by_name(file_name, principal, include_payload=include_payload)

        return None

    def fetch_payload(self, record: ObjectRecord) -> bytes:
        """Read the raw bytes stored for ``record``."""
        return self._blobs.read_all(normalize(record.path))

    def _attach_payload(self, record: ObjectRecord) -> ObjectRecord:
        if self._markers.contains(record.marker_key):
            logger.debug("Write in flight, skipping payload fetch: path=%s", record.path)
            return record

        if not self._blobs.exists(record.path):
            logger.info("Blob missing for record, reaping: path=%s id=%s", record.path, record.id)
            self._engine.reap(record)
            raise NotFoundError("Blob missing for record", path=record.path, record_id=record.id)

        record.payload = self._blobs.read_all(record.path)
        return record

    def exists(self, path: str) -> bool:
        """Return whether a blob exists at ``path``, healing divergence."""
        return self._engine.is_file_exist(normalize(path))

    def exists_by_name(self, file_name: str, principal: Principal) -> bool:
        return self.exists(build_path(principal.user_id, file_name))

    def list_by_owner(self, owner_id: int) -> list[ObjectRecord]:
        """Return every record of ``owner_id`` ordered by id."""
        return self._metadata.find_all_by_owner(owner_id)

    def reconcile_owner(self, owner_id: int) -> ReconcileReport:
        """Run reconciliation over every record of ``owner_id``."""
        return self._engine.reconcile_owner(owner_id)

    # --- Writes ---

    def create(self, record: ObjectRecord) -> ObjectRecord:
        """Store a new object: metadata first, then the payload.

        Raises:
            BadInputError: If the payload is empty or the owner mismatches the path.
            ConflictError: If an object already exists at the path.
            MalformedPathError: If the path has no numeric owner segment.
            StorageIOError: If the blob write fails (after compensation).
        """
        record = self.format_record(record.copy())
        payload = record.payload
        if not payload:
            raise BadInputError("File is empty", path=record.path)
        self._assign_owner(record)

        record.size = len(payload)
        record.content_type = record.content_type or content_type_from_name(record.path)
        record.publicity = bool(record.publicity)

        key = record.marker_key
        with self._claim_lock:
            self._ensure_path_free(record.path)
            self._markers.add(key)
            try:
                stored = self._metadata.insert(record)
            except ObjectStorageError:
                self._markers.remove(key)
                raise

        try:
            self._blobs.ensure_directory(parent_of(record.path))
            self._blobs.write_all(record.path, payload)
        except ObjectStorageError:
            logger.warning(
                "Blob write failed, compensating metadata insert: path=%s id=%s",
                record.path,
                stored.id,
            )
            self._compensate_insert(stored)
            raise
        finally:
            self._markers.remove(key)

        stored.payload = payload
        logger.info("Created object: id=%s path=%s size=%d", stored.id, stored.path, len(payload))
        return stored

    def _compensate_insert(self, stored: ObjectRecord) -> None:
        if stored.id is None:
            return
        try:
            self._metadata.delete_by_id(stored.id)
        except ObjectStorageError as e:
            logger.error(
                "Compensation failed, record left for reconciliation: path=%s id=%s error=%s",
                stored.path,
                stored.id,
                e,
            )

    def replace(
        self,
        record_id: int,
        record: ObjectRecord,
        principal: Principal | None = None,
    ) -> ObjectRecord:
        """Overwrite the payload of an existing object in place.

        Raises:
            BadInputError: If the payload is empty or the path would change.
            NotFoundError: If the record or its blob does not exist.
            AccessDeniedError: If the principal may not change the record.
        """
        incoming = self.format_record(record.copy())
        payload = incoming.payload
        if not payload:
            raise BadInputError("File is empty", path=incoming.path)

        existing = self.get_by_id(record_id)
        if principal is not None:
            self._access.check(existing, principal, mutation=True)
        if incoming.path != existing.path:
            raise BadInputError(
                f"Path cannot change on replace (stored at {existing.path})", path=incoming.path
            )
        if not self.exists(existing.path):
            raise NotFoundError(path=existing.path, record_id=record_id)

        key = existing.marker_key
        self._markers.add(key)
        try:
            self._blobs.write_all(existing.path, payload)
            existing.size = len(payload)
            existing.content_type = content_type_from_name(existing.path) or existing.content_type
            if incoming.publicity is not None:
                existing.publicity = incoming.publicity
            stored = self._metadata.update(existing)
        finally:
            self._markers.remove(key)

        stored.payload = payload
        logger.info("Replaced object: id=%s path=%s size=%d", stored.id, stored.path, len(payload))
        return stored

    def patch(
        self,
        record_id: int,
        changes: Mapping[str, Any],
        principal: Principal,
    ) -> ObjectRecord:
        """Apply a partial update; a new ``original_filename`` renames the blob.

        Empty values (None or "") leave the stored field unchanged.

        Raises:
            BadInputError: On unknown or read-only fields, or a rename that
                changes the name-derived content type.
            ConflictError: If the rename target is occupied.
            NotFoundError: If the record does not exist.
            AccessDeniedError: If the principal may not change the record.
        """
        rejected = sorted(set(changes) - PATCHABLE_FIELDS)
        if rejected:
            raise BadInputError(f"Fields cannot be patched: {', '.join(rejected)}")

        original = self.get_by_id(record_id)
        self._access.check(original, principal, mutation=True)
        owner_id = (
            original.owner_user_id
            if original.owner_user_id is not None
            else owner_id_from_path(original.path)
        )

        new_name: str | None = None
        new_path: str | None = None
        if changes.get("original_filename"):
            new_name = file_name_from_path(normalize(str(changes["original_filename"])))
            new_path = build_path(owner_id, new_name)
            new_type = content_type_from_name(new_name)
            if new_type is not None and new_type != original.content_type:
                raise BadInputError("New type can't differ from old type", path=new_path)
            if new_path == original.path:
                new_path = None

        if new_path is None:
            key = original.marker_key
            self._markers.add(key)
            try:
                stored = self._apply_patch(original, changes, owner_id)
            finally:
                self._markers.remove(key)
        else:
            keys = (original.marker_key, MarkerKey(path=new_path, original_filename=new_name))
            with self._claim_lock:
                self._ensure_path_free(new_path)
                for key in keys:
                    self._markers.add(key)
                try:
                    stored = self._apply_patch(original, changes, owner_id, new_path)
                finally:
                    for key in keys:
                        self._markers.remove(key)

        logger.info("Patched object: id=%s path=%s", stored.id, stored.path)
        return stored

    def _apply_patch(
        self,
        record: ObjectRecord,
        changes: Mapping[str, Any],
        owner_id: int,
        new_path: str | None = None,
    ) -> ObjectRecord:
        old_path = record.path
        if new_path is not None:
            self._blobs.ensure_directory(parent_of(new_path))
            self._blobs.move(old_path, new_path)
            record.path = new_path
            record.original_filename = file_name_from_path(new_path)

        for name, value in changes.items():
            if name == "original_filename" or value is None or value == "":
                continue
            setattr(record, name, value)
        record.owner_user_id = owner_id

        try:
            return self._metadata.update(record)
        except ObjectStorageError:
            if new_path is not None:
                self._undo_move(new_path, old_path)
            raise

    def _ensure_path_free(self, path: str) -> None:
        """Raise ConflictError if a blob or a record (even one mid-write) holds ``path``."""
        if self.exists(path) or self._engine.find_by_path(path) is not None:
            raise ConflictError("File name already exists", path=path)

    def _undo_move(self, moved_to: str, moved_from: str) -> None:
        try:
            self._blobs.move(moved_to, moved_from)
        except ObjectStorageError as e:
            logger.error(
                "Failed to move blob back after metadata failure: %s -> %s error=%s",
                moved_to,
                moved_from,
                e,
            )
        else:
            logger.warning("Moved blob back after metadata failure: %s -> %s", moved_to, moved_from)

    def delete(self, record: ObjectRecord, principal: Principal | None = None) -> str | None:
        """Soft-delete ``record``: move its blob to the trash, then drop the row.

        Returns:
            The trash path the blob was moved to, or None if there was no blob.

        Raises:
            AccessDeniedError: If the principal may not change the record.
            StorageIOError: If the blob cannot be moved.
        """
        path = normalize(record.path)
        if principal is not None:
            self._access.check(record, principal, mutation=True)

        trash_path: str | None = None
        if self._blobs.exists(path):
            trash_path = self._move_to_trash(record, path)

        self._drop_record(record)

        logger.info("Deleted object: id=%s path=%s trash_path=%s", record.id, path, trash_path)
        return trash_path

    def _drop_record(self, record: ObjectRecord) -> None:
        # Metadata only: a reap must never move a blob that reappeared.
        if record.id is not None:
            self._metadata.delete_by_id(record.id)

    def delete_by_id(self, record_id: int, principal: Principal | None = None) -> str | None:
        """Soft-delete the record with ``record_id``."""
        return self.delete(self.get_by_id(record_id), principal)

    def _move_to_trash(self, record: ObjectRecord, path: str) -> str:
        owner_id = owner_id_from_path(path, root=self._config.trash_root)
        file_name = file_name_from_path(normalize(record.original_filename or path))
        destination = normalize(f"{self._config.trash_root}/{owner_id}/{file_name}")

        with self._trash_lock:
            self._blobs.ensure_directory(parent_of(destination))
            candidate = destination
            count = 0
            while self._blobs.exists(candidate):
                count += 1
                candidate = with_collision_suffix(destination, count)
            self._blobs.move(path, candidate)

        logger.info("Moved blob to trash: %s -> %s", path, candidate)
        return candidate

    def shutdown(self) -> None:
        """Release in-flight markers and stop accepting new ones."""
        self._markers.shutdown()
        logger.debug("Orchestrator shut down")
