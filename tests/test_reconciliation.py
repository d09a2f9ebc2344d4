"""Tests for blob/metadata reconciliation.

Covers:
1. Adoption of orphan blobs (including blobs in the trash)
2. Reaping of records whose blob is gone
3. Healing failures are logged, not raised
4. The bounded read-after-write lookup
5. Batch reconciliation of an owner's records
"""

from __future__ import annotations

import logging

import pytest

from blobindex.storage.access import OwnershipPolicy
from blobindex.storage.blob_store import InMemoryBlobStore
from blobindex.storage.errors import AccessDeniedError, NotFoundError, StorageIOError
from blobindex.storage.markers import ExpiringMarkerSet
from blobindex.storage.metadata_store import InMemoryMetadataStore
from blobindex.storage.models import ObjectRecord, Principal
from blobindex.storage.reconciliation import ReconciliationEngine


@pytest.fixture
def engine(
    blob_store: InMemoryBlobStore, metadata_store: InMemoryMetadataStore
) -> ReconciliationEngine:
    return ReconciliationEngine(blob_store, metadata_store, OwnershipPolicy(), max_tries=3)


def _record(path: str) -> ObjectRecord:
    return ObjectRecord(
        path=path,
        original_filename=path.rsplit("/", 1)[-1],
        owner_user_id=int(path.split("/")[1]),
        publicity=False,
    )


class TestAdoption:
    """Tests for blob-only paths."""

    def test_orphan_blob_is_adopted(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
    ) -> None:
        """A blob without metadata gets exactly one non-public record."""
        blob_store.write_all("/7/photo.png", b"12345")

        assert engine.is_file_exist("/7/photo.png") is True

        records = metadata_store.find_by_path("/7/photo.png")
        assert len(records) == 1
        record = records[0]
        assert record.owner_user_id == 7
        assert record.original_filename == "photo.png"
        assert record.content_type == "image/png"
        assert record.size == 5
        assert record.publicity is False

    def test_adoption_is_not_repeated(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
    ) -> None:
        blob_store.write_all("/7/photo.png", b"x")
        engine.is_file_exist("/7/photo.png")
        engine.is_file_exist("/7/photo.png")
        assert len(metadata_store.find_by_path("/7/photo.png")) == 1

    def test_trash_blob_adopted_with_owner(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
    ) -> None:
        """Owners of trash paths are parsed after the trash root."""
        blob_store.write_all("/Trash/7/photo (1).png", b"x")
        assert engine.is_file_exist("/Trash/7/photo (1).png") is True
        record = metadata_store.find_by_path("/Trash/7/photo (1).png")[0]
        assert record.owner_user_id == 7

    def test_adopt_failure_is_logged_not_raised(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A malformed orphan path cannot be adopted; the check still answers."""
        blob_store.write_all("/misc/photo.png", b"x")
        with caplog.at_level(logging.WARNING, logger="blobindex.storage.reconciliation"):
            assert engine.is_file_exist("/misc/photo.png") is True
        assert metadata_store.find_by_path("/misc/photo.png") == []
        assert "Failed to adopt" in caplog.text


class TestReaping:
    """Tests for metadata-only paths."""

    def test_record_without_blob_is_reaped(
        self, engine: ReconciliationEngine, metadata_store: InMemoryMetadataStore
    ) -> None:
        metadata_store.insert(_record("/7/doc.pdf"))
        assert engine.is_file_exist("/7/doc.pdf") is False
        assert metadata_store.find_by_path("/7/doc.pdf") == []

    def test_reaper_callback_is_used(
        self, blob_store: InMemoryBlobStore, metadata_store: InMemoryMetadataStore
    ) -> None:
        """A custom reaper replaces the default metadata delete."""
        reaped: list[str] = []
        engine = ReconciliationEngine(
            blob_store,
            metadata_store,
            OwnershipPolicy(),
            reaper=lambda record: reaped.append(record.path),
        )
        metadata_store.insert(_record("/7/doc.pdf"))
        engine.is_file_exist("/7/doc.pdf")
        assert reaped == ["/7/doc.pdf"]

    def test_record_with_write_in_flight_is_not_reaped(
        self, blob_store: InMemoryBlobStore, metadata_store: InMemoryMetadataStore
    ) -> None:
        """A marked record may not have its blob yet."""
        markers = ExpiringMarkerSet(ttl=30)
        engine = ReconciliationEngine(
            blob_store, metadata_store, OwnershipPolicy(), markers=markers
        )
        stored = metadata_store.insert(_record("/7/doc.pdf"))
        markers.add(stored.marker_key)

        assert engine.is_file_exist("/7/doc.pdf") is False
        assert len(metadata_store.find_by_path("/7/doc.pdf")) == 1

    def test_consistent_path_untouched(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
    ) -> None:
        stored = metadata_store.insert(_record("/7/a.png"))
        blob_store.write_all("/7/a.png", b"x")
        assert engine.is_file_exist("/7/a.png") is True
        assert metadata_store.find_by_path("/7/a.png") == [stored]

    def test_neither_present(self, engine: ReconciliationEngine) -> None:
        assert engine.is_file_exist("/7/nothing.png") is False


class FailingExistsBlobStore(InMemoryBlobStore):
    """Blob store whose existence query fails."""

    def exists(self, path: str) -> bool:
        raise StorageIOError("backend unavailable", path=path)


class TestLookupWithRetry:
    """Tests for the bounded read-after-write lookup."""

    def test_hit_returns_record(
        self, engine: ReconciliationEngine, metadata_store: InMemoryMetadataStore
    ) -> None:
        stored = metadata_store.insert(_record("/7/a.png"))
        assert engine.lookup_by_path_with_retry("/7//a.png", Principal(user_id=7)) == stored

    def test_hit_checks_access(
        self, engine: ReconciliationEngine, metadata_store: InMemoryMetadataStore
    ) -> None:
        metadata_store.insert(_record("/7/a.png"))
        with pytest.raises(AccessDeniedError):
            engine.lookup_by_path_with_retry("/7/a.png", Principal(user_id=8))

    def test_miss_without_blob_returns_none(self, engine: ReconciliationEngine) -> None:
        assert engine.lookup_by_path_with_retry("/7/none.png", Principal(user_id=7)) is None

    def test_adopted_blob_found_on_retry(
        self, engine: ReconciliationEngine, blob_store: InMemoryBlobStore
    ) -> None:
        """The second attempt sees the record created by adoption."""
        blob_store.write_all("/7/a.png", b"x")
        record = engine.lookup_by_path_with_retry("/7/a.png", Principal(user_id=7))
        assert record is not None
        assert record.size == 1

    def test_bound_exhausted_raises_not_found(
        self, engine: ReconciliationEngine, blob_store: InMemoryBlobStore
    ) -> None:
        """Metadata that never appears surfaces NotFoundError after max_tries."""
        blob_store.write_all("/misc/a.png", b"x")
        with pytest.raises(NotFoundError) as exc_info:
            engine.lookup_by_path_with_retry("/misc/a.png", Principal(user_id=7))
        assert exc_info.value.path == "/misc/a.png"

    def test_store_failure_propagates(self, metadata_store: InMemoryMetadataStore) -> None:
        """Backend failures are not retried."""
        engine = ReconciliationEngine(
            FailingExistsBlobStore(), metadata_store, OwnershipPolicy()
        )
        with pytest.raises(StorageIOError):
            engine.lookup_by_path_with_retry("/7/a.png", Principal(user_id=7))

    def test_invalid_max_tries(
        self, blob_store: InMemoryBlobStore, metadata_store: InMemoryMetadataStore
    ) -> None:
        with pytest.raises(ValueError):
            ReconciliationEngine(blob_store, metadata_store, OwnershipPolicy(), max_tries=0)


class TestReconcileOwner:
    """Tests for batch reconciliation."""

    def test_reports_missing_blobs(
        self,
        engine: ReconciliationEngine,
        blob_store: InMemoryBlobStore,
        metadata_store: InMemoryMetadataStore,
    ) -> None:
        metadata_store.insert(_record("/7/kept.png"))
        blob_store.write_all("/7/kept.png", b"x")
        metadata_store.insert(_record("/7/gone.png"))
        metadata_store.insert(_record("/8/other.png"))

        report = engine.reconcile_owner(7)

        assert report.checked == 2
        assert report.missing == ("/7/gone.png",)
        assert [r.path for r in metadata_store.find_all_by_owner(7)] == ["/7/kept.png"]
        assert report.to_dict() == {"owner_id": 7, "checked": 2, "missing": ["/7/gone.png"]}
