"""Pytest configuration and fixtures for blobindex tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from blobindex.config import StorageConfig
from blobindex.storage.blob_store import InMemoryBlobStore
from blobindex.storage.metadata_store import InMemoryMetadataStore
from blobindex.storage.models import Principal
from blobindex.storage.orchestrator import ObjectStorageOrchestrator

BLOBINDEX_ENV_VARS = (
    "BLOBINDEX_TRASH_ROOT",
    "BLOBINDEX_MARKER_TTL_SECONDS",
    "BLOBINDEX_LOOKUP_MAX_TRIES",
    "BLOBINDEX_BLOB_BASE_DIR",
    "BLOBINDEX_DATABASE_URL",
)


@pytest.fixture(autouse=True)
def clear_blobindex_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test from default configuration.

    Tests that need a specific value set it with monkeypatch.
    """
    for name in BLOBINDEX_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def metadata_store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def orchestrator(
    blob_store: InMemoryBlobStore, metadata_store: InMemoryMetadataStore
) -> Iterator[ObjectStorageOrchestrator]:
    """Orchestrator over in-memory stores with default configuration."""
    orch = ObjectStorageOrchestrator(blob_store, metadata_store, config=StorageConfig())
    yield orch
    orch.shutdown()


@pytest.fixture
def owner() -> Principal:
    """Principal owning the /7 namespace."""
    return Principal(user_id=7)


@pytest.fixture
def stranger() -> Principal:
    """Principal with no rights over /7."""
    return Principal(user_id=8)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id=1, permissions=frozenset({"ADMIN"}))
