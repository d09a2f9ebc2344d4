"""Tests for storage configuration loading."""

from __future__ import annotations

import pytest

from blobindex.config import (
    DEFAULT_DATABASE_URL,
    StorageConfig,
    StorageConfigError,
    load_storage_config,
)
from blobindex.storage.paths import normalize


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self) -> None:
        config = load_storage_config()
        assert config.trash_root == "/Trash"
        assert config.marker_ttl_seconds == 30
        assert config.lookup_max_tries == 10
        assert config.blob_base_dir is None
        assert config.database_url == DEFAULT_DATABASE_URL

    def test_blank_values_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLOBINDEX_MARKER_TTL_SECONDS", "  ")
        monkeypatch.setenv("BLOBINDEX_TRASH_ROOT", "")
        config = load_storage_config()
        assert config.marker_ttl_seconds == 30
        assert config.trash_root == "/Trash"


class TestEnvironmentOverrides:
    """Tests for environment variable parsing."""

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLOBINDEX_TRASH_ROOT", "recycle//bin/")
        monkeypatch.setenv("BLOBINDEX_MARKER_TTL_SECONDS", "5")
        monkeypatch.setenv("BLOBINDEX_LOOKUP_MAX_TRIES", "3")
        monkeypatch.setenv("BLOBINDEX_BLOB_BASE_DIR", "/srv/blobs")
        monkeypatch.setenv("BLOBINDEX_DATABASE_URL", "sqlite:///:memory:")

        config = load_storage_config()

        assert config.trash_root == "/recycle/bin"
        assert config.marker_ttl_seconds == 5
        assert config.lookup_max_tries == 3
        assert config.blob_base_dir == "/srv/blobs"
        assert config.database_url == "sqlite:///:memory:"

    @pytest.mark.parametrize("value", ["abc", "0", "-4", "1.5"])
    def test_invalid_integers_rejected(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("BLOBINDEX_LOOKUP_MAX_TRIES", value)
        with pytest.raises(StorageConfigError, match="BLOBINDEX_LOOKUP_MAX_TRIES"):
            load_storage_config()


class TestValidation:
    """Tests for StorageConfig validation."""

    def test_root_trash_rejected(self) -> None:
        """Deleting into "/" would mix trash with live objects."""
        with pytest.raises(StorageConfigError):
            StorageConfig(trash_root="//")

    @pytest.mark.parametrize("raw", ["Trash", "\\\\Trash\\\\", "//recycle//bin/"])
    def test_trash_root_normalized_like_object_paths(self, raw: str) -> None:
        assert StorageConfig(trash_root=raw).trash_root == normalize(raw)

    def test_non_positive_ttl_rejected(self) -> None:
        with pytest.raises(StorageConfigError):
            StorageConfig(marker_ttl_seconds=0)

    def test_config_is_immutable(self) -> None:
        config = StorageConfig()
        with pytest.raises(AttributeError):
            config.trash_root = "/Other"  # type: ignore[misc]
