"""Configuration for the blobindex object index.

All settings come from environment variables with safe defaults:
- Trash root for soft-deleted objects: "/Trash"
- Marker TTL for in-flight writes: 30 seconds
- Read-after-write lookup bound: 10 attempts

Environment Variables:
    BLOBINDEX_TRASH_ROOT: Root path for soft-deleted objects (default: /Trash)
    BLOBINDEX_MARKER_TTL_SECONDS: Seconds before a write marker expires (default: 30)
    BLOBINDEX_LOOKUP_MAX_TRIES: Max path lookups while metadata catches up (default: 10)
    BLOBINDEX_BLOB_BASE_DIR: Base directory for the filesystem blob store
    BLOBINDEX_DATABASE_URL: SQLAlchemy URL of the metadata database
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

logger = logging.getLogger(__name__)

ENV_TRASH_ROOT: Final[str] = "BLOBINDEX_TRASH_ROOT"
ENV_MARKER_TTL_SECONDS: Final[str] = "BLOBINDEX_MARKER_TTL_SECONDS"
ENV_LOOKUP_MAX_TRIES: Final[str] = "BLOBINDEX_LOOKUP_MAX_TRIES"
ENV_BLOB_BASE_DIR: Final[str] = "BLOBINDEX_BLOB_BASE_DIR"
ENV_DATABASE_URL: Final[str] = "BLOBINDEX_DATABASE_URL"

DEFAULT_TRASH_ROOT: Final[str] = "/Trash"
DEFAULT_MARKER_TTL_SECONDS: Final[int] = 30
DEFAULT_LOOKUP_MAX_TRIES: Final[int] = 10
DEFAULT_DATABASE_URL: Final[str] = "sqlite:///./var/blobindex/metadata.sqlite3"


class StorageConfigError(Exception):
    """Raised when storage configuration is invalid."""


@dataclass(frozen=True)
class StorageConfig:
    """Object index configuration (immutable).

    Attributes:
        trash_root: Normalized root path that deleted objects are moved under.
        marker_ttl_seconds: Lifetime of an in-flight write marker.
        lookup_max_tries: Bound on path lookups while a concurrent writer
            completes its metadata write.
        blob_base_dir: Base directory for the filesystem blob store (None: backend default).
        database_url: SQLAlchemy URL of the metadata database.
    """

    trash_root: str = DEFAULT_TRASH_ROOT
    marker_ttl_seconds: int = DEFAULT_MARKER_TTL_SECONDS
    lookup_max_tries: int = DEFAULT_LOOKUP_MAX_TRIES
    blob_base_dir: str | None = None
    database_url: str = DEFAULT_DATABASE_URL

    def __post_init__(self) -> None:
        """Validate configuration values."""
        from blobindex.storage.paths import normalize

        trash_root = normalize(self.trash_root)
        if trash_root == "/":
            raise StorageConfigError(f"{ENV_TRASH_ROOT} must not be the root path")
        if self.marker_ttl_seconds <= 0:
            raise StorageConfigError(
                f"{ENV_MARKER_TTL_SECONDS} must be a positive integer, "
                f"got {self.marker_ttl_seconds}"
            )
        if self.lookup_max_tries <= 0:
            raise StorageConfigError(
                f"{ENV_LOOKUP_MAX_TRIES} must be a positive integer, got {self.lookup_max_tries}"
            )
        if not self.database_url:
            raise StorageConfigError(f"{ENV_DATABASE_URL} must not be empty")
        object.__setattr__(self, "trash_root", trash_root)


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from environment variable.

    Args:
        env_var: Environment variable name.
        default: Default value if env var is not set.

    Returns:
        Parsed positive integer.

    Raises:
        StorageConfigError: If value is set but not a positive integer.
    """
    raw = os.environ.get(env_var)
    if raw is None:
        return default

    raw = raw.strip()
    if not raw:
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise StorageConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise StorageConfigError(f"{env_var} must be a positive integer, got {value}")

    return value


def _get_env_str(env_var: str, default: str | None = None) -> str | None:
    """Get a stripped string from environment variable, or the default when unset/blank."""
    raw = os.environ.get(env_var, "").strip()
    return raw or default


def load_storage_config() -> StorageConfig:
    """Load storage configuration from environment variables.

    Returns:
        StorageConfig with validated values.

    Raises:
        StorageConfigError: If any value is invalid.
    """
    config = StorageConfig(
        trash_root=_get_env_str(ENV_TRASH_ROOT) or DEFAULT_TRASH_ROOT,
        marker_ttl_seconds=_parse_positive_int(ENV_MARKER_TTL_SECONDS, DEFAULT_MARKER_TTL_SECONDS),
        lookup_max_tries=_parse_positive_int(ENV_LOOKUP_MAX_TRIES, DEFAULT_LOOKUP_MAX_TRIES),
        blob_base_dir=_get_env_str(ENV_BLOB_BASE_DIR),
        database_url=_get_env_str(ENV_DATABASE_URL) or DEFAULT_DATABASE_URL,
    )
    logger.debug(
        "Loaded storage config: trash_root=%s marker_ttl=%ss max_tries=%d",
        config.trash_root,
        config.marker_ttl_seconds,
        config.lookup_max_tries,
    )
    return config
