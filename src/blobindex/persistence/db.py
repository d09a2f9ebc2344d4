"""Database connectivity for the blobindex metadata store.

Provides a cached SQLAlchemy engine built from configuration.

Environment Variables:
    BLOBINDEX_DATABASE_URL: SQLAlchemy URL of the metadata database
        (default: sqlite:///./var/blobindex/metadata.sqlite3)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, make_url
from sqlalchemy.exc import ArgumentError

from blobindex.config import DEFAULT_DATABASE_URL, ENV_DATABASE_URL

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

_engine: Engine | None = None


class DatabaseConfigError(Exception):
    """Raised when the database URL is invalid."""


def _normalize_driver(url: str) -> str:
    """Rewrite the legacy ``postgres://`` scheme that SQLAlchemy rejects."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url() -> str:
    """Get the database URL from environment, falling back to a local SQLite file."""
    url = os.environ.get(ENV_DATABASE_URL, "").strip() or DEFAULT_DATABASE_URL
    return _normalize_driver(url)


def _engine_options(url: str) -> dict[str, Any]:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}

    database = parsed.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    return {"connect_args": {"check_same_thread": False}}


def get_engine(url: str | None = None) -> Engine:
    """Get or create the metadata database engine.

    Args:
        url: Database URL. If None, uses BLOBINDEX_DATABASE_URL.

    Returns:
        SQLAlchemy Engine. The first call caches the engine; later calls
        return it regardless of ``url`` until ``reset_engines()``.

    Raises:
        DatabaseConfigError: If the URL cannot be parsed.
    """
    global _engine

    if _engine is None:
        resolved = _normalize_driver(url) if url else get_database_url()
        try:
            _engine = create_engine(resolved, echo=False, **_engine_options(resolved))
        except ArgumentError as e:
            raise DatabaseConfigError(f"Invalid database URL: {e}") from e
        logger.info("Created metadata database engine: backend=%s", _engine.dialect.name)

    return _engine


def reset_engines() -> None:
    """Reset the global engine instance.

    Used for testing to ensure fresh engine creation.
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
