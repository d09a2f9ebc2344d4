"""blobindex Persistence Module.

Provides database engine creation for the SQL metadata store.
"""

from blobindex.persistence.db import (
    DatabaseConfigError,
    get_database_url,
    get_engine,
    reset_engines,
)

__all__ = [
    "DatabaseConfigError",
    "get_database_url",
    "get_engine",
    "reset_engines",
]
