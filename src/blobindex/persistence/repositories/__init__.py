"""Persistence repositories for blobindex.

Provides the SQL-backed metadata store.
"""

from blobindex.persistence.repositories.object_records import (
    SqlMetadataStore,
    object_records_table,
)

__all__ = [
    "SqlMetadataStore",
    "object_records_table",
]
