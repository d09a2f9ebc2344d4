"""Object records repository for SQL persistence.

Implements the MetadataStore interface over SQLAlchemy Core. Each operation
runs in its own transaction; backend failures surface as MetadataStoreError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.exc import SQLAlchemyError

from blobindex.storage.errors import MetadataStoreError, NotFoundError
from blobindex.storage.metadata_store import MetadataStore
from blobindex.storage.models import ObjectRecord

if TYPE_CHECKING:
    from sqlalchemy import Engine, RowMapping

logger = logging.getLogger(__name__)

metadata = MetaData()

object_records_table = Table(
    "object_records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("path", String(1024), nullable=False, index=True),
    Column("original_filename", String(255), nullable=True),
    Column("content_type", String(255), nullable=True),
    Column("size", Integer, nullable=True),
    Column("owner_user_id", Integer, nullable=True, index=True),
    Column("publicity", Boolean, nullable=True),
)


def _row_to_record(row: RowMapping) -> ObjectRecord:
    return ObjectRecord.from_dict(dict(row))


def _record_values(record: ObjectRecord) -> dict[str, Any]:
    values = record.to_dict()
    values.pop("id")
    return values


class SqlMetadataStore(MetadataStore):
    """Metadata store backed by the ``object_records`` table."""

    def __init__(self, engine: Engine) -> None:
        """Initialize the store.

        Args:
            engine: SQLAlchemy engine (see ``blobindex.persistence.db.get_engine``).
        """
        self._engine = engine

    def ensure_schema(self) -> None:
        """Create the ``object_records`` table if it does not exist."""
        try:
            metadata.create_all(self._engine, tables=[object_records_table])
        except SQLAlchemyError as e:
            raise MetadataStoreError("Failed to create object_records schema", cause=e) from e
        logger.info("Ensured object_records schema")

    def insert(self, record: ObjectRecord) -> ObjectRecord:
        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    insert(object_records_table).values(**_record_values(record))
                )
                primary_key = result.inserted_primary_key
        except SQLAlchemyError as e:
            raise MetadataStoreError(
                "Failed to insert record", path=record.path, cause=e
            ) from e

        record_id = int(primary_key[0]) if primary_key is not None else None
        logger.debug("Inserted record: id=%s path=%s", record_id, record.path)
        return record.copy(id=record_id, payload=None)

    def update(self, record: ObjectRecord) -> ObjectRecord:
        if record.id is None:
            raise NotFoundError("Cannot update record without id", path=record.path)

        try:
            with self._engine.begin() as conn:
                result = conn.execute(
                    update(object_records_table)
                    .where(object_records_table.c.id == record.id)
                    .values(**_record_values(record))
                )
                matched = result.rowcount
        except SQLAlchemyError as e:
            raise MetadataStoreError(
                "Failed to update record", path=record.path, cause=e
            ) from e

        if matched == 0:
            raise NotFoundError(
                "Cannot update missing record", path=record.path, record_id=record.id
            )
        return record.copy(payload=None)

    def delete_by_id(self, record_id: int) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(
                    delete(object_records_table).where(object_records_table.c.id == record_id)
                )
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"Failed to delete record {record_id}", cause=e) from e

    def find_by_id(self, record_id: int) -> ObjectRecord | None:
        stmt = select(object_records_table).where(object_records_table.c.id == record_id)
        rows = self._fetch(stmt, "find_by_id")
        return rows[0] if rows else None

    def find_by_path(self, path: str) -> list[ObjectRecord]:
        stmt = (
            select(object_records_table)
            .where(object_records_table.c.path == path)
            .order_by(object_records_table.c.id)
        )
        return self._fetch(stmt, "find_by_path", path=path)

    def find_all_by_owner(self, owner_id: int) -> list[ObjectRecord]:
        stmt = (
            select(object_records_table)
            .where(object_records_table.c.owner_user_id == owner_id)
            .order_by(object_records_table.c.id)
        )
        return self._fetch(stmt, "find_all_by_owner")

    def _fetch(self, stmt: Any, operation: str, *, path: str | None = None) -> list[ObjectRecord]:
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            raise MetadataStoreError(
                f"Metadata query {operation} failed", path=path, cause=e
            ) from e
        return [_row_to_record(row) for row in rows]
