"""blobindex data models.

Provides the metadata record kept in the index, the marker key used to
bracket in-flight writes, and the requesting principal.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, NamedTuple


@dataclass
class ObjectRecord:
    """Metadata for an object kept in the blob store.

    Attributes:
        path: Normalized object path, ``/{owner_id}/{file_name}``.
        original_filename: Last segment of the path.
        content_type: MIME type derived from the file extension.
        size: Payload length in bytes, authoritative only at write time.
        owner_user_id: Owner id parsed from the first path segment.
        publicity: True grants read access to any principal.
        id: Identifier assigned by the metadata store.
        payload: Object bytes; transient, never persisted in the metadata store.
    """

    path: str
    original_filename: str | None = None
    content_type: str | None = None
    size: int | None = None
    owner_user_id: int | None = None
    publicity: bool | None = None
    id: int | None = None
    payload: bytes | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to a dictionary, without the payload."""
        return {
            "id": self.id,
            "path": self.path,
            "original_filename": self.original_filename,
            "content_type": self.content_type,
            "size": self.size,
            "owner_user_id": self.owner_user_id,
            "publicity": self.publicity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectRecord:
        """Create a record from a dictionary (e.g. a database row mapping)."""
        size_raw = data.get("size")
        owner_raw = data.get("owner_user_id")
        id_raw = data.get("id")
        publicity_raw = data.get("publicity")

        return cls(
            id=int(id_raw) if id_raw is not None else None,
            path=str(data["path"]),
            original_filename=data.get("original_filename"),
            content_type=data.get("content_type"),
            size=int(size_raw) if size_raw is not None else None,
            owner_user_id=int(owner_raw) if owner_raw is not None else None,
            publicity=bool(publicity_raw) if publicity_raw is not None else None,
        )

    def copy(self, **changes: Any) -> ObjectRecord:
        """Return a shallow copy with ``changes`` applied."""
        return dataclasses.replace(self, **changes)

    @property
    def marker_key(self) -> MarkerKey:
        """Key identifying an in-flight write of this record."""
        return MarkerKey(path=self.path, original_filename=self.original_filename)


class MarkerKey(NamedTuple):
    """Key under which a record's write window is marked.

    Built from the normalized path and file name only, so the key is stable
    while other fields of the record change during the write.
    """

    path: str
    original_filename: str | None


@dataclass(frozen=True, slots=True)
class Principal:
    """The user on whose behalf an operation runs.

    Attributes:
        user_id: Id of the requesting user.
        permissions: Granted permissions (e.g. "ADMIN" overrides ownership).
    """

    user_id: int
    permissions: frozenset[str] = frozenset()
