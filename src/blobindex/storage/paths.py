"""Path helpers for the object index.

Object paths follow the convention ``/{owner_id}/{file_name}``. Every path is
normalized before it reaches a store; these helpers are pure and never touch
either backend.
"""

from __future__ import annotations

import logging
import mimetypes
import re

from blobindex.storage.errors import MalformedPathError

logger = logging.getLogger(__name__)

_REPEATED_SLASHES = re.compile(r"/+")


def normalize(path: str) -> str:
    """Normalize an object path.

    Converts backslashes to forward slashes, collapses repeated slashes,
    strips the trailing slash and ensures exactly one leading slash.
    Idempotent: ``normalize(normalize(p)) == normalize(p)``.
    """
    path = path.replace("\\", "/")
    path = _REPEATED_SLASHES.sub("/", path).rstrip("/")
    return path if path.startswith("/") else f"/{path}"


def build_path(owner_id: int, file_name: str) -> str:
    """Build the normalized path of ``file_name`` owned by ``owner_id``."""
    return normalize(f"/{owner_id}/{file_name}")


def file_name_from_path(path: str) -> str:
    """Return the last segment of ``path``."""
    return path.split("/")[-1]


def owner_id_from_path(path: str, *, root: str | None = None) -> int:
    """Parse the owner id from the first segment of ``path``.

    Args:
        path: Object path, e.g. ``/7/photo.png``.
        root: Optional prefix (such as the trash root) to strip first, so
            ``/Trash/7/photo.png`` resolves to owner 7.

    Raises:
        MalformedPathError: If the owner segment is absent or non-numeric.
    """
    normalized = normalize(path)
    if root:
        prefix = normalize(root)
        if prefix != "/" and normalized.startswith(f"{prefix}/"):
            normalized = normalized[len(prefix) :]

    segments = normalized.split("/")
    if len(segments) < 2 or not segments[1]:
        raise MalformedPathError(path=path)

    try:
        return int(segments[1])
    except ValueError as e:
        raise MalformedPathError(
            message=f"Owner segment is not numeric: {segments[1]!r}", path=path
        ) from e


def directory_of(path: str) -> str:
    """Return the directory part of ``path``.

    The last segment is treated as a file name only if it contains a dot;
    otherwise the whole path is considered a directory.
    """
    segments = path.split("/")
    if "." in segments[-1]:
        segments = segments[:-1]
    return "/".join(segments)


def parent_of(path: str) -> str:
    """Return the path without its last segment (``/`` for top-level entries)."""
    return path.rpartition("/")[0] or "/"


def content_type_from_name(name: str) -> str | None:
    """Best-effort content type sniff from a file name extension.

    Never raises; returns None when the type cannot be determined.
    """
    try:
        content_type, _encoding = mimetypes.guess_type(file_name_from_path(name), strict=False)
    except Exception as e:
        logger.debug("Content type detection failed for %s: %s", name, e)
        return None
    return content_type


def with_collision_suffix(path: str, count: int) -> str:
    """Insert ``" (count)"`` before the file extension of ``path``.

    ``/Trash/7/photo.png`` with count 1 becomes ``/Trash/7/photo (1).png``.
    Names without an extension get the suffix appended.
    """
    head, _, name = path.rpartition("/")
    stem, dot, extension = name.rpartition(".")
    if dot and stem:
        name = f"{stem} ({count}).{extension}"
    else:
        name = f"{name} ({count})"
    return f"{head}/{name}"
