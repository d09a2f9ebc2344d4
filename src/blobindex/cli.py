"""blobindex CLI - Deterministic command-line interface over the object index.

Usage:
    python -m blobindex exists PATH
    python -m blobindex get PATH --user N [--payload]
    python -m blobindex list --owner N
    python -m blobindex reconcile --owner N
    python -m blobindex delete --id N --user N

Uses a filesystem blob store rooted at BLOBINDEX_BLOB_BASE_DIR and a SQL
metadata store at BLOBINDEX_DATABASE_URL.

Exit codes:
    0: Success
    1: Storage error (not found, access denied, backend failure) / Internal error
    2: Usage error
"""

from __future__ import annotations

import argparse
import base64
import json
import logging
import sys
from typing import Any

from blobindex.config import StorageConfig, StorageConfigError, load_storage_config
from blobindex.observability.tracing import configure_tracing
from blobindex.persistence.db import DatabaseConfigError, get_engine
from blobindex.persistence.repositories.object_records import SqlMetadataStore
from blobindex.storage.errors import AccessDeniedError, ObjectStorageError
from blobindex.storage.filesystem_store import FilesystemBlobStore
from blobindex.storage.models import ObjectRecord, Principal
from blobindex.storage.orchestrator import ObjectStorageOrchestrator

logger = logging.getLogger(__name__)


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _make_error_result(code: str, message: str, path: str | None = None) -> dict[str, Any]:
    return {"error": {"code": code, "message": message, "path": path}, "ok": False}


def _record_to_dict(record: ObjectRecord, *, include_payload: bool = False) -> dict[str, Any]:
    data = record.to_dict()
    if include_payload:
        data["payload_base64"] = (
            base64.b64encode(record.payload).decode("ascii") if record.payload is not None else None
        )
    return data


def build_orchestrator(config: StorageConfig) -> ObjectStorageOrchestrator:
    """Wire the filesystem blob store and SQL metadata store from ``config``."""
    metadata_store = SqlMetadataStore(get_engine(config.database_url))
    metadata_store.ensure_schema()
    return ObjectStorageOrchestrator(
        FilesystemBlobStore(config.blob_base_dir),
        metadata_store,
        config=config,
    )


def cmd_exists(orchestrator: ObjectStorageOrchestrator, args: argparse.Namespace) -> int:
    """Run the reconciling existence check for a path."""
    _output_json({"exists": orchestrator.exists(args.path), "ok": True, "path": args.path})
    return 0


def cmd_get(orchestrator: ObjectStorageOrchestrator, args: argparse.Namespace) -> int:
    """Fetch a record (and optionally its payload) as the given user."""
    principal = Principal(user_id=args.user)
    record = orchestrator.get_by_path(args.path, principal, include_payload=args.payload)
    if record is None:
        _output_json(_make_error_result("NotFoundError", "Object not found", args.path))
        return 1
    _output_json({"ok": True, "record": _record_to_dict(record, include_payload=args.payload)})
    return 0


def cmd_list(orchestrator: ObjectStorageOrchestrator, args: argparse.Namespace) -> int:
    records = orchestrator.list_by_owner(args.owner)
    _output_json({"ok": True, "records": [_record_to_dict(r) for r in records]})
    return 0


def cmd_reconcile(orchestrator: ObjectStorageOrchestrator, args: argparse.Namespace) -> int:
    report = orchestrator.reconcile_owner(args.owner)
    _output_json({"ok": True, "report": report.to_dict()})
    return 0


def cmd_delete(orchestrator: ObjectStorageOrchestrator, args: argparse.Namespace) -> int:
    """Soft-delete a record into the trash as the given user."""
    trash_path = orchestrator.delete_by_id(args.id, Principal(user_id=args.user))
    _output_json({"id": args.id, "ok": True, "trash_path": trash_path})
    return 0


COMMAND_DISPATCH = {
    "exists": cmd_exists,
    "get": cmd_get,
    "list": cmd_list,
    "reconcile": cmd_reconcile,
    "delete": cmd_delete,
}


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="blobindex",
        description="blobindex - reconciled metadata index over a blob store",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level written to stderr (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    exists_parser = subparsers.add_parser("exists", help="Check (and heal) an object path")
    exists_parser.add_argument("path", help="Object path, e.g. /7/photo.png")

    get_parser = subparsers.add_parser("get", help="Fetch an object record by path")
    get_parser.add_argument("path", help="Object path, e.g. /7/photo.png")
    get_parser.add_argument("--user", type=int, required=True, help="Requesting user id")
    get_parser.add_argument(
        "--payload",
        action="store_true",
        default=False,
        help="Include the payload as base64",
    )

    list_parser = subparsers.add_parser("list", help="List an owner's records")
    list_parser.add_argument("--owner", type=int, required=True, help="Owner user id")

    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Reconcile every record of an owner"
    )
    reconcile_parser.add_argument("--owner", type=int, required=True, help="Owner user id")

    delete_parser = subparsers.add_parser("delete", help="Move an object to the trash")
    delete_parser.add_argument("--id", type=int, required=True, help="Record id")
    delete_parser.add_argument("--user", type=int, required=True, help="Requesting user id")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Storage error / Internal error
        2: Usage error
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2

    logging.basicConfig(level=args.log_level, stream=sys.stderr)
    configure_tracing()

    try:
        orchestrator = build_orchestrator(load_storage_config())
    except (StorageConfigError, DatabaseConfigError) as e:
        _output_json(_make_error_result("CONFIG_ERROR", str(e)))
        return 1

    try:
        return COMMAND_DISPATCH[args.command](orchestrator, args)
    except AccessDeniedError as e:
        _output_json(_make_error_result(e.code or type(e).__name__, e.message, e.path))
        return 1
    except ObjectStorageError as e:
        _output_json(_make_error_result(type(e).__name__, e.message, e.path))
        return 1
    except Exception as e:
        # Fail-closed: unexpected errors return exit code 1
        logger.exception("Unexpected error in command %s", args.command)
        _output_json(_make_error_result("INTERNAL_ERROR", str(e)))
        return 1
    finally:
        orchestrator.shutdown()


if __name__ == "__main__":
    sys.exit(main())
