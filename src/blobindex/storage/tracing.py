"""OpenTelemetry tracing for blob-store operations.

Provides the decorator applied to every BlobStore backend method.

Security:
    - Never export absolute filesystem paths in span attributes
    - Object paths are exported only as a SHA256 digest
"""

from __future__ import annotations

import functools
import hashlib
import logging
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

BLOBINDEX_OTEL_ENABLED_ENV = "BLOBINDEX_OTEL_ENABLED"


def _is_otel_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return os.environ.get(BLOBINDEX_OTEL_ENABLED_ENV, "").strip().lower() in ("1", "true", "yes")


def path_digest(path: str) -> str:
    """Return the SHA256 hex digest used to correlate a path in spans."""
    return hashlib.sha256(path.encode("utf-8")).hexdigest()


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace blob-store operations with OpenTelemetry.

    The decorated method must take the object path as its first argument.

    Args:
        operation: Operation name (e.g., "exists", "read_all", "move").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, path: str, *args: Any, **kwargs: Any) -> Any:
            if not _is_otel_enabled():
                return func(self, path, *args, **kwargs)

            tracer = trace.get_tracer("blobindex.blob_store")
            with tracer.start_as_current_span(f"blobindex.blob_store.{operation}") as span:
                span.set_attribute("blobindex.object_path_sha256", path_digest(path))
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, path, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result, operation)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any, operation: str) -> None:
    """Add safe result attributes (existence flag, byte count) to a span."""
    if operation == "exists" and isinstance(result, bool):
        span.set_attribute("blobindex.object_exists", result)
    elif operation == "read_all" and isinstance(result, bytes):
        span.set_attribute("blobindex.object_size_bytes", len(result))
