"""OpenTelemetry tracing configuration for blobindex.

Installs the tracer provider that receives the ``blobindex.blob_store.*``
spans emitted by the blob-store backends.

Environment Variables:
    BLOBINDEX_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    BLOBINDEX_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    BLOBINDEX_OTEL_SERVICE_NAME: Service name for spans (default: "blobindex")
    BLOBINDEX_OTEL_RESOURCE_ATTRS: Comma-separated k=v pairs for resource attributes
    BLOBINDEX_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Security:
    - Span attributes carry path digests, never raw or absolute paths
    - Payload bytes are never exported
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_is_configured: bool = False
_test_exporter: InMemorySpanExporter | None = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and BLOBINDEX_REQUIRE_OTEL=1."""


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    return default


def _get_env_str(key: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default).strip()


def _parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse comma-separated k=v resource attributes."""
    result: dict[str, str] = {}
    for pair in attrs_str.split(","):
        pair = pair.strip()
        if "=" in pair:
            k, v = pair.split("=", 1)
            result[k.strip()] = v.strip()
    return result


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for blobindex.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If BLOBINDEX_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _is_configured, _test_exporter

    enabled = _get_env_bool("BLOBINDEX_OTEL_ENABLED")
    require_otel = _get_env_bool("BLOBINDEX_REQUIRE_OTEL")
    test_capture = _get_env_bool("BLOBINDEX_OTEL_TEST_CAPTURE")

    if not enabled:
        _is_configured = True
        logger.debug("OpenTelemetry tracing disabled (BLOBINDEX_OTEL_ENABLED not set)")
        return False

    # The global provider can only be set once; reuse the capture exporter.
    if _test_exporter is not None and test_capture:
        return True

    if _is_configured and _tracer_provider is not None:
        return True

    _is_configured = True

    try:
        service_name = _get_env_str("BLOBINDEX_OTEL_SERVICE_NAME", "blobindex")
        resource_attrs: dict[str, Any] = {"service.name": service_name}
        resource_attrs.update(_parse_resource_attrs(_get_env_str("BLOBINDEX_OTEL_RESOURCE_ATTRS")))

        provider = TracerProvider(resource=Resource.create(resource_attrs))

        if test_capture:
            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        else:
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider

        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            "in-memory" if test_capture else "console",
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if require_otel:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from in-memory exporter (for testing).

    Returns:
        List of captured spans if BLOBINDEX_OTEL_TEST_CAPTURE=1, else empty list.
    """
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Reset tracing configuration (for testing).

    Note: OpenTelemetry TracerProvider cannot be replaced once set.
    This clears captured spans but keeps the exporter so subsequent
    configure_tracing() calls keep capturing.
    """
    global _is_configured

    if _test_exporter is not None:
        _test_exporter.clear()
    _is_configured = False
