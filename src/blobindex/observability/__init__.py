"""blobindex Observability module.

Provides the OpenTelemetry tracing bootstrap for blob-store spans.
"""

from blobindex.observability.tracing import (
    TracingConfigError,
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    reset_tracing,
)

__all__ = [
    "TracingConfigError",
    "clear_test_spans",
    "configure_tracing",
    "get_test_spans",
    "reset_tracing",
]
