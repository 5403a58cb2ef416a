"""OpenTelemetry tracing for database-level operations.

Spans are opened around database creation, table creation and transaction
commit/rollback. Without ``setup_tracing`` they go to whatever tracer
provider the host application installed (a no-op one by default).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from isam_tables.infrastructure.config import ObservabilityConfig

INSTRUMENTATION_NAME = "isam_tables"

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = INSTRUMENTATION_NAME,
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider for this process.

    Args:
        service_name: Service name reported on every span
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317")
        console_export: Also print finished spans to stdout

    Returns:
        The tracer used by trace_span
    """
    global _tracer

    from isam_tables import __version__

    provider = TracerProvider(
        resource=Resource.create({"service.name": service_name, "service.version": __version__})
    )
    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = provider.get_tracer(INSTRUMENTATION_NAME, __version__)
    return _tracer


def setup_tracing_from_config(config: ObservabilityConfig) -> trace.Tracer:
    """Install tracing from the observability section of the configuration."""
    return setup_tracing(
        service_name=config.otel_service_name,
        otlp_endpoint=config.otel_endpoint,
    )


def get_tracer() -> trace.Tracer:
    """Return the tracer from setup_tracing, or one from the global provider."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(INSTRUMENTATION_NAME)
    return _tracer


@contextmanager
def trace_span(name: str, attributes: dict[str, Any] | None = None) -> Iterator[trace.Span]:
    """
    Run the block inside a span.

    Exceptions mark the span as failed before they propagate.

    Args:
        name: Span name, e.g. "isam.transaction.commit"
        attributes: Attributes set when the span starts

    Yields:
        The active span
    """
    with get_tracer().start_as_current_span(name, attributes=attributes) as span:
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise
