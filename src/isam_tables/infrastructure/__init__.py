"""Infrastructure layer - cross-cutting concerns."""

from isam_tables.infrastructure.config import Config, get_config
from isam_tables.infrastructure.logging import setup_logging, setup_logging_from_config, get_logger
from isam_tables.infrastructure.metrics import setup_metrics, get_metrics, MetricsRegistry
from isam_tables.infrastructure.tracing import (
    setup_tracing,
    setup_tracing_from_config,
    get_tracer,
    trace_span,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "setup_logging_from_config",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "setup_tracing_from_config",
    "get_tracer",
    "trace_span",
]
