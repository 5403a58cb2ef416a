"""Prometheus metrics for the table access layer."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all table access layer metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Table operation metrics
        self.table_operations_total = Counter(
            "isam_table_operations_total",
            "Total number of table operations",
            ["operation", "status"],  # status: success, error
            registry=self._registry,
        )

        self.operation_latency_seconds = Histogram(
            "isam_operation_latency_seconds",
            "Table operation latency in seconds",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self._registry,
        )

        self.rows_scanned_total = Counter(
            "isam_rows_scanned_total",
            "Rows produced by row enumeration",
            ["access_path"],  # index, scan
            registry=self._registry,
        )

        # Transaction metrics
        self.transactions_total = Counter(
            "isam_transactions_total",
            "Total number of finished transactions",
            ["outcome"],  # committed, rolled_back
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "isam_transactions_active",
            "Number of active transactions",
            registry=self._registry,
        )

        # Connection metrics
        self.connections_active = Gauge(
            "isam_connections_active",
            "Number of open connections",
            registry=self._registry,
        )

        self.info = Info(
            "isam_tables",
            "Table access layer information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up the Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from isam_tables import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
