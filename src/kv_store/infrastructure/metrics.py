"""Prometheus metrics for the key-value store."""

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
    """Registry of all key-value store metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Bulk operation metrics
        self.operations_total = Counter(
            "kv_operations_total",
            "Total number of bulk operations",
            ["operation", "status"],  # operation: write, read, delete; status: success, error
            registry=self._registry,
        )

        self.operation_latency_seconds = Histogram(
            "kv_operation_latency_seconds",
            "Bulk operation latency in seconds",
            ["operation"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        # Transaction metrics
        self.transactions_total = Counter(
            "kv_transactions_total",
            "Total number of transactions",
            ["mode", "status"],  # mode: read, write; status: commit, abort
            registry=self._registry,
        )

        self.transactions_active = Gauge(
            "kv_transactions_active",
            "Number of transactions currently running",
            registry=self._registry,
        )

        # Lock metrics
        self.write_lock_wait_seconds = Histogram(
            "kv_write_lock_wait_seconds",
            "Time spent waiting for a database writer lock",
            buckets=(0.0001, 0.001, 0.01, 0.1, 0.5, 1.0, 5.0, 10.0),
            registry=self._registry,
        )

        self.lock_timeouts_total = Counter(
            "kv_lock_timeouts_total",
            "Total writer lock waits that exceeded the configured bound",
            registry=self._registry,
        )

        # Storage metrics
        self.commit_bytes = Histogram(
            "kv_commit_bytes",
            "Size of the database image written per commit",
            buckets=(256, 1024, 4096, 16384, 65536, 262144, 1048576, 4194304),
            registry=self._registry,
        )

        self.databases_created_total = Counter(
            "kv_databases_created_total",
            "Total database files created",
            registry=self._registry,
        )

        # Server info
        self.info = Info(
            "kv_store",
            "Key-value store information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from kv_store import __version__
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
