"""Observability module for Prometheus metrics."""

from chatsync.observability.metrics import (
    generate_metrics,
    get_metrics_registry,
    record_pass,
    start_metrics_server,
)

__all__ = [
    "generate_metrics",
    "get_metrics_registry",
    "record_pass",
    "start_metrics_server",
]
