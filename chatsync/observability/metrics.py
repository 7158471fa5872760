"""Prometheus metrics for the sync service.

Metrics exposed:
    - chatsync_passes_total: Completed sync passes
    - chatsync_users_total: Users handled per pass by outcome (processed, skipped, error)
    - chatsync_sessions_synced_total: Sessions upserted into MongoDB
    - chatsync_messages_synced_total: Messages contained in upserted sessions
    - chatsync_failed_writes_total: Session upserts that failed
    - chatsync_bytes_total: Serialized bytes before and after minimization
    - chatsync_pass_duration_seconds: Wall time of a pass
    - chatsync_last_pass_timestamp_seconds: Completion time of the last pass
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

if TYPE_CHECKING:
    from chatsync.sync.stats import SyncStats

logger = logging.getLogger(__name__)

_registry: CollectorRegistry | None = None
_registry_lock = Lock()


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the singleton Prometheus metrics registry."""
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = CollectorRegistry()
                logger.debug("Created Prometheus metrics registry")

    return _registry


passes_total: Counter = Counter(
    name="chatsync_passes_total",
    documentation="Completed sync passes",
    registry=get_metrics_registry(),
)

users_total: Counter = Counter(
    name="chatsync_users_total",
    documentation="Users handled per pass by outcome",
    labelnames=["status"],
    registry=get_metrics_registry(),
)

sessions_synced_total: Counter = Counter(
    name="chatsync_sessions_synced_total",
    documentation="Sessions upserted into MongoDB",
    registry=get_metrics_registry(),
)

messages_synced_total: Counter = Counter(
    name="chatsync_messages_synced_total",
    documentation="Messages contained in upserted sessions",
    registry=get_metrics_registry(),
)

failed_writes_total: Counter = Counter(
    name="chatsync_failed_writes_total",
    documentation="Session upserts that failed",
    registry=get_metrics_registry(),
)

bytes_total: Counter = Counter(
    name="chatsync_bytes_total",
    documentation="Serialized session bytes before and after minimization",
    labelnames=["stage"],
    registry=get_metrics_registry(),
)

pass_duration_seconds: Histogram = Histogram(
    name="chatsync_pass_duration_seconds",
    documentation="Wall time of a sync pass in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
    registry=get_metrics_registry(),
)

last_pass_timestamp: Gauge = Gauge(
    name="chatsync_last_pass_timestamp_seconds",
    documentation="Unix time at which the last sync pass finished",
    registry=get_metrics_registry(),
)


def record_pass(stats: SyncStats) -> None:
    """Fold the counters of a finished pass into the metrics.

    Args:
        stats: Statistics of the pass that just completed
    """
    passes_total.inc()
    users_total.labels(status="processed").inc(stats.processed_users)
    users_total.labels(status="skipped").inc(stats.skipped_chats)
    users_total.labels(status="error").inc(stats.error_users)
    sessions_synced_total.inc(stats.total_chats)
    messages_synced_total.inc(stats.total_messages)
    failed_writes_total.inc(stats.failed_writes)
    bytes_total.labels(stage="original").inc(stats.original_bytes)
    bytes_total.labels(stage="optimized").inc(stats.optimized_bytes)
    pass_duration_seconds.observe(stats.duration_seconds)
    if stats.end_time is not None:
        last_pass_timestamp.set(stats.end_time.timestamp())


def generate_metrics() -> bytes:
    """Generate Prometheus text exposition of the chatsync registry."""
    return generate_latest(get_metrics_registry())


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose the registry on http://addr:port/metrics from a daemon thread."""
    from prometheus_client import start_http_server

    start_http_server(port=port, addr=addr, registry=get_metrics_registry())
    logger.info(f"Prometheus metrics server started on http://{addr}:{port}/metrics")
