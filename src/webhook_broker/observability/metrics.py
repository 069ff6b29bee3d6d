"""Prometheus metrics for the webhook broker.

Metrics include:

- Dispatch counters by classified outcome, and upstream latency
- Cache lookups by backend and result (hit/miss)
- Status resolutions by reconciliation stage
- Result deliveries by inbound channel
- Registry size and primary cache availability gauges
- Registry retention sweeps

Examples:
    Recording a classified dispatch::

        from webhook_broker.observability.metrics import record_dispatch

        record_dispatch(outcome="async_started", duration_seconds=0.42)

    Recording a status resolution::

        record_status_resolution(stage="registry_token")
"""

from prometheus_client import Counter, Gauge, Histogram

# Labels: outcome (sync_success, async_started, not_active, http_error,
# malformed_body, network_error, cache_hit)
dispatch_total = Counter(
    "broker_dispatch_total",
    "Total number of work submissions by outcome",
    ["outcome"],
)

upstream_duration_seconds = Histogram(
    "broker_upstream_duration_seconds",
    "Duration of upstream dispatches in seconds",
    buckets=[0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300],
)

cache_lookups_total = Counter(
    "broker_cache_lookups_total",
    "Cache lookups by backend and result",
    ["backend", "result"],
)

primary_cache_available = Gauge(
    "broker_primary_cache_available",
    "1 while the shared primary cache is in use, 0 after downgrade to local-only",
)

status_resolutions_total = Counter(
    "broker_status_resolutions_total",
    "Status queries by the reconciliation stage that answered (none = pending)",
    ["stage"],
)

deliveries_total = Counter(
    "broker_deliveries_total",
    "Out-of-band result deliveries by inbound channel",
    ["channel"],
)

registry_entries = Gauge(
    "broker_registry_entries",
    "Number of handles currently tracked by the request registry",
)

cleanup_operations = Counter(
    "broker_cleanup_operations_total",
    "Total number of registry retention sweeps performed",
)

cleanup_records_removed = Counter(
    "broker_cleanup_records_removed_total",
    "Total number of registry entries removed by retention sweeps",
)


def record_dispatch(outcome: str, duration_seconds: float | None = None) -> None:
    """Record a submission outcome and, for real dispatches, its upstream latency.

    Examples:
        >>> record_dispatch("cache_hit")
        >>> record_dispatch("sync_success", duration_seconds=1.2)
    """
    dispatch_total.labels(outcome=outcome).inc()
    if duration_seconds is not None:
        upstream_duration_seconds.observe(duration_seconds)


def record_cache_lookup(backend: str, hit: bool) -> None:
    cache_lookups_total.labels(backend=backend, result="hit" if hit else "miss").inc()


def set_primary_available(available: bool) -> None:
    primary_cache_available.set(1 if available else 0)


def record_status_resolution(stage: str | None) -> None:
    status_resolutions_total.labels(stage=stage or "none").inc()


def record_delivery(channel: str) -> None:
    deliveries_total.labels(channel=channel).inc()


def set_registry_size(size: int) -> None:
    registry_entries.set(size)


def record_cleanup(records_removed: int) -> None:
    """Record a retention sweep.

    Args:
        records_removed: Number of expired registry entries removed
    """
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)
