"""Observability utilities for the webhook broker.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for dispatch outcomes, cache behavior and reconciliation
- Structured logging with contextual information
"""

from webhook_broker.observability.logging import configure_logging, get_logger
from webhook_broker.observability.metrics import (
    record_cache_lookup,
    record_cleanup,
    record_delivery,
    record_dispatch,
    record_status_resolution,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_cache_lookup",
    "record_cleanup",
    "record_delivery",
    "record_dispatch",
    "record_status_resolution",
]
