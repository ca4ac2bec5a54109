"""Logging and metrics."""

from partsrunner.monitoring.logging import configure_logging
from partsrunner.monitoring.metrics import (
    http_retries_total,
    pending_queue_depth,
    sync_attempts_total,
)

__all__ = [
    "configure_logging",
    "http_retries_total",
    "pending_queue_depth",
    "sync_attempts_total",
]
