"""
Prometheus Metrics

Counters and gauges for the offline sync queues.
"""

from prometheus_client import Counter, Gauge

sync_attempts_total = Counter(
    "partsrunner_sync_attempts_total",
    "Offline sync attempts by queue and outcome",
    ["queue", "outcome"],
)

http_retries_total = Counter(
    "partsrunner_http_retries_total",
    "HTTP retries by reason and status code",
    ["reason", "status_code"],
)

pending_queue_depth = Gauge(
    "partsrunner_pending_queue_depth",
    "Items waiting to be synced",
    ["queue"],
)
