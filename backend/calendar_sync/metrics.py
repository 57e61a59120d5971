"""Prometheus collectors. Registered once at import time."""
from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "calendar_sync_requests_total", "Total HTTP requests", ["method", "path", "status"]
)
REQUEST_LATENCY = Histogram(
    "calendar_sync_request_latency_seconds", "Latency of HTTP requests", ["method", "path"]
)

SYNC_COUNT = Counter(
    "calendar_sync_sync_total", "Sync rounds by mode and outcome", ["sync_type", "outcome"]
)
SYNC_DURATION = Histogram(
    "calendar_sync_sync_duration_seconds", "Latency of the provider call for one sync round", ["sync_type"]
)
SYNC_CHANGES = Counter(
    "calendar_sync_changes_total", "Change records returned to callers", ["sync_type"]
)

WEBHOOK_NOTIFICATIONS = Counter(
    "calendar_sync_webhook_notifications_total", "Push notifications received", ["resource_state", "outcome"]
)
CHANNEL_STORE_SIZE = Gauge(
    "calendar_sync_channel_store_size", "Number of registered watch channels", ["backend"]
)
