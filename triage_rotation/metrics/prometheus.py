# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics — single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "rotation_requests_total",
    "Total HTTP requests to the rotation service",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "rotation_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "rotation_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
TRIGGERS_TOTAL = Counter(
    "rotation_triggers_total",
    "Scheduled invocations by outcome",
    ["result"],
)
TRIGGER_REPLAYS = Counter(
    "rotation_trigger_replays_total",
    "Invocations short-circuited by the idempotency gate",
)
TRIGGER_DURATION = Histogram(
    "rotation_trigger_duration_seconds",
    "Time to process one scheduled invocation end-to-end",
)
DIRECT_MESSAGES = Counter(
    "rotation_direct_messages_total",
    "Direct messages sent to users",
    ["kind", "status"],
)
ADMIN_MESSAGES = Counter(
    "rotation_admin_messages_total",
    "Messages sent to the admin channel",
    ["status"],
)
SNAPSHOTS_SAVED = Counter(
    "rotation_snapshots_saved_total",
    "Notification snapshots persisted",
    ["status"],
)
ROTATION_EVENTS = Counter(
    "rotation_events_total",
    "Rotation state machine events",
    ["event"],
)
GROUP_SYNCS = Counter(
    "rotation_group_syncs_total",
    "Group/topic membership updates",
    ["status"],
)
