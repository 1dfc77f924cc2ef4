from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

BOOKING_TRANSITIONS = Counter(
    "booking_request_transitions_total",
    "Booking request lifecycle transitions committed",
    ["transition"],
)

SLOT_CONFLICTS = Counter(
    "booking_slot_conflicts_total",
    "Proposed windows rejected by the slot conflict check",
)

NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total",
    "Notification records written",
    ["type"],
)

PUSH_DELIVERY_FAILURES = Counter(
    "push_delivery_failures_total",
    "Push deliveries that failed or could not be scheduled",
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
