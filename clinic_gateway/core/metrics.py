from prometheus_client import (
    Counter,
    Summary,
    Gauge,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)

registry = CollectorRegistry()

REQUEST_COUNT = Counter(
    "gateway_requests_total",
    "Total number of proxied requests",
    ["method", "route", "status"],
    registry=registry
)

REQUEST_DURATION = Summary(
    "gateway_request_duration_seconds",
    "Time spent authenticating and waiting for the backend",
    ["route"],
    registry=registry
)

ACTIVE_REQUESTS = Gauge(
    "gateway_concurrent_requests",
    "Current number of requests in flight to a backend",
    registry=registry
)

AUTH_FAILURES = Counter(
    "gateway_auth_failures_total",
    "Requests rejected by the auth gate",
    ["reason"],
    registry=registry
)


def render_prometheus_metrics() -> tuple[bytes, str]:
    return generate_latest(registry), CONTENT_TYPE_LATEST
