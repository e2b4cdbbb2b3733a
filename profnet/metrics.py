"""
Prometheus metrics for the network service.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Friend request workflow events (event)
- Message lifecycle events (event)
- Distance query outcomes (result)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# event: sent, resent, accepted, rejected, unfriended
friend_request_events_total = Counter(
    "friend_request_events_total",
    "Friend request workflow events",
    labelnames=["event"]
)

# event: sent, forbidden, deleted, purged
message_events_total = Counter(
    "message_events_total",
    "Message lifecycle events",
    labelnames=["event"]
)

# result: reachable, unreachable
distance_queries_total = Counter(
    "distance_queries_total",
    "Bounded distance queries by outcome",
    labelnames=["result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when known, else the raw path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_friend_request_event(event: str) -> None:
    friend_request_events_total.labels(event=event).inc()


def record_message_event(event: str) -> None:
    message_events_total.labels(event=event).inc()


def record_distance_query(reachable: bool) -> None:
    distance_queries_total.labels(result="reachable" if reachable else "unreachable").inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
