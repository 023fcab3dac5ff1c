"""
Prometheus metrics for the relay API.

This module provides:
- HTTP request counter (method, path, status)
- Ingestion outcome counter (result)
- Request latency histogram (method, path)
- Live stream subscriber gauge and dropped-delivery counter

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: created, ignored, invalid_payload, missing_scope, persistence_error
ingest_requests_total = Counter(
    "ingest_requests_total",
    "Total message ingestion outcomes",
    labelnames=["result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

stream_subscribers = Gauge(
    "stream_subscribers",
    "Currently connected live stream subscribers",
)

broadcast_dropped_total = Counter(
    "broadcast_dropped_total",
    "Message deliveries dropped for a slow or closed subscriber",
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Conversation ids would explode label cardinality
    normalized_path = path.split("?")[0]
    if normalized_path.startswith("/conversations/") and normalized_path.endswith("/messages"):
        normalized_path = "/conversations/{conversation_id}/messages"

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_ingest_outcome(result: str) -> None:
    """
    Record an ingestion outcome.

    Args:
        result: One of created, ignored, invalid_payload, missing_scope,
            persistence_error
    """
    ingest_requests_total.labels(result=result).inc()


def set_subscriber_count(count: int) -> None:
    stream_subscribers.set(count)


def record_dropped_delivery() -> None:
    broadcast_dropped_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
