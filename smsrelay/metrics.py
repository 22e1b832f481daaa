"""
Prometheus metrics for the SMS gateway.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Outbound dispatch outcome counter (kind, result)
- Per-item transport outcome counter (outcome)
- Inbound SMS outcome counter (result)
- Background task failure counter (task)

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

# kind: single, bulk
# result: sent, partial, failed, transport_error, rejected
sms_dispatch_total = Counter(
    "sms_dispatch_total",
    "Outbound SMS dispatch outcomes",
    labelnames=["kind", "result"]
)

# outcome: success, failure
sms_transport_items_total = Counter(
    "sms_transport_items_total",
    "Per-recipient push transport outcomes",
    labelnames=["outcome"]
)

# result: created, rejected
sms_received_total = Counter(
    "sms_received_total",
    "Inbound SMS processing outcomes",
    labelnames=["result"]
)

# task: counter_update, webhook
background_task_failures_total = Counter(
    "background_task_failures_total",
    "Fire-and-forget task failures",
    labelnames=["task"]
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


def record_dispatch_outcome(kind: str, result: str) -> None:
    sms_dispatch_total.labels(kind=kind, result=result).inc()


def record_transport_items(success_count: int, failure_count: int) -> None:
    if success_count:
        sms_transport_items_total.labels(outcome="success").inc(success_count)
    if failure_count:
        sms_transport_items_total.labels(outcome="failure").inc(failure_count)


def record_received_outcome(result: str) -> None:
    sms_received_total.labels(result=result).inc()


def record_background_failure(task: str) -> None:
    background_task_failures_total.labels(task=task).inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
