"""
Request Core — Request Metrics
================================

What:  Prometheus counters and histograms for inbound requests.
Why:   Request rate, error rate and latency per route are the first numbers
       anyone looks at when the API misbehaves.
How:   prometheus_client metrics on a registry owned by this collector (not
       the process-global one), so several apps can live in one process.
       The `path` label is the matched route pattern, never the raw path.
Who:   Fed by MetricsMiddleware; exposed through GET /metrics.

Metrics (with the default "api" prefix):
    api_requests_total{method, path, status}       Counter
    api_request_duration_seconds{method, path}     Histogram
    api_errors_total{method, path, error}          Counter (error = APIError code)
"""

from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.requests import Request

from request_core.exceptions import get_error_code

# Requests that matched no route share one label value
UNMATCHED = "unmatched"


def route_label(request: Request) -> str:
    return getattr(request.state, "route", None) or UNMATCHED


class RequestMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, prefix: str = "api", registry: Optional[CollectorRegistry] = None):
        self.prefix = prefix
        self.registry = registry or CollectorRegistry()

        self.requests_total = Counter(
            f"{prefix}_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            f"{prefix}_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path"],
            registry=self.registry,
        )
        self.errors_total = Counter(
            f"{prefix}_errors_total",
            "Requests that ended in an exception",
            ["method", "path", "error"],
            registry=self.registry,
        )

    def record_request(self, request: Request, status_code: int, duration: float) -> None:
        path = route_label(request)
        self.requests_total.labels(request.method, path, str(status_code)).inc()
        self.request_duration.labels(request.method, path).observe(duration)

    def record_error(self, request: Request, error: BaseException) -> None:
        # APIError code when there is one (NOT_FOUND, ...), else the class name
        label = get_error_code(error) or type(error).__name__
        self.errors_total.labels(request.method, route_label(request), label).inc()

    def value(self, name: str, **labels: str) -> float:
        """Current sample value, 0.0 when the series does not exist yet."""
        return self.registry.get_sample_value(f"{self.prefix}_{name}", labels) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
