"""
Request Core — Metrics Middleware
===================================

What:  Counts every request and times it into RequestMetrics.
How:   Same shape as RequestLoggingMiddleware: time call_next, record the
       status, and on an exception record the error and its mapped status
       before re-raising to the error handler.
When:  Right after request logging, so 429s and auth failures are counted.
"""

import time

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import get_error_status_code
from request_core.middleware.pipeline import CallNext
from request_core.services.metrics import RequestMetrics


class MetricsMiddleware:
    def __init__(self, metrics: RequestMetrics):
        self.metrics = metrics

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            self.metrics.record_error(request, exc)
            self.metrics.record_request(
                request, get_error_status_code(exc), time.perf_counter() - start_time
            )
            raise

        self.metrics.record_request(request, response.status_code, time.perf_counter() - start_time)
        return response
