"""
Request Core — Request Logging Middleware
===========================================

What:  Structured log records for every request and its outcome.
Why:   Enables monitoring, debugging, alerting and latency tracking from the
       APILogger buffer and the stdlib log stream.
How:   Logs the request on arrival and the response (status, duration) on
       the way out. Failures raised below this step are logged with the
       status they will be answered with, then re-raised for the error handler.
When:  Directly inside ErrorHandlerMiddleware, so it times everything else.

What we log vs what we DON'T log (privacy):
    Log: method, path, query string, status, duration
    Don't log: request bodies, Authorization headers
"""

import time

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import get_error_status_code
from request_core.middleware.pipeline import CallNext
from request_core.services.api_logger import APILogger


class RequestLoggingMiddleware:
    def __init__(self, api_logger: APILogger):
        self.api_logger = api_logger

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        # perf_counter: monotonic and higher resolution than time.time()
        start_time = time.perf_counter()
        self.api_logger.log_request(request)

        try:
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.api_logger.log_response(
                Response(status_code=get_error_status_code(exc)), duration_ms, request
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.api_logger.log_response(response, duration_ms, request)
        return response
