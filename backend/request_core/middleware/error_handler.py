"""
Request Core — Error Handling Middleware
==========================================

What:  Outermost step: converts any exception raised below it into an
       error-envelope response.
Why:   One place maps the error taxonomy to the wire format, so every
       failure looks the same and no inner step needs its own try/except.
How:   Wraps call_next in try/except Exception; coerces the exception with
       handle_api_error; logs 5xx failures (with stack) before responding.
When:  Always registered first in the chain.

Response:
    status:  APIError.status_code (500 for anything that isn't an APIError)
    headers: APIError.headers (Retry-After, X-RateLimit-*, WWW-Authenticate)
    body:    {"error": {"message": ..., "code": ..., "details": ...}}

Security:
    Non-APIError exceptions keep their message but never their stack trace
    in the response; the stack only goes to the log.
"""

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from request_core.exceptions import handle_api_error, should_log_error
from request_core.middleware.pipeline import CallNext
from request_core.schemas.envelope import create_error_response
from request_core.services.api_logger import APILogger

logger = logging.getLogger(__name__)


def error_response(error: BaseException) -> JSONResponse:
    api_error = handle_api_error(error)
    envelope = create_error_response(api_error)
    return JSONResponse(
        envelope.to_payload(),
        status_code=api_error.status_code,
        headers=api_error.headers or None,
    )


class ErrorHandlerMiddleware:
    def __init__(self, api_logger: APILogger):
        self.api_logger = api_logger

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            if should_log_error(exc):
                self.api_logger.log_error(exc, request)
            else:
                logger.debug(
                    "%s %s failed with %d: %s",
                    request.method,
                    request.url.path,
                    handle_api_error(exc).status_code,
                    exc,
                )
            return error_response(exc)
