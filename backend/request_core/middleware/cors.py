"""
Request Core — CORS Headers Middleware
========================================

What:  Stamps the CORS response headers on every response passing through.
Why:   Browser clients on other origins must be allowed to call the API.
How:   Preflight requests (OPTIONS + Access-Control-Request-Method) are
       answered here with 204; every other response gets the same three
       headers on the way out, error responses included.

Note: this is not starlette.middleware.cors.CORSMiddleware. That one is an
ASGI wrapper; this is a chain step and never inspects the Origin header.
"""

from typing import Dict, Iterable

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import with_headers
from request_core.middleware.pipeline import CallNext

DEFAULT_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
DEFAULT_HEADERS = ("Content-Type", "Authorization")


class CORSHeadersMiddleware:
    def __init__(
        self,
        allow_origin: str = "*",
        allow_methods: Iterable[str] = DEFAULT_METHODS,
        allow_headers: Iterable[str] = DEFAULT_HEADERS,
    ):
        self.headers: Dict[str, str] = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": ", ".join(allow_methods),
            "Access-Control-Allow-Headers": ", ".join(allow_headers),
        }

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if (
            request.method == "OPTIONS"
            and "access-control-request-method" in request.headers
        ):
            return Response(status_code=204, headers=self.headers)

        try:
            response = await call_next(request)
        except Exception as exc:
            raise with_headers(exc, self.headers)
        response.headers.update(self.headers)
        return response
