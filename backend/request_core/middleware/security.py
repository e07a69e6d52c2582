"""
Request Core — Security Headers Middleware
============================================

What:  Adds the standard browser-hardening headers to every response.
Why:   API responses are sometimes opened directly in a browser; these
       headers stop MIME sniffing, framing and referrer leaks.
How:   A fixed header set, plus Strict-Transport-Security on https only.
       Errors raised further down carry the same headers.
When:  Second step, right inside the error handler.

Headers:
    X-Content-Type-Options: nosniff
    X-Frame-Options: DENY
    Referrer-Policy: strict-origin-when-cross-origin
    Permissions-Policy: geolocation=(), microphone=(), camera=()
    Cross-Origin-Opener-Policy / Cross-Origin-Resource-Policy: same-origin
    X-Permitted-Cross-Domain-Policies: none
    Content-Security-Policy: configurable
    Strict-Transport-Security: https requests only
"""

from typing import Dict, Mapping, Optional

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import with_headers
from request_core.middleware.pipeline import CallNext

DEFAULT_CSP = "default-src 'self'; frame-ancestors 'none'"
HSTS = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware:
    DEFAULT_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
        "X-Permitted-Cross-Domain-Policies": "none",
    }

    def __init__(
        self,
        csp_policy: str = DEFAULT_CSP,
        custom_headers: Optional[Mapping[str, str]] = None,
    ):
        self.csp_policy = csp_policy
        self.custom_headers = dict(custom_headers or {})

    def get_security_headers(self, request: Request) -> Dict[str, str]:
        headers = dict(self.DEFAULT_HEADERS)
        if self.csp_policy:
            headers["Content-Security-Policy"] = self.csp_policy
        if request.url.scheme == "https":
            headers["Strict-Transport-Security"] = HSTS
        headers.update(self.custom_headers)
        return headers

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        headers = self.get_security_headers(request)
        try:
            response = await call_next(request)
        except Exception as exc:
            raise with_headers(exc, headers)
        response.headers.update(headers)
        return response
