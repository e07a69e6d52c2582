"""
Request Core — Authentication Middleware
==========================================

What:  Requires a valid access token on every non-public path.
How:   Verifies the bearer token with AuthService and stores the resulting
       User on request.state.user for handlers and guards. Failures raise
       Unauthorized(401) and never reach the handler.

Public paths:
    Exact paths ("/health") or prefixes ending in "*" ("/public/*").
    OPTIONS requests are always let through so preflights never need a token.
"""

from typing import Iterable, Tuple

from starlette.requests import Request
from starlette.responses import Response

from request_core.middleware.pipeline import CallNext
from request_core.services.auth_service import AuthService


class AuthMiddleware:
    def __init__(self, auth_service: AuthService, public_paths: Iterable[str] = ("/health",)):
        self.auth_service = auth_service
        self.public_paths: Tuple[str, ...] = tuple(public_paths)

    def is_public(self, path: str) -> bool:
        for public in self.public_paths:
            if public.endswith("*"):
                if path.startswith(public[:-1]):
                    return True
            elif path == public:
                return True
        return False

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if request.method == "OPTIONS" or self.is_public(request.url.path):
            return await call_next(request)

        request.state.user = self.auth_service.authenticate_request(request)
        return await call_next(request)
