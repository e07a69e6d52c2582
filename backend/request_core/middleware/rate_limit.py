"""
Request Core — Rate Limiting Middleware
=========================================

What:  Applies the fixed-window RateLimiter to every request.
Why:   Rejects abusive clients before caching, auth or handler work happens.
How:   Checks the (client, path) window; a denied request raises
       TooManyRequests(429) without calling the rest of the chain. Every
       counted request carries the X-RateLimit-* headers on the way out,
       including requests that fail further down the chain.
When:  After logging, before caching.

Excluded paths:
    The limiter's excluded_paths (default /health) pass straight through.

Response on rate limit:
    HTTP 429 Too Many Requests
    X-RateLimit-Limit / X-RateLimit-Remaining / X-RateLimit-Reset (epoch seconds)
    Retry-After: seconds until the window resets
"""

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import APIError, with_headers
from request_core.middleware.pipeline import CallNext
from request_core.services.rate_limiter import RateLimiter


class RateLimitMiddleware:
    # Expired records are purged every N checks (amortized cleanup)
    CLEANUP_INTERVAL = 1000

    def __init__(self, limiter: RateLimiter):
        self.limiter = limiter
        self._checks = 0

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if self.limiter.is_excluded(request):
            return await call_next(request)

        info = self.limiter.check(request)

        self._checks += 1
        if self._checks % self.CLEANUP_INTERVAL == 0:
            self.limiter.purge_expired()

        if not info.allowed:
            headers = info.headers()
            retry_after = info.retry_after(self.limiter.now())
            headers["Retry-After"] = str(retry_after)
            raise APIError.too_many_requests(
                "Too many requests, please try again later.",
                details={"limit": info.limit, "retry_after": retry_after},
                headers=headers,
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            raise with_headers(exc, info.headers())
        response.headers.update(info.headers())
        return response
