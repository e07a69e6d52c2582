"""
Request Core — Response Caching Middleware
============================================

What:  Serves repeated GETs from ResponseCache; stores fresh 200 responses.
Why:   Skips handler work for hot reads and lets clients revalidate with ETags.
How:
    hit  → replay the stored response with ETag / Cache-Control and
           X-Cache: HIT; answer 304 when If-None-Match matches a fresh entry
    miss → run the rest of the chain; store the response if it is a 200
           with a materialized body; mark it Cache-Control: no-cache and
           X-Cache: MISS
When:  After rate limiting (so cached reads still count against the limit),
       before CORS and auth.

Bypass:
    - Non-GET methods are never looked up or stored.
    - Requests carrying an Authorization header bypass the cache entirely.
      Auth runs inside this step, so caching them could hand one user's
      response to another.
    - Streaming responses (no .body) are passed through untouched.
"""

from typing import Any, Dict

from starlette.requests import Request
from starlette.responses import Response

from request_core.middleware.pipeline import CallNext
from request_core.services.cache import CacheEntry, ResponseCache

# Recomputed on replay or meaningless across clients
_UNCACHED_HEADERS = {"content-length", "set-cookie", "x-ratelimit-limit",
                     "x-ratelimit-remaining", "x-ratelimit-reset"}


def _etag_matches(if_none_match: str, etag: str) -> bool:
    candidates = [tag.strip() for tag in if_none_match.split(",")]
    return "*" in candidates or etag in candidates


def snapshot(response: Response) -> Dict[str, Any]:
    """Plain-data copy of a response, safe to keep in the cache store."""
    return {
        "status_code": response.status_code,
        "media_type": response.media_type,
        # surrogateescape round-trips arbitrary bytes through str
        "body": bytes(response.body).decode("utf-8", errors="surrogateescape"),
        "headers": {
            key: value
            for key, value in response.headers.items()
            if key.lower() not in _UNCACHED_HEADERS
        },
    }


def replay(entry: CacheEntry) -> Response:
    data = entry.data
    return Response(
        content=data["body"].encode("utf-8", errors="surrogateescape"),
        status_code=data["status_code"],
        headers=data["headers"],
        media_type=data["media_type"],
    )


class CacheMiddleware:
    def __init__(self, cache: ResponseCache):
        self.cache = cache

    def _bypass(self, request: Request) -> bool:
        return request.method != "GET" or "authorization" in request.headers

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if self._bypass(request):
            return await call_next(request)

        entry = self.cache.get(request)
        if entry is not None:
            headers = self.cache.get_cache_headers(entry)
            headers["X-Cache"] = "HIT"
            if_none_match = request.headers.get("if-none-match")
            if (
                if_none_match
                and _etag_matches(if_none_match, entry.etag)
                and not self.cache.is_stale(entry)
            ):
                # 304 repeats the stored headers (CORS included) minus the body's type
                stored = {
                    key: value
                    for key, value in entry.data["headers"].items()
                    if key != "content-type"
                }
                not_modified = Response(status_code=304, headers=stored)
                not_modified.headers.update(headers)
                return not_modified
            response = replay(entry)
            response.headers.update(headers)
            return response

        response = await call_next(request)

        if (
            response.status_code == 200
            and isinstance(getattr(response, "body", None), bytes)
            and "no-store" not in response.headers.get("cache-control", "")
        ):
            self.cache.set(request, snapshot(response))
            response.headers.update(self.cache.get_cache_headers(None))
            response.headers["X-Cache"] = "MISS"
        return response
