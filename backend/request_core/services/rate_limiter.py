"""
Request Core — Fixed Window Rate Limiter
==========================================

What:  Per-(client, path) request counter over fixed time windows.
Why:   Protects handlers from abusive clients without any external store.
How:   One RateLimitRecord per "client:path" key holding a count and the
       window's reset time. Records reset lazily on the first request after
       the window has passed.
Who:   Owned by RequestCore; consulted by RateLimitMiddleware on every request.

Algorithm: Fixed Window Counter
    On each check:
    1. If no record exists, or now > reset_at: start a fresh window
       (count=0, reset_at=now+window)
    2. remaining = max(0, max_requests - count)
    3. If remaining <= 0: deny (count unchanged)
    4. Otherwise: count += 1 and allow

    Windows are fixed, not sliding: a client can send up to 2 × max_requests
    across a window boundary (end of one window + start of the next). That
    is an accepted property of fixed-window limiting.

Thread Safety:
    check() runs entirely under a lock, so two concurrent requests can never
    both observe remaining > 0 and push the count past the limit.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from starlette.requests import Request

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitInfo:
    """
    Outcome of one check.

    remaining is what is left AFTER this request was counted (or 0 on deny).
    """
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def reset_epoch(self) -> int:
        return math.ceil(self.reset_at)

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_epoch),
        }


class RateLimiter:
    """
    Args:
        window:         Window length in seconds (default 15 minutes)
        max_requests:   Requests allowed per window per (client, path)
        client_header:  Header holding the client address (first entry used)
        excluded_paths: Paths never limited (health checks)
        clock:          Time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        window: float = 15 * 60,
        max_requests: int = 100,
        client_header: str = "x-forwarded-for",
        excluded_paths: Iterable[str] = ("/health",),
        clock: Callable[[], float] = time.time,
    ):
        self.window = window
        self.max_requests = max_requests
        self.client_header = client_header
        self.excluded_paths = frozenset(excluded_paths)
        self._clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def client_id(self, request: Request) -> str:
        """
        Client identity for limiting.

        Caveat: the header is client-controlled unless a trusted proxy
        overwrites it; behind no proxy the socket peer is used instead.
        """
        forwarded = request.headers.get(self.client_header)
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
        if request.client and request.client.host:
            return request.client.host
        return "unknown"

    def key_for(self, request: Request) -> str:
        return f"{self.client_id(request)}:{request.url.path}"

    def is_excluded(self, request: Request) -> bool:
        return request.url.path in self.excluded_paths

    def check(self, request: Request) -> RateLimitInfo:
        return self.check_key(self.key_for(request))

    def check_key(self, key: str) -> RateLimitInfo:
        with self._lock:
            now = self._clock()
            record = self._records.get(key)
            if record is None or now > record.reset_at:
                record = RateLimitRecord(count=0, reset_at=now + self.window)
                self._records[key] = record

            remaining = max(0, self.max_requests - record.count)
            if remaining <= 0:
                logger.warning(
                    "Rate limit exceeded for %s: %d requests in %.0fs window",
                    key,
                    record.count,
                    self.window,
                )
                return RateLimitInfo(False, self.max_requests, 0, record.reset_at)

            record.count += 1
            return RateLimitInfo(
                True, self.max_requests, self.max_requests - record.count, record.reset_at
            )

    def purge_expired(self, now: Optional[float] = None) -> int:
        """
        Drops records whose window has already passed.

        What:    Prevents the record map from growing with one-off clients.
        Returns: Number of records removed.
        """
        with self._lock:
            current = self._clock() if now is None else now
            expired = [key for key, record in self._records.items() if current > record.reset_at]
            for key in expired:
                del self._records[key]
        if expired:
            logger.debug("Purged %d expired rate limit records", len(expired))
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
