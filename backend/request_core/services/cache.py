"""
Request Core — Response Cache
===============================

What:  In-memory key → entry store with TTL staleness, ETags and a size bound.
Why:   Repeated GETs of the same resource should not re-run the handler.
How:   Entries are keyed by "METHOD:path?query". Reads check staleness;
       writes stamp a timestamp and an ETag, then sweep the store back under
       max_size by evicting the oldest timestamps first.
Who:   Owned by RequestCore; read and written by CacheMiddleware.

Staleness:
    An entry is stale when now - timestamp > ttl.
    - stale_while_revalidate off: a stale read deletes the entry (miss)
    - stale_while_revalidate on:  the stale entry is returned as-is; refreshing
      it is the caller's job (nothing here refreshes automatically)

Eviction:
    After every set(), if len(store) > max_size, entries are sorted by
    timestamp and the oldest removed until the store is back at max_size.
    This is a point-in-time sweep, O(n log n) on each overflowing insert;
    acceptable because max_size is small by configuration.

Thread Safety:
    All store access happens under a lock so a read-check-delete cannot
    interleave with a concurrent set().
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from starlette.requests import Request

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    etag: str


def cache_key(request: Request) -> str:
    """METHOD:path?query. Requests differing only by query are distinct entries."""
    query = request.url.query
    return f"{request.method}:{request.url.path}{'?' + query if query else ''}"


def generate_etag(data: Any) -> str:
    """
    Cheap non-cryptographic 32-bit string hash of the serialized payload.

    Collisions are tolerated: the ETag only drives client conditional
    requests, never integrity checks.
    """
    if isinstance(data, (bytes, bytearray)):
        text = bytes(data).decode("utf-8", errors="replace")
    else:
        text = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    h = 0
    for ch in text:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    return f'"{h:x}"'


class ResponseCache:
    """
    Args:
        ttl:                    Seconds an entry stays fresh
        max_size:               Maximum number of entries kept
        stale_while_revalidate: Serve stale entries instead of dropping them
        headers:                Emit ETag / Cache-Control via get_cache_headers
        clock:                  Time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        ttl: float = 60,
        max_size: int = 1000,
        stale_while_revalidate: bool = False,
        headers: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_size = max_size
        self.stale_while_revalidate = stale_while_revalidate
        self.headers = headers
        self._clock = clock
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    def is_stale(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self.ttl

    # ── Store Operations ──────────────────────────────────────────────────

    def get(self, request: Request) -> Optional[CacheEntry]:
        key = cache_key(request)
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if self.is_stale(entry) and not self.stale_while_revalidate:
                del self._store[key]
                logger.debug("Dropped stale cache entry %s", key)
                return None
            return entry

    def set(self, request: Request, data: Any) -> CacheEntry:
        key = cache_key(request)
        entry = CacheEntry(data=data, timestamp=self._clock(), etag=generate_etag(data))
        with self._lock:
            self._store[key] = entry
            self._evict()
        return entry

    def delete(self, request: Request) -> bool:
        with self._lock:
            return self._store.pop(cache_key(request), None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _evict(self) -> None:
        # Caller holds the lock
        overflow = len(self._store) - self.max_size
        if overflow <= 0:
            return
        oldest = sorted(self._store.items(), key=lambda item: item[1].timestamp)[:overflow]
        for key, _ in oldest:
            del self._store[key]
        logger.debug("Evicted %d cache entries (max_size=%d)", overflow, self.max_size)

    # ── Headers ───────────────────────────────────────────────────────────

    def get_cache_headers(self, entry: Optional[CacheEntry]) -> Dict[str, str]:
        """
        ETag + Cache-Control for a hit, Cache-Control: no-cache for a miss.

        A stale entry served under stale-while-revalidate gets the
        ", stale-while-revalidate" suffix.
        """
        if not self.headers:
            return {}
        if entry is None:
            return {"Cache-Control": "no-cache"}
        cache_control = f"max-age={int(self.ttl)}"
        if self.stale_while_revalidate and self.is_stale(entry):
            cache_control += ", stale-while-revalidate"
        return {"ETag": entry.etag, "Cache-Control": cache_control}
