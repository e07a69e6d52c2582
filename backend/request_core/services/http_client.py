"""
Request Core — Retrying Outbound Client
=========================================

What:  Async HTTP client for calling external services that speak the same
       response envelope as this core.
Why:   Outbound calls fail transiently (rate limits, restarts, slow peers).
       Retrying with backoff and a hard per-attempt timeout keeps callers
       simple: they get a parsed envelope or a typed APIError.
How:   httpx.AsyncClient does the I/O; tenacity drives the retry loop.
Who:   Application code (route handlers, background jobs) that calls peers.
When:  Any time the core needs data from another service.

Resilience Strategy:
    1. fetch_with_timeout: every attempt is bounded by `timeout` seconds
       (default 30). Exceeding it, or failing to connect, surfaces as
       ServiceUnavailable(503), so it is retried like any other 503.
    2. handle_response: non-2xx responses become an APIError rebuilt from
       the remote error envelope (status, code, details preserved).
    3. Retry: up to max_retries extra attempts (default 3) when the
       should_retry predicate accepts the error. Default predicate is
       is_retryable_error: exactly 429 and 503. Everything else propagates
       on first occurrence.
    4. Backoff: tenacity wait_exponential, delay before retry n (0-based)
       = retry_delay * 2**n
       → 1s, 2s, 4s with defaults. No jitter, no cap beyond max_retries.

Example:
    async with APIClient(base_url="https://payments.internal") as client:
        envelope = await client.get("/invoices", params={"page": 2})
        invoices = envelope.data
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from request_core.exceptions import APIError, is_retryable_error
from request_core.schemas.envelope import SuccessEnvelope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0

T = TypeVar("T")


class APIClient:
    """
    Args:
        base_url:      Prefix for relative URLs
        timeout:       Per-attempt timeout in seconds
        max_retries:   Retries after the first attempt (total attempts = max_retries + 1)
        retry_delay:   Base backoff delay in seconds
        should_retry:  Predicate deciding whether an error is worth retrying
        headers:       Default headers sent with every request
        transport:     httpx transport (tests pass httpx.MockTransport)
        sleep:         Awaitable sleep used between attempts (tests capture delays)
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
        headers: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.should_retry = should_retry
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=dict(headers or {}),
            transport=transport,
        )

    async def __aenter__(self) -> "APIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Single Attempt ────────────────────────────────────────────────────

    async def fetch_with_timeout(
        self, method: str, url: str, timeout: Optional[float] = None, **kwargs: Any
    ) -> httpx.Response:
        """
        One HTTP attempt, aborted after `timeout` seconds.

        Raises:
            APIError(503) on timeout or transport failure (connection refused,
            DNS, reset). Both are retryable under the default predicate.
        """
        limit = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(
                self._client.request(method, url, timeout=limit, **kwargs),
                timeout=limit,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("%s %s timed out after %.1fs", method, url, limit)
            raise APIError.service_unavailable(
                f"Request timed out after {limit}s",
                details={"url": str(url), "timeout": limit},
            ) from e
        except httpx.TransportError as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise APIError.service_unavailable(
                "Upstream service is unreachable",
                details={"url": str(url), "error": type(e).__name__},
            ) from e

    @staticmethod
    def handle_response(response: httpx.Response) -> SuccessEnvelope:
        """
        Parse the body as a response envelope.

        Non-2xx → APIError built from the envelope's `error` block (or the
        reason phrase when the body is not an envelope).
        """
        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            raise APIError.from_response(response.status_code, body, response.reason_phrase)

        if body is None and response.content:
            raise APIError.internal(
                "Upstream returned a non-JSON body",
                details={"content_type": response.headers.get("content-type")},
            )
        if isinstance(body, dict) and "data" in body:
            return SuccessEnvelope.model_validate(body)
        return SuccessEnvelope(data=body)

    # ── Retry Loop ────────────────────────────────────────────────────────

    def _retrying(
        self,
        max_retries: Optional[int],
        retry_delay: Optional[float],
        should_retry: Optional[Callable[[BaseException], bool]],
    ) -> AsyncRetrying:
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.retry_delay if retry_delay is None else retry_delay
        return AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            # delay * 2**(n-1) after the n-th failed attempt
            wait=wait_exponential(multiplier=delay),
            retry=retry_if_exception(should_retry or self.should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def _execute(
        self,
        method: str,
        url: str,
        parse: Callable[[httpx.Response], T],
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        **kwargs: Any,
    ) -> T:
        async for attempt in self._retrying(max_retries, retry_delay, should_retry):
            with attempt:
                response = await self.fetch_with_timeout(method, url, timeout, **kwargs)
                result = parse(response)
        return result

    async def request(self, method: str, url: str, **kwargs: Any) -> SuccessEnvelope:
        """
        Send a request through the timeout + retry wrapper.

        Accepts httpx request kwargs (params, json, headers, files, ...) plus
        per-call overrides: timeout, max_retries, retry_delay, should_retry.
        """
        return await self._execute(method.upper(), url, self.handle_response, **kwargs)

    # ── Verbs ─────────────────────────────────────────────────────────────

    async def get(self, url: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> SuccessEnvelope:
        return await self.request("GET", url, params=_clean_params(params), **kwargs)

    async def post(self, url: str, data: Any = None, **kwargs: Any) -> SuccessEnvelope:
        return await self.request("POST", url, json=data, **kwargs)

    async def put(self, url: str, data: Any = None, **kwargs: Any) -> SuccessEnvelope:
        return await self.request("PUT", url, json=data, **kwargs)

    async def patch(self, url: str, data: Any = None, **kwargs: Any) -> SuccessEnvelope:
        return await self.request("PATCH", url, json=data, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> SuccessEnvelope:
        return await self.request("DELETE", url, **kwargs)

    # ── Files ─────────────────────────────────────────────────────────────

    async def upload_file(
        self,
        url: str,
        content: bytes,
        filename: str,
        field: str = "file",
        content_type: str = "application/octet-stream",
        form: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> SuccessEnvelope:
        """POST a multipart upload; the response is a normal envelope."""
        return await self.request(
            "POST",
            url,
            files={field: (filename, content, content_type)},
            data=form,
            **kwargs,
        )

    async def download_file(self, url: str, **kwargs: Any) -> bytes:
        """
        GET a binary body.

        Successful responses skip envelope parsing and return raw bytes;
        failures still go through handle_response for a typed error.
        """
        def read_bytes(response: httpx.Response) -> bytes:
            if not response.is_success:
                self.handle_response(response)
            return response.content

        return await self._execute("GET", url, read_bytes, **kwargs)


def _clean_params(params: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """Drops None values and stringifies the rest (booleans as true/false)."""
    if params is None:
        return None
    cleaned: Dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        cleaned[key] = str(value).lower() if isinstance(value, bool) else str(value)
    return cleaned
