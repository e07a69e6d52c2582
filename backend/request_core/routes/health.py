"""
Request Core — Health Check Route
===================================

What:  GET /health for load balancer and container probes.
Why:   Orchestrators need a cheap endpoint that proves the process is up and
       the middleware chain is wired.
How:   Always "healthy" while the process serves requests; the request core
       has no external dependencies to probe.

Skipped by the rate limiter and public for auth (see Settings defaults).
"""

import time
from typing import Callable, Dict

from starlette.requests import Request
from starlette.responses import Response

from request_core import __version__
from request_core.router import Router
from request_core.schemas.health import HealthResponse
from request_core.schemas.envelope import json_response


def register(router: Router, clock: Callable[[], float] = time.time) -> None:
    # Captured at registration, i.e. when the app is built
    start_time = clock()

    async def health_check(request: Request, params: Dict[str, str]) -> Response:
        health = HealthResponse(
            status="healthy",
            version=__version__,
            uptime_seconds=round(clock() - start_time, 2),
        )
        return json_response(health.model_dump())

    router.get("/health", health_check)
