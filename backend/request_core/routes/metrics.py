"""
Request Core — Metrics Route
==============================

What:  GET /metrics in the Prometheus text exposition format.
Why:   Scrapers poll this endpoint; it is public by default (see Settings)
       and marked no-store so the response cache never serves old numbers.
"""

from typing import Dict

from starlette.requests import Request
from starlette.responses import Response

from request_core.router import Router
from request_core.services.metrics import RequestMetrics


def register(router: Router, metrics: RequestMetrics, path: str = "/metrics") -> None:
    async def metrics_endpoint(request: Request, params: Dict[str, str]) -> Response:
        return Response(
            metrics.render(),
            media_type=metrics.content_type,
            headers={"Cache-Control": "no-store"},
        )

    router.get(path, metrics_endpoint)
