"""
Request Core — Application Factory
=====================================

What:  Builds a RequestCore: router + middleware chain + shared services,
       exposed as a plain ASGI application.
Why:   Centralizes wiring (settings → components → chain order → routes)
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured RequestCore.
Who:   Served by uvicorn (`run()`, or `uvicorn request_core.main:create_app --factory`).
When:  Once at server startup; the returned app handles all subsequent requests.

Default chain (first registered = outermost):
    error → logging → metrics → security → rate limit → cache → CORS → auth → validation → Router
    Metrics, security headers, rate limiting and caching are each skipped
    when disabled in settings. Compression (starlette GZipMiddleware) wraps
    the whole chain at the ASGI level.

Lifecycle:
    Startup:
    1. Initialize stdlib logging
    2. Validate security-sensitive configuration (logged, not fatal)
    3. Log startup complete

    Shutdown:
    1. Flush the API logger
    2. Drop cached responses and rate limit windows
    3. Log shutdown complete
"""

import logging
import sys
import time
from typing import Any, Callable, Dict, Optional

from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Receive, Scope, Send

from request_core.config import Settings, settings as default_settings
from request_core.middleware.auth import AuthMiddleware
from request_core.middleware.cache import CacheMiddleware
from request_core.middleware.cors import CORSHeadersMiddleware
from request_core.middleware.error_handler import ErrorHandlerMiddleware
from request_core.middleware.logging import RequestLoggingMiddleware
from request_core.middleware.metrics import MetricsMiddleware
from request_core.middleware.pipeline import MiddlewareChain, Terminal
from request_core.middleware.rate_limit import RateLimitMiddleware
from request_core.middleware.security import SecurityHeadersMiddleware
from request_core.middleware.validation import BodyValidationMiddleware
from request_core.router import Route, RouteHandler, Router
from request_core.routes import auth as auth_routes
from request_core.routes import health
from request_core.routes import metrics as metrics_routes
from request_core.services.api_logger import STDLIB_LEVELS, APILogger
from request_core.services.auth_service import AuthService
from request_core.services.cache import ResponseCache
from request_core.services.http_client import APIClient
from request_core.services.metrics import RequestMetrics
from request_core.services.pagination import Paginator
from request_core.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "info") -> None:
    """
    Configure stdlib logging for the whole process.

    The APILogger formats its own records (JSON or text), so the handler
    format only prefixes what is needed for plain module logs.
    """
    logging.basicConfig(
        level=STDLIB_LEVELS.get(level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application
# ══════════════════════════════════════════════════════════════════════════

class RequestCore:
    """
    ASGI application: every HTTP request becomes a starlette Request, runs
    through the middleware chain, and the resulting Response is sent back.

    Route registration is forwarded to the router so embedding code can do
    `app.get("/venues/:id", handler)` directly.
    """

    def __init__(
        self,
        settings: Settings,
        router: Router,
        chain: MiddlewareChain,
        api_logger: APILogger,
        cache: ResponseCache,
        rate_limiter: RateLimiter,
        auth_service: AuthService,
        paginator: Paginator,
        metrics: Optional[RequestMetrics] = None,
        terminal: Optional[Terminal] = None,
        compression_min_size: Optional[int] = None,
    ):
        self.settings = settings
        self.router = router
        self.chain = chain
        self.api_logger = api_logger
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.auth_service = auth_service
        self.paginator = paginator
        self.metrics = metrics
        self.terminal = terminal or router.dispatch

        # gzip sits outside the chain; None disables it
        self._http: ASGIApp = self._serve
        if compression_min_size is not None:
            self._http = GZipMiddleware(self._serve, minimum_size=compression_min_size)

    # ── Route Registration ────────────────────────────────────────────────

    def get(self, path: str, handler: RouteHandler) -> Route:
        return self.router.get(path, handler)

    def post(self, path: str, handler: RouteHandler) -> Route:
        return self.router.post(path, handler)

    def put(self, path: str, handler: RouteHandler) -> Route:
        return self.router.put(path, handler)

    def patch(self, path: str, handler: RouteHandler) -> Route:
        return self.router.patch(path, handler)

    def delete(self, path: str, handler: RouteHandler) -> Route:
        return self.router.delete(path, handler)

    def route(self, method: str, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.router.route(method, path)

    # ── Outbound Calls ────────────────────────────────────────────────────

    def create_client(self, base_url: str = "", **overrides: Any) -> APIClient:
        """APIClient preconfigured with the client_* settings; caller closes it."""
        options: Dict[str, Any] = {
            "timeout": self.settings.client_timeout,
            "max_retries": self.settings.client_max_retries,
            "retry_delay": self.settings.client_retry_delay,
        }
        options.update(overrides)
        return APIClient(base_url=base_url, **options)

    # ── Request Handling ──────────────────────────────────────────────────

    async def handle(self, request: Request) -> Response:
        return await self.chain.handle(request, self.terminal)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope["type"] != "http":
            # Websockets are not served
            await send({"type": "websocket.close", "code": 1003})
            return

        await self._http(scope, receive, send)

    async def _serve(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def startup(self) -> None:
        setup_logging(self.settings.log_level)
        logger.info("=" * 60)
        logger.info("Request core starting up...")

        try:
            self.settings.validate_required_for_production()
        except ValueError as e:
            # Don't exit: development setups run on defaults
            logger.error("Configuration error: %s", str(e))

        logger.info(
            "Routes registered: %d, middleware steps: %d",
            len(self.router.routes),
            len(self.chain),
        )
        logger.info(
            "Server ready at http://%s:%d", self.settings.server_host, self.settings.server_port
        )
        logger.info("=" * 60)

    async def shutdown(self) -> None:
        logger.info("Request core shutting down...")
        self.api_logger.flush()
        self.cache.clear()
        self.rate_limiter.reset()
        logger.info("Shutdown complete.")

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as e:
                    logger.exception("Startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(e)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    handler: Optional[Terminal] = None,
    clock: Callable[[], float] = time.time,
) -> RequestCore:
    """
    Create and configure a RequestCore.

    Args:
        settings: Configuration; defaults to the environment-loaded settings
        handler:  Terminal handler; defaults to the router's dispatch
        clock:    Time source in seconds shared by cache, limiter and auth
    """
    settings = settings or default_settings

    api_logger = APILogger(
        level=settings.log_level,
        fmt=settings.log_format,
        timestamp=settings.log_timestamp,
        max_entries=settings.log_max_entries,
    )
    cache = ResponseCache(
        ttl=settings.cache_ttl,
        max_size=settings.cache_max_size,
        stale_while_revalidate=settings.cache_stale_while_revalidate,
        headers=settings.cache_headers,
        clock=clock,
    )
    rate_limiter = RateLimiter(
        window=settings.rate_limit_window,
        max_requests=settings.rate_limit_max_requests,
        client_header=settings.rate_limit_client_header,
        clock=clock,
    )
    auth_service = AuthService(
        secret=settings.auth_secret,
        algorithm=settings.auth_algorithm,
        access_token_ttl=settings.access_token_ttl,
        refresh_token_ttl=settings.refresh_token_ttl,
        api_logger=api_logger,
        clock=clock,
    )
    paginator = Paginator(
        default_limit=settings.pagination_default_limit,
        max_limit=settings.pagination_max_limit,
    )
    metrics = RequestMetrics(prefix=settings.metrics_prefix) if settings.metrics_enabled else None

    # ── Register Middleware ───────────────────────────────────────────────
    # Order matters: first registered runs first on the way in
    chain = MiddlewareChain()
    chain.use(ErrorHandlerMiddleware(api_logger))
    chain.use(RequestLoggingMiddleware(api_logger))
    if metrics is not None:
        chain.use(MetricsMiddleware(metrics))
    if settings.security_headers_enabled:
        chain.use(SecurityHeadersMiddleware(csp_policy=settings.security_csp))
    if settings.rate_limit_enabled:
        chain.use(RateLimitMiddleware(rate_limiter))
    if settings.cache_enabled:
        chain.use(CacheMiddleware(cache))
    chain.use(CORSHeadersMiddleware(allow_origin=settings.cors_allow_origin))
    chain.use(AuthMiddleware(auth_service, public_paths=settings.auth_public_paths_list))
    chain.use(BodyValidationMiddleware())

    # ── Register Routes ───────────────────────────────────────────────────
    router = Router()
    health.register(router, clock=clock)
    auth_routes.register(router, auth_service)
    if metrics is not None:
        metrics_routes.register(router, metrics, path=settings.metrics_path)

    return RequestCore(
        settings=settings,
        router=router,
        chain=chain,
        api_logger=api_logger,
        cache=cache,
        rate_limiter=rate_limiter,
        auth_service=auth_service,
        paginator=paginator,
        metrics=metrics,
        terminal=handler,
        compression_min_size=settings.compression_min_size if settings.compression_enabled else None,
    )


def run(**uvicorn_options: Any) -> None:
    """Serve a freshly built app with uvicorn on the configured host/port."""
    import uvicorn

    options: Dict[str, Any] = {
        "host": default_settings.server_host,
        "port": default_settings.server_port,
        "log_config": None,  # keep setup_logging() in charge
    }
    options.update(uvicorn_options)
    uvicorn.run(create_app(), **options)


if __name__ == "__main__":
    run()
