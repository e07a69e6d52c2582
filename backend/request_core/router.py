"""
Request Core — Router
=======================

What:  Method + path pattern matching and dispatch to registered handlers.
Why:   The innermost stage of the middleware chain needs to turn a request
       into a handler call with its path parameters bound.
How:   Each pattern is compiled once at registration into an anchored regex
       with one named group per `:param` segment. dispatch() scans routes in
       registration order; the first route whose method and regex both match
       wins.
Who:   Populated at startup (create_app, routes/*.register); called by the
       chain as its terminal handler.

Pattern syntax:
    /venues/:id            → ^/venues/(?P<id>[^/]+)$
    /venues/:id/bookings   → ^/venues/(?P<id>[^/]+)/bookings$
    Literal segments match exactly (regex metacharacters are escaped);
    a parameter matches one non-empty segment.

Not found:
    A wrong method and an unknown path are both NotFound(404). Callers may
    rely on that conflation, so no 405 is produced.
"""

import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Pattern, Tuple

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import APIError

RouteHandler = Callable[[Request, Dict[str, str]], Awaitable[Response]]

_PARAM_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    matcher: Pattern[str]
    handler: RouteHandler

    def match(self, path: str) -> Optional[Dict[str, str]]:
        found = self.matcher.fullmatch(path)
        if found is None:
            return None
        return found.groupdict()


def compile_pattern(path: str) -> Pattern[str]:
    """
    Compile a `/segment/:param` pattern into an anchored regex.

    Raises ValueError for invalid or duplicate parameter names.
    """
    seen = set()
    parts = []
    for segment in path.split("/"):
        if segment.startswith(":"):
            name = segment[1:]
            if not _PARAM_NAME.match(name):
                raise ValueError(f"Invalid route parameter '{segment}' in '{path}'")
            if name in seen:
                raise ValueError(f"Duplicate route parameter '{name}' in '{path}'")
            seen.add(name)
            parts.append(f"(?P<{name}>[^/]+)")
        else:
            parts.append(re.escape(segment))
    return re.compile("/".join(parts))


class Router:
    """
    Ordered route table. Registration order is the tie-break: for
    overlapping patterns the route registered first always wins.
    """

    def __init__(self) -> None:
        self._routes: List[Route] = []

    @property
    def routes(self) -> Tuple[Route, ...]:
        return tuple(self._routes)

    def register(self, method: str, path: str, handler: RouteHandler) -> Route:
        route = Route(
            method=method.upper(),
            path=path,
            matcher=compile_pattern(path),
            handler=handler,
        )
        self._routes.append(route)
        return route

    def get(self, path: str, handler: RouteHandler) -> Route:
        return self.register("GET", path, handler)

    def post(self, path: str, handler: RouteHandler) -> Route:
        return self.register("POST", path, handler)

    def put(self, path: str, handler: RouteHandler) -> Route:
        return self.register("PUT", path, handler)

    def patch(self, path: str, handler: RouteHandler) -> Route:
        return self.register("PATCH", path, handler)

    def delete(self, path: str, handler: RouteHandler) -> Route:
        return self.register("DELETE", path, handler)

    def route(self, method: str, path: str) -> Callable[[RouteHandler], RouteHandler]:
        """Decorator form of register()."""
        def decorator(handler: RouteHandler) -> RouteHandler:
            self.register(method, path, handler)
            return handler
        return decorator

    def match(self, method: str, path: str) -> Optional[Tuple[Route, Dict[str, str]]]:
        method = method.upper()
        for route in self._routes:
            if route.method != method:
                continue
            params = route.match(path)
            if params is not None:
                return route, params
        return None

    async def dispatch(self, request: Request) -> Response:
        found = self.match(request.method, request.url.path)
        if found is None:
            raise APIError.not_found()
        route, params = found
        request.state.route = route.path
        return await route.handler(request, params)

    async def __call__(self, request: Request) -> Response:
        return await self.dispatch(request)
