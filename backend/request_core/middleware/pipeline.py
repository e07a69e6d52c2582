"""
Request Core — Middleware Chain
=================================

What:  Ordered list of middleware steps composed around a terminal handler.
Why:   Cross-cutting concerns (errors, logging, limits, caching, CORS, auth,
       body checks) wrap every request without each handler repeating them.
How:   An explicit ordered list of step objects plus an index-driven
       dispatcher. Step i receives (request, call_next) where call_next is a
       small object that dispatches step i+1, and the last call_next invokes
       the terminal handler (normally Router.dispatch).
Who:   Built by create_app(); RequestCore.handle() runs it per request.

Each step may:
    a) return its own response without calling call_next (short-circuit)
    b) return await call_next(request) unchanged (pass-through)
    c) await call_next(request) and transform the response (e.g. add headers)

Order:
    Steps run in registration order on the way in and in reverse on the way
    out. The first step registered is the outermost:

    Request → [error] → [logging] → [rate limit] → [cache] → [CORS] → [auth] → [validation] → Router
    Response ←──────────────────────────────────────────────────────────────────────────────┘
"""

from typing import Awaitable, Callable, List, Optional, Protocol, Tuple

from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import APIError

CallNext = Callable[[Request], Awaitable[Response]]
Terminal = Callable[[Request], Awaitable[Response]]


class Middleware(Protocol):
    """Shape of a step: the same call signature as Starlette's dispatch()."""

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        ...


class _Next:
    """call_next handed to step `index - 1`: runs the rest of the chain."""

    __slots__ = ("_chain", "_index", "_terminal")

    def __init__(self, chain: "MiddlewareChain", index: int, terminal: Optional[Terminal]):
        self._chain = chain
        self._index = index
        self._terminal = terminal

    async def __call__(self, request: Request) -> Response:
        return await self._chain.dispatch_from(self._index, request, self._terminal)


class MiddlewareChain:
    def __init__(self, terminal: Optional[Terminal] = None):
        self._steps: List[Middleware] = []
        self.terminal = terminal

    @property
    def steps(self) -> Tuple[Middleware, ...]:
        return tuple(self._steps)

    def use(self, step: Middleware) -> "MiddlewareChain":
        self._steps.append(step)
        return self

    def __len__(self) -> int:
        return len(self._steps)

    async def handle(self, request: Request, terminal: Optional[Terminal] = None) -> Response:
        """Run the whole chain for one request."""
        return await self.dispatch_from(0, request, terminal or self.terminal)

    async def dispatch_from(
        self, index: int, request: Request, terminal: Optional[Terminal]
    ) -> Response:
        if index < len(self._steps):
            step = self._steps[index]
            return await step(request, _Next(self, index + 1, terminal))
        if terminal is None:
            raise APIError.internal("No middleware handled the request")
        return await terminal(request)
