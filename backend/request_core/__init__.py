"""
Request Core — Package Initializer
====================================

What: An HTTP request-processing core: routing, an ordered middleware chain,
      and the services the default middleware relies on.
Who:  Imported by embedding applications, pytest, and uvicorn.

Architecture Note:

    ┌─────────────────────────────────────┐
    │     RequestCore (ASGI app, main.py) │  ← lifecycle, wiring
    ├─────────────────────────────────────┤
    │        Middleware chain             │  ← cross-cutting concerns
    ├─────────────────────────────────────┤
    │     Router + route handlers         │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │  Services (cache, limiter, auth,    │  ← stateful building blocks,
    │  logger, pagination, http client)   │    usable without HTTP
    ├─────────────────────────────────────┤
    │  Schemas (envelopes, tokens)        │  ← Pydantic wire contracts
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
