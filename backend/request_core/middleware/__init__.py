# Middleware package init
"""
Request Core — Middleware Package
===================================

What:  Cross-cutting steps applied to every request by MiddlewareChain.
Why:   Functionality needed across all routes without duplicating code in
       each route handler.

Default chain (order matters!):
    Request → [Error] → [Logging] → [Metrics] → [Security] → [Rate Limit]
            → [Cache] → [CORS] → [Auth] → [Validation] → Router

    Why this order:
    1. Error FIRST: every failure below becomes an error envelope
    2. Logging: times and records everything after it
    2a. Metrics: counts every request, 429s and 401s included
    2b. Security: hardening headers on every response, errors included
    3. Rate Limit: reject abusive clients before any real work
    4. Cache: serve hot GETs without touching auth or handlers
    5. CORS: headers land on handler responses and cached replays alike
    6. Auth: only authenticated requests reach body parsing
    7. Validation: handlers only ever see parseable JSON

    Responses travel back through the same steps in reverse.
"""
