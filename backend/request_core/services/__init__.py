# Services package init
"""
Request Core — Services Layer
===============================

Service Inventory:
    - APILogger:      leveled structured logger with a bounded in-memory buffer
    - ResponseCache:  TTL + ETag response store with size-bounded eviction
    - RateLimiter:    fixed-window counter per (client, path)
    - AuthService:    JWT access/refresh tokens, role and permission guards
    - Paginator:      page/limit parsing and pagination meta
    - APIClient:      outbound HTTP with timeout and retry/backoff
    - RequestMetrics: Prometheus request/error counters and latency histogram
    - ListFilter, ListSorter, ListSearch: query-string driven list helpers

Why services are separate from middleware:
    1. Testability: each is unit-tested without HTTP overhead
    2. Reusability: handlers call them directly (guards, pagination, client)
    3. Single responsibility: middleware decides *when*, services decide *how*
"""
