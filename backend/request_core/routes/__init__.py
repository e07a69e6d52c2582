# Routes package init
"""
Request Core — Built-in Routes
================================

Route Inventory:
    - health.py:  GET  /health         (service health check)
    - auth.py:    POST /auth/refresh   (exchange refresh token for a new pair)
    - metrics.py: GET  /metrics         (Prometheus exposition, when metrics are enabled)

Each module exposes register(router, ...) and is wired by create_app().
Routes stay THIN: parse the request, call a service, wrap the result in an
envelope. Everything else lives in services.
"""
