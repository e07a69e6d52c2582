"""
Request Core — Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Provides reusable test infrastructure (fake clock, request factory,
       settings, an app and an HTTP client bound to it).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── clock:          FakeClock starting at a fixed epoch
    ├── test_settings:  Settings with a test secret and deterministic defaults
    ├── app:            RequestCore built from test_settings + clock
    ├── auth_service:   The app's AuthService (for issuing tokens)
    └── test_client:    HTTPX AsyncClient for end-to-end endpoint testing

Helpers:
    make_request(): a starlette Request built from a raw ASGI scope, for
    unit-testing middleware steps and services without a server.
"""

import os
from typing import Dict, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from starlette.requests import Request


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Override settings for testing BEFORE any app imports
# Why: keeps a developer's .env from leaking into test runs
os.environ["AUTH_SECRET"] = "test-secret-not-real"
os.environ["LOG_LEVEL"] = "error"  # Reduce noise during tests

from request_core.config import Settings  # noqa: E402
from request_core.main import create_app  # noqa: E402
from request_core.schemas.auth import User  # noqa: E402


START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced time source in seconds."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_request(
    method: str = "GET",
    path: str = "/",
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
    body: bytes = b"",
    client: Optional[Tuple[str, int]] = ("127.0.0.1", 50000),
) -> Request:
    """Build a starlette Request directly from an ASGI scope."""
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": raw_headers,
        "client": client,
        "server": ("testserver", 80),
    }
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    """
    Settings used by the app fixture.

    Tests needing other values build their own Settings(...) and call
    create_app directly.
    """
    return Settings(
        auth_secret="test-secret-not-real",
        log_level="error",
        rate_limit_max_requests=5,
        rate_limit_window=60,
        cache_ttl=30,
        _env_file=None,
    )


@pytest.fixture
def app(test_settings, clock):
    return create_app(test_settings, clock=clock)


@pytest.fixture
def auth_service(app):
    return app.auth_service


@pytest.fixture
def user():
    return User(
        id="user-1",
        email="ada@example.com",
        name="Ada",
        role="user",
        permissions=["venues:read"],
    )


@pytest.fixture
def admin():
    return User(
        id="admin-1",
        email="root@example.com",
        name="Root",
        role="admin",
        permissions=["venues:read", "venues:write"],
    )


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    What:    HTTPX AsyncClient configured to talk to the RequestCore app.
    Why:     Enables testing the full middleware chain without running a server.
    How:     Uses ASGITransport to route requests directly to the app.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
