"""
Request Core — End-to-End Tests
=================================

What:  The assembled RequestCore exercised over HTTP via ASGITransport.
Why:   Verifies the default chain order and the built-in routes together,
       which unit tests of individual steps cannot.
"""

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.responses import JSONResponse

from request_core import __version__
from request_core.config import Settings
from request_core.exceptions import APIError
from request_core.main import create_app
from request_core.schemas.envelope import json_response


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


async def ok(request, params):
    return JSONResponse({"data": "ok"})


@pytest.fixture
def access_token(auth_service, user):
    return auth_service.issue_token_pair(user).access_token


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_is_public(self, test_client, clock):
        clock.advance(12.5)
        response = await test_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {
            "data": {"status": "healthy", "version": __version__, "uptime_seconds": 12.5}
        }
        assert response.headers["access-control-allow-origin"] == "*"

    @pytest.mark.asyncio
    async def test_health_not_rate_limited(self, test_client):
        for _ in range(10):
            response = await test_client.get("/health")
            assert response.status_code == 200
        assert "x-ratelimit-limit" not in response.headers


class TestRouting:
    @pytest.mark.asyncio
    async def test_registered_route_with_params(self, app, test_client, access_token):
        async def get_venue(request, params):
            return json_response({"id": params["id"], "viewer": request.state.user.id})

        app.get("/venues/:id", get_venue)
        response = await test_client.get("/venues/42", headers=bearer(access_token))

        assert response.status_code == 200
        assert response.json() == {"data": {"id": "42", "viewer": "user-1"}}
        assert response.headers["x-ratelimit-remaining"] == "4"

    @pytest.mark.asyncio
    async def test_unknown_route_is_404_envelope(self, test_client, access_token):
        response = await test_client.get("/nowhere", headers=bearer(access_token))
        assert response.status_code == 404
        assert response.json() == {"error": {"message": "Not found", "code": "NOT_FOUND"}}

    @pytest.mark.asyncio
    async def test_auth_runs_before_routing(self, test_client):
        response = await test_client.get("/nowhere")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_500(self, app, test_client, access_token):
        async def broken(request, params):
            raise ZeroDivisionError("division by zero")

        app.get("/broken", broken)
        response = await test_client.get("/broken", headers=bearer(access_token))

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_SERVER_ERROR"
        assert app.api_logger.get_entries("error")

    @pytest.mark.asyncio
    async def test_guard_inside_handler_is_403(self, app, test_client, access_token):
        async def admin_only(request, params):
            app.auth_service.require_admin(request)
            return json_response({"ok": True})

        app.delete("/venues/:id", admin_only)
        response = await test_client.delete("/venues/1", headers=bearer(access_token))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_paginated_listing(self, app, test_client, access_token):
        venues = [{"id": i} for i in range(1, 24)]

        async def list_venues(request, params):
            page = app.paginator.params_from_request(request)
            items, meta = app.paginator.paginate(venues, page.page, page.limit)
            return json_response(items, meta=meta, headers=app.paginator.headers(meta))

        app.get("/venues", list_venues)
        response = await test_client.get("/venues?page=3", headers=bearer(access_token))

        body = response.json()
        assert [v["id"] for v in body["data"]] == [21, 22, 23]
        assert body["meta"]["totalPages"] == 3
        assert body["meta"]["hasNext"] is False
        assert response.headers["x-total"] == "23"


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_sixth_request_is_429(self, app, test_client, access_token):
        app.get("/venues", ok)
        statuses = []
        for _ in range(6):
            response = await test_client.get("/venues", headers=bearer(access_token))
            statuses.append(response.status_code)

        assert statuses == [200] * 5 + [429]
        assert response.json()["error"]["code"] == "TOO_MANY_REQUESTS"
        assert response.headers["retry-after"] == "60"
        assert response.headers["x-ratelimit-remaining"] == "0"

    @pytest.mark.asyncio
    async def test_window_reset_allows_again(self, app, test_client, clock, access_token):
        app.get("/venues", ok)
        for _ in range(6):
            await test_client.get("/venues", headers=bearer(access_token))
        clock.advance(61)
        response = await test_client.get("/venues", headers=bearer(access_token))
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, clock):
        settings = Settings(
            auth_secret="s", rate_limit_enabled=False, cache_enabled=False, _env_file=None
        )
        app = create_app(settings, clock=clock)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")
        assert "x-ratelimit-limit" not in response.headers
        assert "x-cache" not in response.headers


class TestCaching:
    @pytest.mark.asyncio
    async def test_authenticated_get_not_cached(self, app, test_client, access_token):
        calls = []

        async def profile(request, params):
            calls.append(1)
            return json_response({"id": request.state.user.id})

        app.get("/me", profile)
        for _ in range(2):
            response = await test_client.get("/me", headers=bearer(access_token))
        assert calls == [1, 1]
        assert "x-cache" not in response.headers

    @pytest.mark.asyncio
    async def test_health_served_from_cache(self, test_client):
        first = await test_client.get("/health")
        second = await test_client.get("/health")
        assert first.headers["x-cache"] == "MISS"
        assert second.headers["x-cache"] == "HIT"
        assert second.headers["etag"]

        not_modified = await test_client.get(
            "/health", headers={"If-None-Match": second.headers["etag"]}
        )
        assert not_modified.status_code == 304


class TestBodyValidation:
    @pytest.mark.asyncio
    async def test_malformed_json_is_400(self, app, test_client, access_token):
        app.post("/venues", ok)
        response = await test_client.post(
            "/venues",
            content=b"{not json",
            headers={**bearer(access_token), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid JSON body"


class TestTokenRefresh:
    @pytest.mark.asyncio
    async def test_refresh_issues_new_pair(self, test_client, auth_service, user):
        pair = auth_service.issue_token_pair(user)
        response = await test_client.post(
            "/auth/refresh", json={"refresh_token": pair.refresh_token}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Tokens refreshed"
        renewed = body["data"]
        assert auth_service.verify_access_token(renewed["access_token"]) == user

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, test_client, access_token):
        response = await test_client.post("/auth/refresh", json={"refresh_token": access_token})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_field_reports_details(self, test_client):
        response = await test_client.post("/auth/refresh", json={})
        assert response.status_code == 400
        assert "refresh_token" in response.json()["error"]["details"]


class TestApplication:
    @pytest.mark.asyncio
    async def test_custom_terminal_handler(self, test_settings, clock):
        async def terminal(request):
            raise APIError.service_unavailable("maintenance")

        app = create_app(test_settings, handler=terminal, clock=clock)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")
        assert response.status_code == 503
        assert response.json()["error"]["message"] == "maintenance"

    @pytest.mark.asyncio
    async def test_lifespan_startup_and_shutdown(self, app):
        messages = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
        sent = []

        async def receive():
            return messages.pop(0)

        async def send(message):
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)

        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]
        assert len(app.rate_limiter) == 0

    @pytest.mark.asyncio
    async def test_create_client_uses_client_settings(self, app):
        client = app.create_client("http://upstream", max_retries=0)
        async with client:
            assert client.timeout == app.settings.client_timeout
            assert client.retry_delay == app.settings.client_retry_delay
            assert client.max_retries == 0


class TestErrorResponseHeaders:
    @pytest.mark.asyncio
    async def test_cors_headers_on_401(self, test_client):
        response = await test_client.get("/venues/1")
        assert response.status_code == 401
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_cors_and_rate_limit_headers_on_404(self, test_client, access_token):
        response = await test_client.get("/nope", headers=bearer(access_token))
        assert response.status_code == 404
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["x-ratelimit-limit"] == "5"
        assert response.headers["x-ratelimit-remaining"] == "4"

    @pytest.mark.asyncio
    async def test_rate_limit_headers_on_400(self, app, test_client, access_token):
        app.post("/venues", ok)
        response = await test_client.post(
            "/venues",
            content=b"{not json",
            headers={**bearer(access_token), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.headers["x-ratelimit-limit"] == "5"

    @pytest.mark.asyncio
    async def test_handler_crash_keeps_all_headers(self, app, test_client, access_token):
        async def broken(request, params):
            raise RuntimeError("boom")

        app.get("/broken", broken)
        response = await test_client.get("/broken", headers=bearer(access_token))

        assert response.status_code == 500
        assert response.json()["error"]["message"] == "boom"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["x-ratelimit-limit"] == "5"
        assert response.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_not_modified_keeps_cors_headers(self, test_client):
        await test_client.get("/health")
        second = await test_client.get("/health")
        response = await test_client.get(
            "/health", headers={"If-None-Match": second.headers["etag"]}
        )
        assert response.status_code == 304
        assert response.headers["access-control-allow-origin"] == "*"


class TestSecurityHeaders:
    @pytest.mark.asyncio
    async def test_present_on_success(self, test_client):
        response = await test_client.get("/health")
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["content-security-policy"] == "default-src 'self'; frame-ancestors 'none'"
        # plain http: no HSTS
        assert "strict-transport-security" not in response.headers

    @pytest.mark.asyncio
    async def test_present_on_429(self, app, test_client, access_token):
        app.get("/venues", ok)
        for _ in range(6):
            response = await test_client.get("/venues", headers=bearer(access_token))
        assert response.status_code == 429
        assert response.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, clock):
        settings = Settings(auth_secret="s", security_headers_enabled=False, _env_file=None)
        app = create_app(settings, clock=clock)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health")
        assert "x-frame-options" not in response.headers


class TestCompression:
    @pytest.mark.asyncio
    async def test_large_response_is_gzipped(self, app, test_client, access_token):
        async def catalogue(request, params):
            return json_response([{"id": i, "name": f"Venue {i}"} for i in range(100)])

        app.get("/venues", catalogue)
        response = await test_client.get(
            "/venues", headers={**bearer(access_token), "Accept-Encoding": "gzip"}
        )

        assert response.status_code == 200
        assert response.headers["content-encoding"] == "gzip"
        assert len(response.json()["data"]) == 100

    @pytest.mark.asyncio
    async def test_small_response_left_alone(self, test_client):
        response = await test_client.get("/health", headers={"Accept-Encoding": "gzip"})
        assert "content-encoding" not in response.headers

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, clock):
        settings = Settings(
            auth_secret="s", compression_enabled=False, compression_min_size=0, _env_file=None
        )
        app = create_app(settings, clock=clock)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/health", headers={"Accept-Encoding": "gzip"})
        assert "content-encoding" not in response.headers


class TestMetrics:
    @pytest.mark.asyncio
    async def test_requests_counted_by_route_pattern(self, app, test_client, access_token):
        async def get_venue(request, params):
            return json_response({"id": params["id"]})

        app.get("/venues/:id", get_venue)
        for venue_id in ("1", "2"):
            await test_client.get(f"/venues/{venue_id}", headers=bearer(access_token))

        assert app.metrics.value(
            "requests_total", method="GET", path="/venues/:id", status="200"
        ) == 2
        assert app.metrics.value(
            "request_duration_seconds_count", method="GET", path="/venues/:id"
        ) == 2

    @pytest.mark.asyncio
    async def test_errors_counted(self, app, test_client):
        await test_client.get("/venues/1")
        assert app.metrics.value(
            "requests_total", method="GET", path="unmatched", status="401"
        ) == 1
        assert app.metrics.value(
            "errors_total", method="GET", path="unmatched", error="UNAUTHORIZED"
        ) == 1

    @pytest.mark.asyncio
    async def test_exposition_endpoint_is_public_and_uncached(self, test_client):
        await test_client.get("/health")
        first = await test_client.get("/metrics")
        second = await test_client.get("/metrics")

        assert first.status_code == 200
        assert first.headers["content-type"].startswith("text/plain")
        assert first.headers["cache-control"] == "no-store"
        assert "x-cache" not in second.headers
        assert 'api_requests_total{method="GET",path="/health",status="200"}' in second.text

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, clock):
        settings = Settings(auth_secret="s", metrics_enabled=False, _env_file=None)
        app = create_app(settings, clock=clock)
        assert app.metrics is None
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/metrics")
        assert response.status_code == 404
