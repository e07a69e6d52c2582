"""
Request Core — Router Unit Tests
==================================

What we test:
    ✅ Literal and :param patterns, anchored at both ends
    ✅ First registered route wins on overlap
    ✅ Wrong method and unknown path are both 404
    ✅ Invalid pattern definitions are rejected at registration
"""

import pytest
from starlette.responses import JSONResponse

from conftest import make_request
from request_core.exceptions import APIError
from request_core.router import Router, compile_pattern


def echo(tag):
    async def handler(request, params):
        return JSONResponse({"tag": tag, "params": params})
    return handler


class TestCompilePattern:
    """Tests for path pattern compilation."""

    def test_literal_path_matches_exactly(self):
        pattern = compile_pattern("/health")
        assert pattern.fullmatch("/health")
        assert not pattern.fullmatch("/health/")
        assert not pattern.fullmatch("/healthz")

    def test_param_captures_one_segment(self):
        pattern = compile_pattern("/venues/:id/bookings")
        found = pattern.fullmatch("/venues/42/bookings")
        assert found.groupdict() == {"id": "42"}
        assert not pattern.fullmatch("/venues/42/43/bookings")
        assert not pattern.fullmatch("/venues//bookings")

    def test_regex_metacharacters_are_literal(self):
        pattern = compile_pattern("/files/v1.0")
        assert pattern.fullmatch("/files/v1.0")
        assert not pattern.fullmatch("/files/v1x0")

    def test_duplicate_param_name_rejected(self):
        with pytest.raises(ValueError):
            compile_pattern("/a/:id/b/:id")

    def test_invalid_param_name_rejected(self):
        with pytest.raises(ValueError):
            compile_pattern("/a/:1bad")


class TestRouterMatch:
    """Tests for Router.match() ordering and method handling."""

    def test_match_binds_params(self):
        router = Router()
        router.get("/users/:user_id/posts/:post_id", echo("posts"))
        route, params = router.match("GET", "/users/7/posts/99")
        assert route.path == "/users/:user_id/posts/:post_id"
        assert params == {"user_id": "7", "post_id": "99"}

    def test_first_registered_wins(self):
        """Overlapping patterns resolve by registration order."""
        router = Router()
        router.get("/venues/:id", echo("param"))
        router.get("/venues/featured", echo("literal"))
        route, params = router.match("GET", "/venues/featured")
        assert route.path == "/venues/:id"
        assert params == {"id": "featured"}

    def test_method_is_case_insensitive(self):
        router = Router()
        router.register("post", "/items", echo("create"))
        assert router.routes[0].method == "POST"
        assert router.match("post", "/items") is not None

    def test_wrong_method_does_not_match(self):
        router = Router()
        router.get("/items", echo("list"))
        assert router.match("DELETE", "/items") is None

    def test_route_decorator_registers(self):
        router = Router()

        @router.route("PUT", "/items/:id")
        async def update(request, params):
            return JSONResponse(params)

        assert router.routes[0].handler is update


class TestRouterDispatch:
    """Tests for Router.dispatch()."""

    @pytest.mark.asyncio
    async def test_dispatch_calls_handler_with_params(self):
        router = Router()
        router.get("/venues/:id", echo("venue"))
        request = make_request("GET", "/venues/abc")

        response = await router.dispatch(request)

        assert response.status_code == 200
        assert b'"id":"abc"' in response.body
        assert request.state.route == "/venues/:id"

    @pytest.mark.asyncio
    async def test_unknown_path_is_not_found(self):
        router = Router()
        router.get("/venues", echo("list"))
        with pytest.raises(APIError) as exc_info:
            await router.dispatch(make_request("GET", "/nope"))
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_method_is_not_found(self):
        """No 405: a known path with the wrong method is still a 404."""
        router = Router()
        router.get("/venues", echo("list"))
        with pytest.raises(APIError) as exc_info:
            await router(make_request("POST", "/venues"))
        assert exc_info.value.status_code == 404
