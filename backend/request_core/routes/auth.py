"""
Request Core — Token Refresh Route
====================================

What:  POST /auth/refresh exchanges a refresh token for a new token pair.
Why:   Access tokens are short-lived; clients renew them without logging in
       again as long as the refresh token is still valid.
How:   Body is validated with parse_body; AuthService.refresh() verifies the
       refresh token (signature, type, expiry) and issues a fresh pair.

Errors:
    400: body is not JSON or refresh_token is missing
    401: refresh token invalid, expired, or actually an access token

This path is public by default: the caller has no valid access token yet.
Issuing the first pair (login) is left to the embedding application.
"""

from typing import Dict

from pydantic import BaseModel, Field
from starlette.requests import Request
from starlette.responses import Response

from request_core.middleware.validation import parse_body
from request_core.router import Router
from request_core.schemas.envelope import json_response
from request_core.services.auth_service import AuthService


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


def register(router: Router, auth_service: AuthService) -> None:
    async def refresh_tokens(request: Request, params: Dict[str, str]) -> Response:
        body = await parse_body(request, RefreshRequest)
        pair = auth_service.refresh(body.refresh_token)
        return json_response(pair.model_dump(), message="Tokens refreshed")

    router.post("/auth/refresh", refresh_tokens)
