"""
Request Core — Token Auth Service
===================================

What:  Issues and verifies bearer tokens; answers role/permission questions.
Why:   Stateless sessions: the token carries the full identity, so any
       process holding the secret can authenticate a request without a
       session store.
How:   Tokens are HMAC-signed JWTs (PyJWT). Access and refresh tokens share
       one payload shape and differ in `type` and lifetime.
Who:   Owned by RequestCore; used by AuthMiddleware and by route handlers
       through require_permission / require_role / require_admin.

Failure modes (always distinguishable):
    missing / malformed / expired / wrong-type token → 401 Unauthorized
    valid token, insufficient role or permission     → 403 Forbidden

Expiry:
    A token is accepted only while now < exp. Expiry is checked against the
    injected clock rather than PyJWT's wall clock so tests control time.
    There is no revocation list: a token stays valid until it expires.
"""

import logging
import time
from typing import Callable, Optional

import jwt
from pydantic import ValidationError
from starlette.requests import Request

from request_core.exceptions import APIError
from request_core.schemas.auth import Role, TokenPair, TokenPayload, TokenType, User
from request_core.services.api_logger import APILogger

logger = logging.getLogger(__name__)


class AuthService:
    """
    Args:
        secret:             HMAC key used to sign and verify tokens
        algorithm:          JWT algorithm (HS256 by default)
        access_token_ttl:   Access token lifetime in seconds (default 1 hour)
        refresh_token_ttl:  Refresh token lifetime in seconds (default 7 days)
        api_logger:         Optional structured logger for verification failures
        clock:              Time source in seconds (injectable for tests)
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_token_ttl: int = 60 * 60,
        refresh_token_ttl: int = 7 * 24 * 60 * 60,
        api_logger: Optional[APILogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("AuthService requires a non-empty secret")
        self.secret = secret
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.refresh_token_ttl = refresh_token_ttl
        self.api_logger = api_logger
        self._clock = clock

    # ── Issuing ───────────────────────────────────────────────────────────

    def _generate_token(self, user: User, token_type: TokenType, ttl: int) -> str:
        now = int(self._clock())
        payload = TokenPayload(
            sub=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            permissions=user.permissions,
            type=token_type,
            iat=now,
            exp=now + ttl,
        )
        return jwt.encode(payload.model_dump(), self.secret, algorithm=self.algorithm)

    def issue_token_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=self._generate_token(user, "access", self.access_token_ttl),
            refresh_token=self._generate_token(user, "refresh", self.refresh_token_ttl),
            expires_in=self.access_token_ttl,
        )

    # ── Verification ──────────────────────────────────────────────────────

    def decode(self, token: str, expected_type: TokenType) -> TokenPayload:
        """
        Verify signature, shape, type and expiry; return the payload.

        Raises APIError.unauthorized on any failure. The reason is logged
        but never returned to the client.
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False},
            )
            payload = TokenPayload.model_validate(claims)
        except (jwt.InvalidTokenError, ValidationError) as e:
            logger.warning("Rejected %s token: %s", expected_type, type(e).__name__)
            raise APIError.unauthorized("Invalid token")

        if payload.type != expected_type:
            logger.warning("Token type mismatch: expected %s, got %s", expected_type, payload.type)
            raise APIError.unauthorized("Invalid token")

        if payload.exp <= self._clock():
            raise APIError.unauthorized("Token expired")

        return payload

    def _verify(self, token: str, token_type: TokenType) -> User:
        try:
            return self.decode(token, token_type).to_user()
        except APIError as e:
            if self.api_logger is not None:
                self.api_logger.warn(
                    f"Failed to verify {token_type} token", {"reason": e.message}
                )
            raise

    def verify_access_token(self, token: str) -> User:
        return self._verify(token, "access")

    def verify_refresh_token(self, token: str) -> User:
        return self._verify(token, "refresh")

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a brand new pair."""
        user = self.verify_refresh_token(refresh_token)
        return self.issue_token_pair(user)

    # ── Authorization Checks ──────────────────────────────────────────────

    @staticmethod
    def has_permission(user: User, permission: str) -> bool:
        return permission in user.permissions

    @staticmethod
    def has_role(user: User, role: Role) -> bool:
        return user.role == role

    def is_admin(self, user: User) -> bool:
        return self.has_role(user, "admin")

    # ── Request Guards ────────────────────────────────────────────────────

    @staticmethod
    def extract_bearer_token(request: Request) -> Optional[str]:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    def authenticate_request(self, request: Request) -> User:
        """
        Returns the user behind the request's bearer token.

        Reuses request.state.user when AuthMiddleware already authenticated
        this request.
        """
        cached = getattr(request.state, "user", None)
        if isinstance(cached, User):
            return cached
        token = self.extract_bearer_token(request)
        if token is None:
            raise APIError.unauthorized()
        return self.verify_access_token(token)

    def require_permission(self, request: Request, permission: str) -> User:
        user = self.authenticate_request(request)
        if not self.has_permission(user, permission):
            raise APIError.forbidden(details={"required_permission": permission})
        return user

    def require_role(self, request: Request, role: Role) -> User:
        user = self.authenticate_request(request)
        if not self.has_role(user, role):
            raise APIError.forbidden(details={"required_role": role})
        return user

    def require_admin(self, request: Request) -> User:
        return self.require_role(request, "admin")
