"""
Request Core — Auth Schemas
=============================

What:  Identity, token payload and token pair models used by AuthService.
Why:   The token IS the session: everything needed to authorize a request
       is embedded in its payload, so the payload shape is a wire contract.
"""

from typing import List, Literal

from pydantic import BaseModel, Field

Role = Literal["user", "admin"]
TokenType = Literal["access", "refresh"]


class User(BaseModel):
    """Authenticated identity, rebuilt from a verified token on every request."""
    id: str = Field(description="Stable subject identifier")
    email: str
    name: str
    role: Role = "user"
    permissions: List[str] = Field(default_factory=list)


class TokenPayload(BaseModel):
    """
    Claims embedded in access and refresh tokens.

    Both token types share this shape and differ only in `type` and `exp`.
    `iat` / `exp` are integer UNIX seconds (JWT convention).
    """
    sub: str
    email: str
    name: str
    role: Role
    permissions: List[str] = Field(default_factory=list)
    type: TokenType
    iat: int
    exp: int

    def to_user(self) -> User:
        return User(
            id=self.sub,
            email=self.email,
            name=self.name,
            role=self.role,
            permissions=list(self.permissions),
        )


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token lifetime in seconds")
