"""
Request Core — Configuration
==============================

What:  Centralized configuration for every component of the request core.
Why:   Type-safe environment variable loading with validation on startup.
       Fails fast on impossible values (negative TTLs, unknown log levels).
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a default `settings` object.
Who:   Read by create_app(), which hands the values to each component.
When:  Loaded once at import time; create_app() may receive its own instance.

Design Decision:
    Components never read `settings` themselves. They take explicit keyword
    arguments, and create_app() is the only place that maps settings onto
    them. Tests build components directly with whatever values they need.
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_AUTH_SECRET = "change-me"


class Settings(BaseSettings):
    """
    Request core settings loaded from environment variables.

    All settings have defaults suitable for development. Production
    deployments MUST override AUTH_SECRET.
    """

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Fixed window: at most max_requests per (client, path) per window
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_window: float = Field(default=15 * 60, gt=0)  # seconds
    rate_limit_max_requests: int = Field(default=100, ge=1)
    rate_limit_client_header: str = Field(default="x-forwarded-for")

    # ── Response Cache ────────────────────────────────────────────────────
    cache_enabled: bool = Field(default=True)
    cache_ttl: float = Field(default=60, gt=0)  # seconds
    cache_max_size: int = Field(default=1000, ge=1)
    cache_stale_while_revalidate: bool = Field(default=False)
    cache_headers: bool = Field(default=True)

    # ── Auth ──────────────────────────────────────────────────────────────
    auth_secret: str = Field(default=DEFAULT_AUTH_SECRET)
    auth_algorithm: str = Field(default="HS256")
    access_token_ttl: int = Field(default=60 * 60, ge=1)  # 1 hour
    refresh_token_ttl: int = Field(default=7 * 24 * 60 * 60, ge=1)  # 7 days
    # Comma-separated paths that skip the auth step
    auth_public_paths: str = Field(default="/health,/auth/refresh,/metrics")

    @property
    def auth_public_paths_list(self) -> List[str]:
        return [p.strip() for p in self.auth_public_paths.split(",") if p.strip()]

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = Field(default="info")
    log_format: str = Field(default="json")
    log_timestamp: bool = Field(default=True)
    log_max_entries: int = Field(default=1000, ge=1)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accepts debug/info/warn/error in any case; 'warning' maps to 'warn'."""
        lower = v.lower()
        if lower == "warning":
            lower = "warn"
        valid_levels = {"debug", "info", "warn", "error"}
        if lower not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {sorted(valid_levels)}")
        return lower

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"json", "text"}:
            raise ValueError(f"Invalid log_format '{v}'. Must be 'json' or 'text'")
        return lower

    # ── Outbound Client ───────────────────────────────────────────────────
    # delay after failed attempt n = client_retry_delay * 2**(n-1)
    client_timeout: float = Field(default=30, gt=0)
    client_max_retries: int = Field(default=3, ge=0, le=10)
    client_retry_delay: float = Field(default=1, ge=0)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_allow_origin: str = Field(default="*")

    # ── Security Headers ──────────────────────────────────────────────────
    security_headers_enabled: bool = Field(default=True)
    security_csp: str = Field(default="default-src 'self'; frame-ancestors 'none'")

    # ── Compression ───────────────────────────────────────────────────────
    # gzip only when the client accepts it and the body is large enough
    compression_enabled: bool = Field(default=True)
    compression_min_size: int = Field(default=500, ge=0)  # bytes

    # ── Metrics ───────────────────────────────────────────────────────────
    metrics_enabled: bool = Field(default=True)
    metrics_path: str = Field(default="/metrics")
    metrics_prefix: str = Field(default="api")

    # ── Pagination ────────────────────────────────────────────────────────
    pagination_default_limit: int = Field(default=10, ge=1)
    pagination_max_limit: int = Field(default=100, ge=1)

    # ── Server ────────────────────────────────────────────────────────────
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000, ge=1, le=65535)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that security-sensitive settings were overridden.
        When:  Called during startup (RequestCore.startup).
        Raises ValueError listing every problem found.
        """
        errors = []
        if not self.auth_secret or self.auth_secret == DEFAULT_AUTH_SECRET:
            errors.append("AUTH_SECRET is not set. Tokens are signed with a development key.")
        if self.pagination_default_limit > self.pagination_max_limit:
            errors.append("PAGINATION_DEFAULT_LIMIT exceeds PAGINATION_MAX_LIMIT.")
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Environment defaults; create_app() falls back to this when given no settings
settings = Settings()
