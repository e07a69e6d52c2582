"""
Request Core — Error Taxonomy
===============================

What:  The single error type used by every component of the request core.
Why:   One exception type with an HTTP status, machine-readable code and
       optional details lets every layer fail the same way, and lets the
       error-handling middleware map failures to the wire format in one place.
How:   APIError carries message, status_code, code, details and optional
       response headers. Instances are built through the named factories
       (bad_request, unauthorized, ...) rather than by subclassing.
Who:   Raised by the router, middleware steps, auth service and HTTP client;
       caught only by ErrorHandlerMiddleware (inbound) or calling code (outbound).
When:  Whenever request processing cannot produce a normal response.

Taxonomy:
    APIError
    ├── bad_request          → 400 BAD_REQUEST
    ├── unauthorized         → 401 UNAUTHORIZED
    ├── forbidden            → 403 FORBIDDEN
    ├── not_found            → 404 NOT_FOUND
    ├── conflict             → 409 CONFLICT
    ├── too_many_requests    → 429 TOO_MANY_REQUESTS
    ├── internal             → 500 INTERNAL_SERVER_ERROR
    └── service_unavailable  → 503 SERVICE_UNAVAILABLE

Retry policy:
    Only 429 and 503 are retryable (is_retryable_error). Only 5xx errors are
    logged by the error handler (should_log_error).
"""

import traceback
from typing import Any, Dict, Mapping, Optional


class APIError(Exception):
    """
    Error carrying everything needed to build an error envelope.

    Attributes:
        message:      Human-readable description, returned to the client
        status_code:  HTTP status used for the response
        code:         Stable machine-readable code (e.g. "NOT_FOUND")
        details:      Optional structured payload (field errors, limits, ...)
        headers:      Extra response headers (Retry-After, X-RateLimit-*)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        self.headers = dict(headers or {})
        super().__init__(message)

    def __repr__(self) -> str:
        return f"APIError({self.message!r}, status_code={self.status_code}, code={self.code!r})"

    # ── Factories ─────────────────────────────────────────────────────────

    @classmethod
    def bad_request(cls, message: str = "Bad request", details: Any = None) -> "APIError":
        return cls(message, 400, "BAD_REQUEST", details)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized", details: Any = None) -> "APIError":
        return cls(message, 401, "UNAUTHORIZED", details, headers={"WWW-Authenticate": "Bearer"})

    @classmethod
    def forbidden(cls, message: str = "Forbidden", details: Any = None) -> "APIError":
        return cls(message, 403, "FORBIDDEN", details)

    @classmethod
    def not_found(cls, message: str = "Not found", details: Any = None) -> "APIError":
        return cls(message, 404, "NOT_FOUND", details)

    @classmethod
    def conflict(cls, message: str = "Conflict", details: Any = None) -> "APIError":
        return cls(message, 409, "CONFLICT", details)

    @classmethod
    def too_many_requests(
        cls,
        message: str = "Too many requests",
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> "APIError":
        return cls(message, 429, "TOO_MANY_REQUESTS", details, headers=headers)

    @classmethod
    def internal(cls, message: str = "Internal server error", details: Any = None) -> "APIError":
        return cls(message, 500, "INTERNAL_SERVER_ERROR", details)

    @classmethod
    def service_unavailable(
        cls, message: str = "Service unavailable", details: Any = None
    ) -> "APIError":
        return cls(message, 503, "SERVICE_UNAVAILABLE", details)

    @classmethod
    def from_response(cls, status_code: int, body: Any, reason: str = "") -> "APIError":
        """
        Rebuild an error received from a remote service.

        What:  Reads the `error` object of an error envelope, falling back to
               the HTTP reason phrase when the body is not an envelope.
        Who:   APIClient.handle_response for non-2xx responses.
        """
        error = body.get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            return cls(reason or "An error occurred", status_code)
        return cls(
            error.get("message") or reason or "An error occurred",
            status_code,
            error.get("code"),
            error.get("details"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "status_code": self.status_code,
            "code": self.code,
            "details": self.details,
        }


# ══════════════════════════════════════════════════════════════════════════
# Helpers: classify arbitrary exceptions
# ══════════════════════════════════════════════════════════════════════════

def is_api_error(error: object) -> bool:
    return isinstance(error, APIError)


def handle_api_error(error: object) -> APIError:
    """
    Coerce any raised value into an APIError.

    Non-APIError exceptions become 500 INTERNAL_SERVER_ERROR carrying the
    exception message, so the error envelope always has the same shape.
    """
    if isinstance(error, APIError):
        return error
    if isinstance(error, BaseException) and str(error):
        return APIError.internal(str(error))
    return APIError.internal("An unknown error occurred")


def with_headers(error: BaseException, headers: Mapping[str, str]) -> APIError:
    """
    Coerce `error` into an APIError that also carries `headers`.

    Steps whose headers belong on every response re-raise through this
    so error responses get them too;
    ErrorHandlerMiddleware copies APIError.headers onto the envelope.
    Headers already set on the error win.
    """
    api_error = handle_api_error(error)
    for name, value in headers.items():
        api_error.headers.setdefault(name, value)
    if api_error is not error:
        api_error.__cause__ = error
    return api_error


def get_error_message(error: object) -> str:
    if isinstance(error, APIError):
        return error.message
    if isinstance(error, BaseException) and str(error):
        return str(error)
    return "An unknown error occurred"


def get_error_status_code(error: object) -> int:
    if isinstance(error, APIError):
        return error.status_code
    return 500


def get_error_code(error: object) -> Optional[str]:
    if isinstance(error, APIError):
        return error.code
    return None


def get_error_details(error: object) -> Any:
    if isinstance(error, APIError):
        return error.details
    return None


def is_retryable_error(error: object) -> bool:
    """429 and 503 are the only statuses worth retrying."""
    return get_error_status_code(error) in (429, 503)


def should_log_error(error: object) -> bool:
    """Server-side failures (5xx) are logged; client errors are not."""
    return get_error_status_code(error) >= 500


def format_error_for_logging(error: object) -> Dict[str, Any]:
    stack = None
    if isinstance(error, BaseException) and error.__traceback__ is not None:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return {
        "message": get_error_message(error),
        "status_code": get_error_status_code(error),
        "code": get_error_code(error),
        "details": get_error_details(error),
        "stack": stack,
    }
