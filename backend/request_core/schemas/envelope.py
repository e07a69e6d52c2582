"""
Request Core — Response Envelopes
===================================

What:  Pydantic models and builders for the uniform response body format.
Why:   Every response body conforms to one of two shapes, so clients parse
       success and failure the same way on every endpoint.
How:   Handlers build SuccessEnvelope via create_success_response / json_response;
       the error handler builds ErrorEnvelope via create_error_response.
Who:   Route handlers, ErrorHandlerMiddleware, APIClient (parsing remote bodies).

Wire shapes:
    success: {"data": ..., "message"?: str, "meta"?: {page, limit, total, totalPages}}
    error:   {"error": {"message": str, "code"?: str, "details"?: ...}}

Optional keys are omitted when unset rather than serialized as null.
"""

import math
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from request_core.exceptions import handle_api_error


# ══════════════════════════════════════════════════════════════════════════
# Envelope Models
# ══════════════════════════════════════════════════════════════════════════


class PaginationMeta(BaseModel):
    """
    What:  Pagination block carried in `meta` of list responses.
    Why camelCase aliases: The wire format predates this package and its
           consumers read `totalPages`, `hasNext`, `hasPrevious`.
    """
    page: int = Field(ge=1, description="1-based page number")
    limit: int = Field(ge=1, description="Items per page")
    total: int = Field(ge=0, description="Total items across all pages")
    total_pages: int = Field(ge=0, alias="totalPages")
    has_next: Optional[bool] = Field(default=None, alias="hasNext")
    has_previous: Optional[bool] = Field(default=None, alias="hasPrevious")

    model_config = {"populate_by_name": True}

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SuccessEnvelope(BaseModel):
    """Body of every successful response."""
    data: Any = None
    message: Optional[str] = None
    meta: Optional[PaginationMeta] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "data": self.model_dump(mode="json", include={"data"})["data"],
        }
        if self.message is not None:
            payload["message"] = self.message
        if self.meta is not None:
            payload["meta"] = self.meta.to_payload()
        return payload


class ErrorBody(BaseModel):
    message: str
    code: Optional[str] = None
    details: Any = None


class ErrorEnvelope(BaseModel):
    """Body of every error response."""
    error: ErrorBody

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.error.message}
        if self.error.code is not None:
            body["code"] = self.error.code
        if self.error.details is not None:
            body["details"] = self.model_dump(mode="json")["error"]["details"]
        return {"error": body}


# ══════════════════════════════════════════════════════════════════════════
# Builders
# ══════════════════════════════════════════════════════════════════════════


def create_success_response(
    data: Any,
    message: Optional[str] = None,
    meta: Optional[PaginationMeta] = None,
) -> SuccessEnvelope:
    return SuccessEnvelope(data=data, message=message, meta=meta)


def create_error_response(error: object) -> ErrorEnvelope:
    """Builds the error envelope for any raised value (non-APIError → 500)."""
    api_error = handle_api_error(error)
    return ErrorEnvelope(
        error=ErrorBody(message=api_error.message, code=api_error.code, details=api_error.details)
    )


def create_paginated_response(
    data: Sequence[Any],
    page: int,
    limit: int,
    total: int,
    message: Optional[str] = None,
) -> SuccessEnvelope:
    """
    Wraps one page of results with its pagination meta.

    total_pages = ceil(total / limit); an empty collection has 0 pages.
    A limit below 1 fails PaginationMeta validation (pydantic ValidationError).
    """
    meta = PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if limit > 0 else 0,
    )
    return create_success_response(list(data), message, meta)


def create_message_response(message: str, meta: Optional[PaginationMeta] = None) -> SuccessEnvelope:
    return create_success_response(None, message, meta)


def create_empty_response(
    message: Optional[str] = None, meta: Optional[PaginationMeta] = None
) -> SuccessEnvelope:
    return create_success_response({}, message, meta)


def is_success_response(body: object) -> bool:
    return isinstance(body, dict) and "data" in body and "error" not in body


def is_error_response(body: object) -> bool:
    return (
        isinstance(body, dict)
        and isinstance(body.get("error"), dict)
        and "message" in body["error"]
    )


def json_response(
    data: Any,
    status_code: int = 200,
    message: Optional[str] = None,
    meta: Optional[PaginationMeta] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """
    What:  Shortcut for handlers: wrap `data` in a success envelope.
    Returns a JSONResponse ready to flow back through the middleware chain.
    """
    envelope = create_success_response(data, message, meta)
    return JSONResponse(envelope.to_payload(), status_code=status_code, headers=headers)
