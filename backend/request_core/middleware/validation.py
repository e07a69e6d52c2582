"""
Request Core — Body Validation Middleware
===========================================

What:  Rejects JSON requests whose body does not parse.
Why:   Handlers can call request.json() / parse_body() without guarding
       against malformed input themselves.
How:   For POST/PUT/PATCH with a JSON content type the body is read and
       parsed once; failure raises BadRequest(400) "Invalid JSON body".
       Starlette caches the body on the Request, so handlers re-read it for free.

parse_body(request, Model) goes one step further: it validates the parsed
body against a pydantic model and reports per-field messages in details.
"""

import json
from typing import Dict, Type, TypeVar

from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import Response

from request_core.exceptions import APIError
from request_core.middleware.pipeline import CallNext

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

M = TypeVar("M", bound=BaseModel)


def is_json_content(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def field_errors(error: ValidationError) -> Dict[str, str]:
    """{"field.path": "message"} for each failed field."""
    errors: Dict[str, str] = {}
    for item in error.errors():
        path = ".".join(str(part) for part in item["loc"]) or "body"
        errors[path] = item["msg"]
    return errors


async def parse_body(request: Request, model: Type[M]) -> M:
    try:
        payload = await request.json()
    except ValueError:
        raise APIError.bad_request("Invalid JSON body")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise APIError.bad_request("Validation failed", details=field_errors(e))


class BodyValidationMiddleware:
    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if request.method in BODY_METHODS and is_json_content(
            request.headers.get("content-type", "")
        ):
            body = await request.body()
            try:
                json.loads(body)
            except ValueError:
                raise APIError.bad_request("Invalid JSON body")
        return await call_next(request)
