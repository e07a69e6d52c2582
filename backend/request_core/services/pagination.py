"""
Request Core — Page/Limit Pagination
======================================

What:  Parses ?page=&limit= and slices in-memory collections into pages.
Why:   List handlers all need the same clamping rules and the same meta block.
How:   Offset pagination: offset = (page - 1) * limit. Pages are 1-based.

Clamping:
    page  < 1          → 1
    limit < 1          → default_limit
    limit > max_limit  → max_limit
    Non-integer values → BadRequest(400)

Headers (for clients that read pagination from headers instead of the body):
    X-Page, X-Limit, X-Total, X-Total-Pages, X-Has-Next, X-Has-Previous
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from starlette.requests import Request

from request_core.exceptions import APIError
from request_core.schemas.envelope import PaginationMeta


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Paginator:
    def __init__(self, default_limit: int = 10, max_limit: int = 100):
        if default_limit < 1 or max_limit < 1:
            raise ValueError("Pagination limits must be positive")
        self.default_limit = min(default_limit, max_limit)
        self.max_limit = max_limit

    def params(self, page: Optional[int] = None, limit: Optional[int] = None) -> PageParams:
        page = 1 if page is None or page < 1 else page
        if limit is None or limit < 1:
            limit = self.default_limit
        return PageParams(page=page, limit=min(limit, self.max_limit))

    def params_from_request(self, request: Request) -> PageParams:
        return self.params(
            _int_param(request, "page"),
            _int_param(request, "limit"),
        )

    def meta(self, params: PageParams, total: int) -> PaginationMeta:
        total_pages = math.ceil(total / params.limit)
        return PaginationMeta(
            page=params.page,
            limit=params.limit,
            total=total,
            total_pages=total_pages,
            has_next=params.page < total_pages,
            has_previous=params.page > 1,
        )

    def paginate(
        self,
        items: Sequence[Any],
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Any], PaginationMeta]:
        params = self.params(page, limit)
        window = list(items[params.offset:params.offset + params.limit])
        return window, self.meta(params, len(items))

    @staticmethod
    def headers(meta: PaginationMeta) -> Dict[str, str]:
        return {
            "X-Page": str(meta.page),
            "X-Limit": str(meta.limit),
            "X-Total": str(meta.total),
            "X-Total-Pages": str(meta.total_pages),
            "X-Has-Next": "true" if meta.has_next else "false",
            "X-Has-Previous": "true" if meta.has_previous else "false",
        }


def _int_param(request: Request, name: str) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise APIError.bad_request(
            f"Query parameter '{name}' must be an integer", details={name: raw}
        )
