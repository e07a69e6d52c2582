"""
Request Core — Pagination Unit Tests
======================================
"""

import pytest

from conftest import make_request
from request_core.exceptions import APIError
from request_core.services.pagination import Paginator


class TestParams:
    @pytest.mark.parametrize(
        "page,limit,expected",
        [
            (None, None, (1, 10)),
            (0, 5, (1, 5)),
            (3, 0, (3, 10)),
            (2, 500, (2, 100)),
        ],
    )
    def test_clamping(self, page, limit, expected):
        params = Paginator(default_limit=10, max_limit=100).params(page, limit)
        assert (params.page, params.limit) == expected

    def test_from_request(self):
        params = Paginator().params_from_request(make_request("GET", "/venues", "page=3&limit=20"))
        assert (params.page, params.limit, params.offset) == (3, 20, 40)

    def test_non_integer_is_bad_request(self):
        with pytest.raises(APIError) as exc_info:
            Paginator().params_from_request(make_request("GET", "/venues", "page=two"))
        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"page": "two"}


class TestPaginate:
    def test_middle_page(self):
        items, meta = Paginator().paginate(list(range(25)), page=2, limit=10)
        assert items == list(range(10, 20))
        assert meta.to_payload() == {
            "page": 2,
            "limit": 10,
            "total": 25,
            "totalPages": 3,
            "hasNext": True,
            "hasPrevious": True,
        }

    def test_page_past_the_end_is_empty(self):
        items, meta = Paginator().paginate([1, 2, 3], page=5, limit=2)
        assert items == []
        assert meta.has_next is False

    def test_headers(self):
        _, meta = Paginator().paginate(list(range(3)), page=1, limit=2)
        assert Paginator.headers(meta) == {
            "X-Page": "1",
            "X-Limit": "2",
            "X-Total": "3",
            "X-Total-Pages": "2",
            "X-Has-Next": "true",
            "X-Has-Previous": "false",
        }
