"""
Request Core — List Query Helpers
===================================

What:  Filtering, sorting and free-text search over in-memory collections,
       driven by query string parameters.
Why:   List endpoints all accept the same ?field_op=value / ?sort= / ?q=
       conventions; handlers should not re-parse them.
How:   Each helper is configured with the fields it allows. Parameters that
       name unknown fields are ignored rather than rejected, so clients can
       share URLs across resources. Items may be mappings or objects.
Who:   Route handlers, together with Paginator (filter → search → sort → page).

Query conventions:
    ?status=active                  equality (default operator)
    ?price_gte=10&price_lt=50       operator suffix after the last underscore
    ?city_in=["Oslo","Bergen"]      values are parsed as JSON when possible
    ?sort=created_at&direction=desc
    ?q=jazz&fields=name,description&caseSensitive=true
"""

import json
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from starlette.requests import Request


def field_value(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


# ══════════════════════════════════════════════════════════════════════════
# Filtering
# ══════════════════════════════════════════════════════════════════════════

def _contains(value: Any, expected: Any) -> bool:
    return str(expected) in str(value)


def _starts_with(value: Any, expected: Any) -> bool:
    return str(value).startswith(str(expected))


def _ends_with(value: Any, expected: Any) -> bool:
    return str(value).endswith(str(expected))


def _is_in(value: Any, expected: Any) -> bool:
    return isinstance(expected, list) and value in expected


def _not_in(value: Any, expected: Any) -> bool:
    return isinstance(expected, list) and value not in expected


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": _is_in,
    "nin": _not_in,
    "contains": _contains,
    "startsWith": _starts_with,
    "endsWith": _ends_with,
}


@dataclass(frozen=True)
class FilterCondition:
    field: str
    operator: str
    value: Any

    def matches(self, item: Any) -> bool:
        actual = field_value(item, self.field)
        try:
            return bool(OPERATORS[self.operator](actual, self.value))
        except TypeError:
            # Ordering across types (None < 3, "a" > 1) never matches
            return False


class ListFilter:
    def __init__(
        self,
        allowed_fields: Iterable[str],
        allowed_operators: Optional[Iterable[str]] = None,
        default_operator: str = "eq",
    ):
        self.allowed_fields = list(allowed_fields)
        self.allowed_operators = list(allowed_operators or OPERATORS)
        unknown = set(self.allowed_operators) - set(OPERATORS)
        if unknown:
            raise ValueError(f"Unknown filter operators: {sorted(unknown)}")
        self.default_operator = default_operator

    def condition(self, field: str, op: Optional[str], value: Any) -> Optional[FilterCondition]:
        """Validated condition, or None when the field is not filterable."""
        if field not in self.allowed_fields or value is None:
            return None
        if op not in self.allowed_operators:
            op = self.default_operator
        return FilterCondition(field, op, value)

    def _split_key(self, key: str):
        field, _, suffix = key.rpartition("_")
        if field and suffix in OPERATORS:
            return field, suffix
        return key, None

    def params_from_request(self, request: Request) -> List[FilterCondition]:
        conditions = []
        for key, raw in request.query_params.multi_items():
            field, op = self._split_key(key)
            condition = self.condition(field, op, parse_value(raw))
            if condition is not None:
                conditions.append(condition)
        return conditions

    @staticmethod
    def filter(items: Sequence[Any], conditions: Sequence[FilterCondition]) -> List[Any]:
        return [item for item in items if all(c.matches(item) for c in conditions)]

    @staticmethod
    def headers(conditions: Sequence[FilterCondition]) -> Dict[str, str]:
        return {"X-Filter-Count": str(len(conditions))}


# ══════════════════════════════════════════════════════════════════════════
# Sorting
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SortParams:
    field: str
    direction: str  # "asc" | "desc"


class ListSorter:
    def __init__(
        self,
        allowed_fields: Iterable[str],
        default_field: Optional[str] = None,
        default_direction: str = "asc",
    ):
        self.allowed_fields = list(allowed_fields)
        if not self.allowed_fields:
            raise ValueError("ListSorter needs at least one sortable field")
        self.default_field = default_field or self.allowed_fields[0]
        self.default_direction = default_direction

    def params(self, field: Optional[str] = None, direction: Optional[str] = None) -> SortParams:
        """Unknown fields fall back to the default; anything but "desc" is "asc"."""
        if field not in self.allowed_fields:
            field = self.default_field
        return SortParams(field, "desc" if direction == "desc" else "asc")

    def params_from_request(self, request: Request) -> SortParams:
        field = request.query_params.get("sort")
        if not field:
            return SortParams(self.default_field, self.default_direction)
        return self.params(field, request.query_params.get("direction") or self.default_direction)

    def sort(self, items: Sequence[Any], params: Optional[SortParams] = None) -> List[Any]:
        """
        Stable sort on one field. Items missing the field (None) always go
        last, whichever the direction.
        """
        params = params or self.params()
        present = [item for item in items if field_value(item, params.field) is not None]
        missing = [item for item in items if field_value(item, params.field) is None]
        present.sort(
            key=lambda item: field_value(item, params.field),
            reverse=params.direction == "desc",
        )
        return present + missing

    @staticmethod
    def headers(params: SortParams) -> Dict[str, str]:
        return {"X-Sort-Field": params.field, "X-Sort-Direction": params.direction}


# ══════════════════════════════════════════════════════════════════════════
# Search
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SearchParams:
    query: str
    fields: List[str]
    case_sensitive: bool = False


class ListSearch:
    def __init__(
        self,
        searchable_fields: Iterable[str],
        min_length: int = 2,
        max_length: int = 100,
        case_sensitive: bool = False,
    ):
        self.searchable_fields = list(searchable_fields)
        self.min_length = min_length
        self.max_length = max_length
        self.case_sensitive = case_sensitive

    def params(
        self,
        query: Optional[str],
        fields: Optional[Sequence[str]] = None,
        case_sensitive: Optional[bool] = None,
    ) -> Optional[SearchParams]:
        """
        None means "no search": empty or out-of-range query, or no
        searchable field left after intersecting with `fields`.
        """
        query = (query or "").strip()
        if not self.min_length <= len(query) <= self.max_length:
            return None
        requested = fields or self.searchable_fields
        chosen = [f for f in requested if f in self.searchable_fields]
        if not chosen:
            return None
        if case_sensitive is None:
            case_sensitive = self.case_sensitive
        return SearchParams(query, chosen, case_sensitive)

    def params_from_request(self, request: Request) -> Optional[SearchParams]:
        fields = request.query_params.get("fields")
        case_sensitive = request.query_params.get("caseSensitive")
        return self.params(
            request.query_params.get("q"),
            fields.split(",") if fields else None,
            None if case_sensitive is None else case_sensitive == "true",
        )

    @staticmethod
    def search(items: Sequence[Any], params: Optional[SearchParams]) -> List[Any]:
        if params is None:
            return list(items)
        needle = params.query if params.case_sensitive else params.query.lower()

        def hit(item: Any) -> bool:
            for name in params.fields:
                value = field_value(item, name)
                if value is None:
                    continue
                text = str(value) if params.case_sensitive else str(value).lower()
                if needle in text:
                    return True
            return False

        return [item for item in items if hit(item)]

    @staticmethod
    def headers(params: Optional[SearchParams]) -> Dict[str, str]:
        if params is None:
            return {}
        return {
            "X-Search-Query": params.query,
            "X-Search-Fields": ",".join(params.fields),
            "X-Search-Case-Sensitive": str(params.case_sensitive).lower(),
        }
