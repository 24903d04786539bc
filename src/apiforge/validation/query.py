"""Parse list-endpoint query strings.

Supported parameters:
    filter[field]=value            exact match (value type-coerced)
    filter[field][op]=value        op in eq/equals, ne/not, gt, gte, lt, lte,
                                   contains, startsWith, endsWith, in, notIn
    sort=field,-field2             "-" descending, "+" (or nothing) ascending
    orderBy=...                    alias for sort
    limit=20 / take=20             clamped to [1, 100]
    offset=0 / skip=0              clamped to >= 0
    page=1                         1-based, overrides offset
    include=relation1,relation2    relations to include
"""

import re
from typing import Any

from apiforge.validation.types import QueryParams

DEFAULT_TAKE = 20
MAX_TAKE = 100

_SIMPLE_FILTER = re.compile(r"^filter\[([^\[\]]+)\]$")
_OPERATOR_FILTER = re.compile(r"^filter\[(\w+)\]\[(\w+)\]$")
_INT_VALUE = re.compile(r"^-?\d+$")
_FLOAT_VALUE = re.compile(r"^-?\d+\.\d+$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

OPERATORS = {
    "eq": "equals",
    "equals": "equals",
    "ne": "not",
    "not": "not",
    "gt": "gt",
    "gte": "gte",
    "lt": "lt",
    "lte": "lte",
    "contains": "contains",
    "startsWith": "startsWith",
    "endsWith": "endsWith",
    "in": "in",
    "notIn": "notIn",
}

LIST_OPERATORS = ("in", "notIn")


def parse_filter_value(value: Any) -> Any:
    """Coerce a query string value to bool, None, int, float or str."""
    if not isinstance(value, str):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    if value == "null":
        return None
    if _INT_VALUE.match(value):
        return int(value)
    if _FLOAT_VALUE.match(value):
        return float(value)
    return value


def _parse_int(value: Any) -> int | None:
    """Leading-integer parse; None when the string has no leading digits."""
    if not isinstance(value, str):
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def _clamp_take(value: Any) -> int:
    parsed = _parse_int(value) or DEFAULT_TAKE
    return min(max(1, parsed), MAX_TAKE)


def _list_values(value: Any) -> list[Any]:
    if isinstance(value, str):
        return [parse_filter_value(v.strip()) for v in value.split(",")]
    if isinstance(value, (list, tuple)):
        return [parse_filter_value(v) for v in value]
    return [parse_filter_value(value)]


def _parse_sort(value: str, sort: dict[str, str]) -> None:
    for token in value.split(","):
        token = token.strip()
        if not token:
            continue
        if token.startswith("-"):
            sort[token[1:]] = "desc"
        elif token.startswith("+"):
            sort[token[1:]] = "asc"
        else:
            sort[token] = "asc"


def validate_query_params(query: dict[str, Any] | None) -> QueryParams:
    """Parse list query parameters into filter/sort/pagination/include."""
    query = query or {}
    params = QueryParams()

    for key, value in query.items():
        simple = _SIMPLE_FILTER.match(key)
        if simple:
            params.filter[simple.group(1)] = parse_filter_value(value)
            continue

        operator_match = _OPERATOR_FILTER.match(key)
        if operator_match:
            field_name, operator = operator_match.groups()
            where_op = OPERATORS.get(operator)
            if where_op is None:
                continue
            if where_op in LIST_OPERATORS:
                params.filter[field_name] = {where_op: _list_values(value)}
            else:
                params.filter[field_name] = {where_op: parse_filter_value(value)}

    for key in ("sort", "orderBy"):
        if isinstance(query.get(key), str):
            _parse_sort(query[key], params.sort)

    for key in ("limit", "take"):
        if isinstance(query.get(key), str):
            params.take = _clamp_take(query[key])

    for key in ("offset", "skip"):
        if isinstance(query.get(key), str):
            params.skip = max(0, _parse_int(query[key]) or 0)

    if isinstance(query.get("page"), str):
        page = max(1, _parse_int(query["page"]) or 1)
        params.skip = (page - 1) * params.take

    if isinstance(query.get("include"), str):
        for name in query["include"].split(","):
            name = name.strip()
            if name:
                params.include[name] = True

    return params
