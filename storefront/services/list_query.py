"""Allow-listed list queries built from untrusted query-string parameters."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Generic, Mapping, Optional, Sequence, TypeVar

from fastapi import HTTPException
from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from storefront.schemas.listing import FilterExpression, ListRequest, Range, SearchToken, SortSpec

_LOG = logging.getLogger("storefront.list_query")

T = TypeVar("T")

FIELD_ENUM = "enum"
FIELD_NUMBER_RANGE = "number_range"
FIELD_DATE_RANGE = "date_range"

OWNER_KEY = "$owner"
DEFAULT_SORT_FIELD = "createdAt"
SEARCH_MAX_LENGTH = 100
# Largest row offset the datastore accepts; deeper pages are pinned to it.
MAX_OFFSET = 2**31 - 1
LIKE_ESCAPE = "\\"

DENIED_OPERATORS = (
    "where",
    "expr",
    "function",
    "accumulator",
    "regex",
    "options",
    "ne",
    "eq",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
    "nin",
    "or",
    "and",
    "not",
    "nor",
    "exists",
    "type",
    "elemMatch",
    "jsonSchema",
    "text",
    "mod",
    "all",
    "size",
    "lookup",
)
_DENIED_OPERATOR_RE = re.compile(r"\$(?:" + "|".join(DENIED_OPERATORS) + r")\b", re.IGNORECASE)
_INT_PREFIX_RE = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class FilterField:
    name: str
    column: Any
    kind: str
    choices: tuple[str, ...] = ()
    param: Optional[str] = None

    @property
    def param_stem(self) -> str:
        return self.param or self.name


@dataclass(frozen=True)
class ListQueryConfig:
    model: Any
    items_key: str
    total_key: str
    default_limit: int
    max_limit: int
    filters: tuple[FilterField, ...] = ()
    sortable: Mapping[str, Any] = field(default_factory=dict)
    search_columns: tuple[Any, ...] = ()
    search_number_column: Any = None
    search_related: Optional[Callable[[str], Any]] = None
    allow_search: bool = True
    owner_column: Any = None
    load_options: tuple[Any, ...] = ()


@dataclass
class PageResult(Generic[T]):
    items: list[T]
    total_count: int
    total_pages: int
    current_page: int
    page_size: int

    def to_envelope(self, items_key: str, total_key: str, serialize: Callable[[T], Any] | None = None) -> dict[str, Any]:
        items = [serialize(item) for item in self.items] if serialize else list(self.items)
        return {
            items_key: items,
            "pagination": {
                total_key: self.total_count,
                "totalPages": self.total_pages,
                "currentPage": self.current_page,
                "pageSize": self.page_size,
            },
        }


def _parse_int(raw) -> int | None:
    # Leading-digits parse, so "7abc" is 7 and "abc" is absent.
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    match = _INT_PREFIX_RE.match(str(raw))
    if match is None:
        return None
    return int(match.group(1))


def _parse_number(raw) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip().replace(",", ".")
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def _parse_date_bound(raw, *, end_of_day: bool) -> datetime | None:
    text = str(raw or "").strip()
    if not text:
        return None
    try:
        if "T" not in text and " " not in text and len(text) == 10:
            parsed = datetime.combine(date.fromisoformat(text), time.min, tzinfo=timezone.utc)
        else:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    try:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        else:
            parsed = parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offsets can push year 1 or year 9999 out of range.
        return None
    if end_of_day:
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999000)
    return parsed


def normalize_pagination(page, limit, *, default_limit: int, max_limit: int) -> tuple[int, int]:
    page_num = max(1, _parse_int(page) or 1)
    limit_num = min(max_limit, max(1, _parse_int(limit) or default_limit))
    page_num = min(page_num, MAX_OFFSET // limit_num + 1)
    return page_num, limit_num


def resolve_sort(sort_field, sort_order, sortable: Mapping[str, Any]) -> SortSpec:
    if sort_order is None:
        sort_order = "desc"
    if isinstance(sort_field, str) and sort_field in sortable and sort_order:
        return SortSpec(field=sort_field, dir="desc" if sort_order == "desc" else "asc")
    return SortSpec(field=DEFAULT_SORT_FIELD, dir="desc")


def _merge_bound(expression: FilterExpression, name: str, *, gte=None, lte=None) -> None:
    current = expression.get(name)
    if not isinstance(current, Range):
        current = Range()
    if gte is not None:
        current.gte = gte
    if lte is not None:
        current.lte = lte
    expression[name] = current


def build_filters(
    params: Mapping[str, Any],
    fields: Sequence[FilterField],
    base: FilterExpression | None = None,
) -> FilterExpression:
    expression: FilterExpression = dict(base or {})
    for f in fields:
        if f.kind == FIELD_ENUM:
            raw = params.get(f.param_stem)
            if isinstance(raw, str) and raw in f.choices:
                expression[f.name] = raw
            continue

        raw_from = params.get(f"{f.param_stem}From")
        raw_to = params.get(f"{f.param_stem}To")
        if f.kind == FIELD_NUMBER_RANGE:
            lower = _parse_number(raw_from) if raw_from else None
            upper = _parse_number(raw_to) if raw_to else None
            # Negative bounds are dropped, not clamped.
            if lower is not None and lower >= 0:
                _merge_bound(expression, f.name, gte=lower)
            if upper is not None and upper >= 0:
                _merge_bound(expression, f.name, lte=upper)
        elif f.kind == FIELD_DATE_RANGE:
            lower = _parse_date_bound(raw_from, end_of_day=False) if raw_from else None
            upper = _parse_date_bound(raw_to, end_of_day=True) if raw_to else None
            if lower is not None:
                _merge_bound(expression, f.name, gte=lower)
            if upper is not None:
                _merge_bound(expression, f.name, lte=upper)
    return expression


def escape_like(text: str) -> str:
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _positive_int(text: str) -> int | None:
    value = _parse_number(text)
    if value is None or value <= 0 or value != value.to_integral_value():
        return None
    return int(value)


def sanitize_search(raw, *, max_length: int = SEARCH_MAX_LENGTH) -> SearchToken | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    pattern = escape_like(text)
    if len(pattern) > max_length:
        raise HTTPException(status_code=400, detail="Search query is too long")
    if _DENIED_OPERATOR_RE.search(text):
        raise HTTPException(status_code=400, detail="Search query contains a forbidden operator")
    return SearchToken(text=text, pattern=pattern, number=_positive_int(text))


def build_list_request(config: ListQueryConfig, params: Mapping[str, Any], *, owner_id=None) -> ListRequest:
    base: FilterExpression = {}
    if config.owner_column is not None:
        if owner_id is None:
            raise ValueError("owner_id is required for an owner-scoped listing")
        base[OWNER_KEY] = owner_id

    raw_search = params.get("search")
    if raw_search and not config.allow_search:
        raise HTTPException(status_code=400, detail="Search is not available for this listing")

    page, limit = normalize_pagination(
        params.get("page"),
        params.get("limit"),
        default_limit=config.default_limit,
        max_limit=config.max_limit,
    )
    return ListRequest(
        page=page,
        limit=limit,
        sort=resolve_sort(params.get("sortField"), params.get("sortOrder"), config.sortable),
        filters=build_filters(params, config.filters, base),
        search=sanitize_search(raw_search) if config.allow_search else None,
    )


def compile_filters(config: ListQueryConfig, expression: FilterExpression) -> list:
    columns = {f.name: f.column for f in config.filters}
    if config.owner_column is not None:
        columns[OWNER_KEY] = config.owner_column
    criteria = []
    for name, value in expression.items():
        col = columns.get(name)
        if col is None:
            continue
        if isinstance(value, Range):
            if value.gte is not None:
                criteria.append(col >= value.gte)
            if value.lte is not None:
                criteria.append(col <= value.lte)
        else:
            criteria.append(col == value)
    return criteria


def compile_search(config: ListQueryConfig, token: SearchToken):
    like = f"%{token.pattern}%"
    clauses = [col.ilike(like, escape=LIKE_ESCAPE) for col in config.search_columns]
    if config.search_related is not None:
        clauses.append(config.search_related(like))
    if token.number is not None and config.search_number_column is not None:
        clauses.append(config.search_number_column == token.number)
    return or_(*clauses)


def compile_sort(config: ListQueryConfig, sort: SortSpec) -> list:
    col = config.sortable.get(sort.field)
    if col is None:
        col = config.model.created_at
    direction = desc if sort.dir == "desc" else asc
    return [direction(col), direction(config.model.id)]


def execute_list_query(db: Session, config: ListQueryConfig, request: ListRequest) -> PageResult:
    criteria = compile_filters(config, request.filters)
    if request.search is not None:
        criteria.append(compile_search(config, request.search))

    q = db.query(config.model).filter(*criteria)
    total = q.count()
    rows = (
        q.options(*config.load_options)
        .order_by(*compile_sort(config, request.sort))
        .offset(request.offset)
        .limit(request.limit)
        .all()
    )
    _LOG.debug(
        "list %s page=%s limit=%s total=%s",
        config.model.__tablename__,
        request.page,
        request.limit,
        total,
    )
    return PageResult(
        items=list(rows),
        total_count=total,
        total_pages=math.ceil(total / request.limit),
        current_page=request.page,
        page_size=request.limit,
    )


def run_list_query(db: Session, config: ListQueryConfig, params: Mapping[str, Any], *, owner_id=None) -> PageResult:
    request = build_list_request(config, params, owner_id=owner_id)
    return execute_list_query(db, config, request)
