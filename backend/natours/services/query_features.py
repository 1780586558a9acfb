"""
Natours Backend: Query-String Filtering, Sorting, Field Limiting, Pagination
=============================================================================

What:  Turns list-endpoint query strings into a SQLAlchemy SELECT.
Why:   Every list endpoint (tours, users, reviews) supports the same query
       language; implementing it once keeps them consistent.
How:   QueryFeatures wraps a base `Select` and a mapping of public
       (camelCase) field names to ORM columns. Only mapped fields can be
       filtered or sorted on; anything else is a 400.

Query language:
    ?difficulty=easy                 equality
    ?price[lt]=1500&duration[gte]=5  comparison (gte, gt, lte, lt)
    ?difficulty=easy&difficulty=medium
                                     repeated whitelisted field → IN (...)
    ?sort=-ratingsAverage,price      multi-key sort, "-" = descending
    ?fields=name,price  /  ?fields=-description
                                     include / exclude response fields
    ?page=2&limit=10                 1-based pagination (default limit 100)

Parameter pollution:
    A repeated parameter that is NOT whitelisted keeps only its last value,
    so ?sort=price&sort=-price cannot crash the sort parser.
"""

import logging
import operator
import re
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import Boolean, DateTime, Select
from sqlalchemy.orm import InstrumentedAttribute

from natours.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Fields that may legitimately repeat in the query string (hpp whitelist)
REPEATABLE_FIELDS = {
    "duration",
    "ratingsQuantity",
    "ratingsAverage",
    "maxGroupSize",
    "difficulty",
    "price",
}

RESERVED_PARAMS = {"page", "sort", "limit", "fields"}

OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

_OPERATOR_KEY = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)\[(?P<op>[A-Za-z]+)\]$")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100


def collapse_params(items: Iterable[Tuple[str, str]]) -> "OrderedDict[str, List[str]]":
    """
    Group raw (key, value) pairs, applying the parameter-pollution rule.

    Whitelisted keys keep every value; everything else keeps the last one.
    """
    grouped: "OrderedDict[str, List[str]]" = OrderedDict()
    for key, value in items:
        grouped.setdefault(key, []).append(value)
    for key, values in grouped.items():
        base = _OPERATOR_KEY.match(key)
        field = base.group("field") if base else key
        if len(values) > 1 and (field not in REPEATABLE_FIELDS or base):
            grouped[key] = values[-1:]
    return grouped


def cast_value(column: InstrumentedAttribute, field: str, raw: str) -> Any:
    """Convert a query-string value to the column's Python type."""
    col_type = column.property.columns[0].type
    try:
        if isinstance(col_type, Boolean):
            lowered = raw.lower()
            if lowered not in ("true", "false", "1", "0"):
                raise ValueError(raw)
            return lowered in ("true", "1")
        if isinstance(col_type, DateTime):
            return datetime.fromisoformat(raw)
        python_type = col_type.python_type
        if python_type is uuid.UUID:
            return uuid.UUID(raw)
        return python_type(raw)
    except (ValueError, TypeError):
        raise ValidationError(message=f"Invalid {field}: {raw}.", field=field)


class QueryFeatures:
    """
    Builder applied to one list request.

    Args:
        params:        query string as (key, value) pairs, e.g.
                       request.query_params.multi_items()
        fields:        public field name → ORM column
        default_sort:  sort expression used when ?sort is absent
    """

    def __init__(
        self,
        params: Iterable[Tuple[str, str]],
        fields: Dict[str, InstrumentedAttribute],
        default_sort: str = "-createdAt",
    ):
        self.params = collapse_params(params)
        self.fields = fields
        self.default_sort = default_sort
        self._include: Optional[Set[str]] = None
        self._exclude: Set[str] = set()

    def _single(self, name: str) -> Optional[str]:
        values = self.params.get(name)
        return values[-1] if values else None

    def _column(self, name: str, purpose: str) -> InstrumentedAttribute:
        column = self.fields.get(name)
        if column is None:
            raise ValidationError(
                message=f"Cannot {purpose} by '{name}'. Allowed fields: {', '.join(sorted(self.fields))}",
                field=name,
            )
        return column

    # ── filter ────────────────────────────────────────────────────────────

    def filter(self, stmt: Select) -> Select:
        for key, values in self.params.items():
            if key in RESERVED_PARAMS:
                continue
            match = _OPERATOR_KEY.match(key)
            if match:
                name, op = match.group("field"), match.group("op")
                if op not in OPERATORS:
                    raise ValidationError(
                        message=f"Unsupported operator '{op}'. Use one of: gte, gt, lte, lt",
                        field=name,
                    )
                column = self._column(name, "filter")
                stmt = stmt.where(OPERATORS[op](column, cast_value(column, name, values[-1])))
                continue

            column = self._column(key, "filter")
            casted = [cast_value(column, key, v) for v in values]
            if len(casted) > 1:
                stmt = stmt.where(column.in_(casted))
            else:
                stmt = stmt.where(column == casted[0])
        return stmt

    # ── sort ──────────────────────────────────────────────────────────────

    def sort(self, stmt: Select, tie_breaker: Optional[InstrumentedAttribute] = None) -> Select:
        expression = self._single("sort") or self.default_sort
        order_by = []
        for part in (p.strip() for p in expression.split(",")):
            if not part:
                continue
            descending = part.startswith("-")
            name = part.lstrip("-")
            column = self._column(name, "sort")
            order_by.append(column.desc() if descending else column.asc())
        if tie_breaker is not None:
            order_by.append(tie_breaker.asc())
        return stmt.order_by(*order_by)

    # ── fields ────────────────────────────────────────────────────────────

    def limit_fields(self) -> "QueryFeatures":
        raw = self._single("fields")
        if not raw:
            return self
        names = [f.strip() for f in raw.split(",") if f.strip()]
        excluded = {n[1:] for n in names if n.startswith("-")}
        included = {n for n in names if not n.startswith("-")}
        if excluded and included:
            raise ValidationError(
                message="Cannot mix included and excluded fields in ?fields",
                field="fields",
            )
        if included:
            self._include = included | {"id"}
        self._exclude = excluded - {"id"}
        return self

    def project(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the ?fields selection to one serialized item."""
        if self._include is not None:
            return {k: v for k, v in item.items() if k in self._include}
        if self._exclude:
            return {k: v for k, v in item.items() if k not in self._exclude}
        return item

    # ── paginate ──────────────────────────────────────────────────────────

    def _positive_int(self, name: str, default: int) -> int:
        raw = self._single(name)
        if raw is None:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ValidationError(message=f"Invalid {name}: {raw}.", field=name)
        if value < 1:
            raise ValidationError(message=f"Invalid {name}: {raw}.", field=name)
        return value

    def paginate(self, stmt: Select) -> Select:
        page = self._positive_int("page", DEFAULT_PAGE)
        limit = self._positive_int("limit", DEFAULT_LIMIT)
        return stmt.offset((page - 1) * limit).limit(limit)

    # ── all together ──────────────────────────────────────────────────────

    def apply(self, stmt: Select, tie_breaker: Optional[InstrumentedAttribute] = None) -> Select:
        """filter → sort → limit_fields → paginate, in that order."""
        stmt = self.filter(stmt)
        stmt = self.sort(stmt, tie_breaker)
        self.limit_fields()
        stmt = self.paginate(stmt)
        logger.debug("List query params=%s", dict(self.params))
        return stmt
