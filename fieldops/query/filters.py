"""
Filter compilation.

Raw filter maps are parsed exactly once into ``FilterTerm`` values (field
path + operator + value); compilation then works only with terms. Keys use
a trailing operator token::

    {"status": "approved"}                   -> status = :p
    {"branch.city.name.ilike": "riy"}        -> branch__city.name ILIKE :p
    {"audit_date.gte": "2024-01-01",
     "audit_date.lte": "2024-01-31"}         -> date(audit_date) BETWEEN :a AND :b
    {"discount_reason": "__NULL__"}          -> discount_reason IS NULL

Only resolved columns and generated bind parameter names ever reach the SQL
text; user supplied keys and values never do.
"""

import logging
import re
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from itertools import count
from typing import Any

from sqlalchemy import Date, String, and_, bindparam, cast, func, or_
from sqlalchemy.sql.elements import ColumnElement

from fieldops.core.errors import InvalidFilterValueError
from fieldops.query.joins import JoinPlan
from fieldops.query.metadata import ColumnKind, ColumnMeta

logger = logging.getLogger(__name__)


class FilterOperator(str, Enum):
    EQ = "eq"
    LIKE = "like"
    ILIKE = "ilike"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    NE = "ne"
    ISNULL = "isnull"


# Tokens accepted as a key suffix; eq is implicit and never written
OPERATOR_TOKENS = frozenset(op.value for op in FilterOperator if op is not FilterOperator.EQ)

# Final path segments that are never treated as columns
BLOCKED_SEGMENTS = frozenset(
    {"toString", "constructor", "getSql", "valueOf", "prototype", "__proto__", "hasOwnProperty"}
)

TRUTHY_ISNULL_VALUES = (True, "true", 1, "1")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Plain decimal literals only: no underscores, no inf/nan
_NUMBER_LITERAL = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_UNSAFE_PARAM_CHARS = re.compile(r"[^A-Za-z0-9_]")

_COMPARISONS = {
    FilterOperator.GT: lambda col, p: col > p,
    FilterOperator.GTE: lambda col, p: col >= p,
    FilterOperator.LT: lambda col, p: col < p,
    FilterOperator.LTE: lambda col, p: col <= p,
}


@dataclass(frozen=True)
class FilterTerm:
    """One parsed filter entry."""

    field: str
    operator: FilterOperator
    value: Any


# ============================================================================
# Parsing
# ============================================================================


def flatten_filters(filters: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    Flatten nested mappings into dotted keys.

    ``{"branch": {"city": {"name": "Riyadh"}}}`` -> ``{"branch.city.name": "Riyadh"}``
    """
    flat: dict[str, Any] = {}
    for key, value in filters.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_filters(value, full_key))
        else:
            flat[full_key] = value
    return flat


def is_blocked_field(field_path: str) -> bool:
    last = field_path.rsplit(".", 1)[-1]
    return last in BLOCKED_SEGMENTS or (last.startswith("__") and last.endswith("__"))


def parse_filter_key(key: str, value: Any, null_sentinel: str) -> FilterTerm:
    """Split an operator suffix off a key and apply the null sentinel."""
    head, _, tail = key.rpartition(".")
    if head and tail in OPERATOR_TOKENS:
        field_path, operator = head, FilterOperator(tail)
    else:
        field_path, operator = key, FilterOperator.EQ

    if isinstance(value, str) and value == null_sentinel:
        return FilterTerm(field_path, FilterOperator.ISNULL, operator is not FilterOperator.NE)
    return FilterTerm(field_path, operator, value)


def parse_filters(filters: Mapping[str, Any] | None, null_sentinel: str) -> list[FilterTerm]:
    """
    Parse a (possibly nested) filter map into terms.

    Entries whose field ends in a blocked segment are dropped.
    """
    if not filters:
        return []
    terms = []
    for key, value in flatten_filters(filters).items():
        term = parse_filter_key(key, value, null_sentinel)
        if is_blocked_field(term.field):
            logger.debug("Skipping blocked filter field", extra={"field": term.field})
            continue
        terms.append(term)
    return terms


# ============================================================================
# Value coercion
# ============================================================================


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes"):
        return True
    if text in ("false", "0", "no"):
        return False
    raise ValueError(value)


def _parse_datetime(value: Any, column: ColumnMeta) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        parsed = datetime.fromisoformat(str(value).strip())
    if parsed.tzinfo is None and getattr(column.type, "timezone", False):
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if _ISO_DATE.match(text):
        return date.fromisoformat(text)
    return datetime.fromisoformat(text).date()


def parse_number_literal(value: Any, integral: bool = False) -> Decimal:
    """
    Parse a plain decimal literal such as ``12``, ``-3.5`` or ``5.0``.

    With ``integral`` the value must have no fractional part (``5.0`` is
    accepted, ``5.5`` is not).

    Raises:
        ValueError: If the text is not a decimal literal
    """
    text = str(value).strip()
    if not _NUMBER_LITERAL.match(text):
        raise ValueError(value)
    number = Decimal(text)
    if integral and number != number.to_integral_value():
        raise ValueError(value)
    return number


def _parse_number(value: Any, column: ColumnMeta) -> Any:
    if isinstance(value, bool):
        raise ValueError(value)
    if column.kind is ColumnKind.INTEGER:
        if isinstance(value, int):
            return value
        return int(parse_number_literal(value, integral=True))
    number = parse_number_literal(value)
    if getattr(column.type, "asdecimal", True):
        return number
    return float(number)


def coerce_value(value: Any, column: ColumnMeta, field_path: str) -> Any:
    """
    Convert a raw filter value to the Python type of ``column``.

    Raises:
        InvalidFilterValueError: If the value cannot represent the column type
    """
    try:
        if column.kind in (ColumnKind.INTEGER, ColumnKind.NUMERIC):
            return _parse_number(value, column)
        if column.kind is ColumnKind.BOOLEAN:
            return _parse_bool(value)
        if column.kind is ColumnKind.UUID:
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value).strip())
        if column.kind is ColumnKind.DATETIME:
            return _parse_datetime(value, column)
        if column.kind is ColumnKind.DATE:
            return _parse_date(value)
        if column.kind is ColumnKind.ENUM:
            if column.enum_class is not None:
                return column.enum_class(value)
            if value not in column.enum_values:
                raise ValueError(value)
            return value
        if column.kind is ColumnKind.TEXT:
            return str(value)
        return value
    except (ValueError, TypeError, InvalidOperation) as e:
        raise InvalidFilterValueError(field_path, column.kind.value) from e


def is_date_only(value: Any) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE.match(value.strip()))


def _as_text(column: ColumnMeta, expr: Any) -> Any:
    return expr if column.kind is ColumnKind.TEXT else cast(expr, String)


# ============================================================================
# Compilation
# ============================================================================


class ParamNamer:
    """
    Generates statement-unique bind parameter names.

    ``ParamNamer("or0_")("branch.city.name")`` -> ``or0_p0_branch_city_name``
    """

    def __init__(self, namespace: str = ""):
        self.namespace = namespace
        self._counter = count()

    def __call__(self, field_path: str, suffix: str = "") -> str:
        base = _UNSAFE_PARAM_CHARS.sub("_", field_path.replace(".", "_"))
        return f"{self.namespace}p{next(self._counter)}_{base}{suffix}"


def _day_bounds(value: str, column: ColumnMeta) -> tuple[datetime, datetime]:
    start = _parse_datetime(date.fromisoformat(value.strip()), column)
    return start, start + timedelta(days=1)


def _compile_range(
    field_path: str, low: Any, high: Any, plan: JoinPlan, names: ParamNamer
) -> ColumnElement[bool]:
    resolved, col = plan.resolve(field_path)
    column = resolved.column
    if is_date_only(low) and is_date_only(high):
        day = func.date(col, type_=Date)
        return day.between(
            bindparam(names(field_path, "_from"), _parse_date(low), type_=Date),
            bindparam(names(field_path, "_to"), _parse_date(high), type_=Date),
        )
    low_value = coerce_value(low, column, field_path)
    high_value = coerce_value(high, column, field_path)
    return col.between(
        bindparam(names(field_path, "_from"), low_value, type_=column.type),
        bindparam(names(field_path, "_to"), high_value, type_=column.type),
    )


def _compile_term(
    term: FilterTerm, plan: JoinPlan, names: ParamNamer
) -> ColumnElement[bool] | None:
    resolved, col = plan.resolve(term.field)
    column = resolved.column
    op = term.operator
    value = term.value

    if op is FilterOperator.ISNULL:
        return col.is_(None) if value in TRUTHY_ISNULL_VALUES else col.is_not(None)

    if value is None:
        return None

    if op in (FilterOperator.LIKE, FilterOperator.ILIKE):
        pattern = bindparam(names(term.field), f"%{value}%", type_=String)
        text_col = _as_text(column, col)
        return text_col.like(pattern) if op is FilterOperator.LIKE else text_col.ilike(pattern)

    if op in (FilterOperator.EQ, FilterOperator.NE):
        negate = op is FilterOperator.NE
        if op is FilterOperator.EQ and value == "":
            return None
        if isinstance(value, list | tuple | set):
            if not value:
                return None
            param = bindparam(
                names(term.field),
                [coerce_value(v, column, term.field) for v in value],
                type_=column.type,
                expanding=True,
            )
            return col.not_in(param) if negate else col.in_(param)
        if column.kind is ColumnKind.DATETIME and is_date_only(value):
            start, end = _day_bounds(value, column)
            low = bindparam(names(term.field, "_start"), start, type_=column.type)
            high = bindparam(names(term.field, "_end"), end, type_=column.type)
            if negate:
                return or_(col < low, col >= high)
            return and_(col >= low, col < high)
        coerced = coerce_value(value, column, term.field)
        param = bindparam(names(term.field), coerced, type_=column.type)
        return col != param if negate else col == param

    param = bindparam(names(term.field), coerce_value(value, column, term.field), type_=column.type)
    return _COMPARISONS[op](col, param)


def compile_filters(
    terms: Sequence[FilterTerm], plan: JoinPlan, namespace: str = ""
) -> list[ColumnElement[bool]]:
    """
    Compile terms into predicates to be AND-ed together.

    ``gte`` and ``lte`` on the same field collapse into one BETWEEN; every
    other operator on that field compiles independently after it.

    Raises:
        UnknownFieldError: If a field path does not end in a column
        UnknownRelationSegmentError: If a field path has an invalid hop
        MissingJoinError: If a field's relation prefix was not joined
        InvalidFilterValueError: If a value cannot be coerced
    """
    names = ParamNamer(namespace)
    by_field: dict[str, list[FilterTerm]] = {}
    for term in terms:
        by_field.setdefault(term.field, []).append(term)

    predicates: list[ColumnElement[bool]] = []
    for field_path, field_terms in by_field.items():
        ops = {t.operator: t for t in field_terms}
        low, high = ops.get(FilterOperator.GTE), ops.get(FilterOperator.LTE)
        ranged = (
            low is not None
            and high is not None
            and low.value not in (None, "")
            and high.value not in (None, "")
        )
        if ranged:
            predicates.append(_compile_range(field_path, low.value, high.value, plan, names))

        for term in field_terms:
            if ranged and term.operator in (FilterOperator.GTE, FilterOperator.LTE):
                continue
            predicate = _compile_term(term, plan, names)
            if predicate is not None:
                predicates.append(predicate)
    return predicates


def compile_or_filters(
    groups: Sequence[Sequence[FilterTerm]], plan: JoinPlan
) -> ColumnElement[bool] | None:
    """
    Compile OR-filter groups: AND inside a group, OR across groups.

    Groups producing no predicate are dropped; None when nothing remains.
    """
    brackets = []
    for index, terms in enumerate(groups):
        predicates = compile_filters(terms, plan, namespace=f"or{index}_")
        if predicates:
            brackets.append(and_(*predicates))
    if not brackets:
        return None
    return or_(*brackets)
