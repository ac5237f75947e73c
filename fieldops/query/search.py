"""
Type-aware free-text search across a list of field paths.

Each searchable field contributes at most one predicate to a single OR
bracket, chosen by the column kind:

- enum: exact match, only when the term is one of the enum values
- integer / numeric: exact match, only when the term parses as that number
- json: text cast, case-insensitive substring
- anything else: text cast, case-insensitive substring

A term without any search field is ignored. Fields that cannot be resolved
are skipped; a search whose listed fields all end up with no predicate
matches nothing.
"""

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import String, bindparam, cast, false, or_
from sqlalchemy.sql.elements import ColumnElement

from fieldops.core.errors import ValidationError
from fieldops.query.filters import ParamNamer, is_blocked_field, parse_number_literal
from fieldops.query.joins import JoinPlan
from fieldops.query.metadata import ColumnKind, ColumnMeta

logger = logging.getLogger(__name__)

SEARCH_PARAM_NAMESPACE = "search_"


def _parse_search_number(term: str, column: ColumnMeta) -> Any | None:
    integral = column.kind is ColumnKind.INTEGER
    try:
        number = parse_number_literal(term, integral=integral)
    except ValueError:
        return None
    return int(number) if integral else number


def _field_predicate(
    term: str, path: str, column: ColumnMeta, col: Any, names: ParamNamer
) -> ColumnElement[bool] | None:
    if column.kind is ColumnKind.ENUM:
        if term not in column.enum_values:
            return None
        value = column.enum_class(term) if column.enum_class is not None else term
        return col == bindparam(names(path), value, type_=column.type)

    if column.kind.is_number:
        number = _parse_search_number(term, column)
        if number is None:
            return None
        return col == bindparam(names(path), number, type_=column.type)

    return cast(col, String).ilike(bindparam(names(path), f"%{term}%", type_=String))


def compile_search(
    term: str | None, fields: Sequence[str], plan: JoinPlan
) -> ColumnElement[bool] | None:
    """
    Build the search bracket.

    Returns:
        None when there is no search term or no search field, ``false()``
        when no listed field could take the term, otherwise an OR of
        per-field predicates
    """
    if term is None:
        return None
    term = str(term).strip()
    fields = [path for path in fields if path]
    if not term or not fields:
        return None

    names = ParamNamer(SEARCH_PARAM_NAMESPACE)
    predicates = []
    for path in fields:
        if is_blocked_field(path):
            continue
        try:
            resolved, col = plan.resolve(path)
        except ValidationError as e:
            logger.debug(
                "Skipping unresolvable search field",
                extra={"field": path, "reason": e.message},
            )
            continue
        predicate = _field_predicate(term, path, resolved.column, col, names)
        if predicate is not None:
            predicates.append(predicate)

    if not predicates:
        return false()
    return or_(*predicates)
