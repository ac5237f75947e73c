"""
Sort field and order validation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fieldops.core.errors import InvalidSortOrderError, UnknownSortFieldError
from fieldops.query.joins import JoinPlan
from fieldops.query.paths import relation_prefix


class SortOrder(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


DEFAULT_SORT_ORDER = SortOrder.DESC


@dataclass(frozen=True)
class SortSpec:
    """Resolved ordering: the field as requested, its aliased column and direction."""

    sort_field: str
    column: Any = field(compare=False, repr=False)
    order: SortOrder

    def apply_direction(self, expr: Any) -> Any:
        return expr.asc() if self.order is SortOrder.ASC else expr.desc()


def normalize_sort_order(sort_order: str | None) -> SortOrder:
    """
    Upper-case and validate a sort order; empty means DESC.

    Raises:
        InvalidSortOrderError: If the order is not ASC or DESC
    """
    if sort_order is None or str(sort_order).strip() == "":
        return DEFAULT_SORT_ORDER
    normalized = str(sort_order).strip().upper()
    if normalized not in SortOrder.__members__:
        raise InvalidSortOrderError(
            "Sort order must be either 'ASC' or 'DESC'.",
            details={"sort_order": sort_order},
        )
    return SortOrder(normalized)


def compile_sort(
    sort_by: str | None, sort_order: str | None, plan: JoinPlan, default_field: str
) -> SortSpec:
    """
    Resolve the sort field against the planned joins.

    Nested fields (``branch.name``) must have their relation prefix joined.
    Root fields are looked up among the root entity's columns; when no
    ``sort_by`` is given, ``default_field`` is used, or the first primary key
    column if the entity has no such column.

    Raises:
        UnknownSortFieldError: If a root field is not a column of the entity
        InvalidSortOrderError: If the order is not ASC or DESC
    """
    order = normalize_sort_order(sort_order)
    root = plan.root
    sort_by = (sort_by or "").strip()

    if sort_by and relation_prefix(root, sort_by) is not None:
        _, col = plan.resolve(sort_by)
        return SortSpec(sort_field=sort_by, column=col, order=order)

    column = root.column(sort_by or default_field)
    if column is None:
        if sort_by:
            raise UnknownSortFieldError(sort_by, root.column_names)
        column = root.column(root.primary_key[0])
    return SortSpec(
        sort_field=column.property_name,
        column=getattr(plan.root_alias, column.property_name),
        order=order,
    )
