"""
Listing request parsing and response schemas.

Query strings carry nested filters in bracket notation::

    ?filters[status]=approved
    &filters[branch][city][name][ilike]=riy
    &orFilters[0][status]=approved&orFilters[1][status]=pending
    &filters[status][ne]=rejected&filters[status][ne]=pending

Brackets become nested mappings, which the filter parser flattens back into
dotted keys; a key repeated in the query string becomes a list value.
"""

import re
from collections.abc import Iterable, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import inspect

T = TypeVar("T")

_BRACKET_KEY = re.compile(r"^(?P<root>[A-Za-z_][A-Za-z0-9_]*)(?P<rest>(\[[^\[\]]*\])+)$")
_BRACKET_PART = re.compile(r"\[([^\[\]]*)\]")

FILTERS_PARAM = "filters"
OR_FILTERS_PARAM = "orFilters"


class PaginatedResponse(BaseModel, Generic[T]):
    """Response model for offset-paginated listing data."""

    total_records: int
    current_page: int
    per_page: int
    records: list[T]


def _insert(target: dict[str, Any], parts: Sequence[str], value: str) -> None:
    node = target
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    leaf = parts[-1]
    if leaf in node and not isinstance(node[leaf], dict):
        existing = node[leaf]
        node[leaf] = [*existing, value] if isinstance(existing, list) else [existing, value]
    else:
        node[leaf] = value


def parse_bracket_params(
    items: Iterable[tuple[str, str]],
) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    """
    Collect ``filters[...]`` and ``orFilters[n][...]`` query parameters.

    Args:
        items: Raw (key, value) pairs from the query string, repeats included

    Returns:
        Tuple of (filters, or_filters); OR groups ordered by their index
    """
    filters: dict[str, Any] = {}
    or_groups: dict[str, dict[str, Any]] = {}

    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if not match:
            continue
        parts = _BRACKET_PART.findall(match.group("rest"))
        if any(p == "" for p in parts):
            continue
        root = match.group("root")
        if root == FILTERS_PARAM:
            _insert(filters, parts, value)
        elif root == OR_FILTERS_PARAM and len(parts) >= 2:
            _insert(or_groups.setdefault(parts[0], {}), parts[1:], value)

    # Numeric group keys first, by value; any others keep query-string order
    ordered = sorted(
        or_groups.items(),
        key=lambda kv: int(kv[0]) if kv[0].isdigit() else float("inf"),
    )
    return filters, [group for _, group in ordered]


def split_list_param(values: Sequence[str] | None) -> list[str]:
    """Accept repeated and comma-separated values: ``?relations=a,b&relations=c``."""
    if not values:
        return []
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def _relation_tree(paths: Iterable[str]) -> dict[str, Any]:
    tree: dict[str, Any] = {}
    for path in paths:
        node = tree
        for segment in path.split("."):
            node = node.setdefault(segment, {})
    return tree


def _to_dict(instance: Any, tree: dict[str, Any]) -> dict[str, Any]:
    mapper = inspect(instance).mapper
    data = {attr.key: getattr(instance, attr.key) for attr in mapper.column_attrs}
    for name, subtree in tree.items():
        value = getattr(instance, name)
        if value is None:
            data[name] = None
        elif isinstance(value, list | set | tuple):
            data[name] = [_to_dict(item, subtree) for item in value]
        else:
            data[name] = _to_dict(value, subtree)
    return data


def record_to_dict(instance: Any, relations: Sequence[str] = ()) -> dict[str, Any]:
    """
    Serialize an ORM instance: all columns plus the requested relation paths.

    Only relations that were eagerly loaded are touched, so no lazy load is
    triggered on the async session.
    """
    return _to_dict(instance, _relation_tree(relations))
