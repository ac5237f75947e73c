"""
Listing query assembly and execution.

``build_statements`` is pure: it validates every part of a ``QueryRequest``
and returns the count and data statements without touching a session. All
compilation errors therefore surface before any SQL runs.

Pagination is done on root primary keys. A grouped subquery selects one row
per matching root key together with an aggregated sort key (MIN for ASC, MAX
for DESC), ordered and windowed; the data statement joins the root entity to
that page of keys. Collection joins introduced by filters, search or sort can
thus never duplicate records or shift page boundaries.

Soft-deleted root rows (``deleted_at`` set) are left out unless the request
sets ``with_deleted``.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from fieldops.core.config import settings
from fieldops.core.observability import track_query
from fieldops.query.filters import compile_filters, compile_or_filters, parse_filters
from fieldops.query.joins import JoinPlan, plan_joins
from fieldops.query.metadata import EntityMetadata, MetadataRegistry, get_registry
from fieldops.query.pagination import PageWindow, page_window
from fieldops.query.paths import PATH_SEPARATOR, relation_prefix
from fieldops.query.search import compile_search
from fieldops.query.sorting import SortOrder, SortSpec, compile_sort

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Receives the aliased root entity, returns a boolean expression on it
ExtraCondition = Callable[[Any], ColumnElement[bool]]


@dataclass
class QueryRequest:
    """Raw listing parameters as supplied by a caller."""

    search: str | None = None
    page: Any = None
    limit: Any = None
    sort_by: str | None = None
    sort_order: str | None = None
    relations: Sequence[str] = ()
    search_fields: Sequence[str] = ()
    filters: Mapping[str, Any] | None = None
    or_filters: Sequence[Mapping[str, Any]] | None = None
    extra_conditions: Sequence[ExtraCondition] = ()
    # Include soft-deleted rows (those with deleted_at set)
    with_deleted: bool = False


@dataclass(frozen=True)
class PaginatedResult(Generic[T]):
    """The listing envelope."""

    total_records: int
    current_page: int
    per_page: int
    records: list[T] = field(default_factory=list)


@dataclass(frozen=True, eq=False)
class CompiledQuery:
    entity: EntityMetadata
    window: PageWindow
    plan: JoinPlan
    sort: SortSpec
    count_stmt: Select
    data_stmt: Select


def eager_load_options(
    registry: MetadataRegistry, root: EntityMetadata, relations: Sequence[str]
) -> list[Any]:
    """One ``selectinload`` chain per relation path, following the mapped classes."""
    options = []
    for path in relations:
        if not path:
            continue
        current = root
        loader = None
        for segment in path.split(PATH_SEPARATOR):
            attr = getattr(current.model, segment)
            loader = selectinload(attr) if loader is None else loader.selectinload(attr)
            current = registry.target(current.relation(segment))
        options.append(loader)
    return options


def not_deleted_conditions(root: EntityMetadata, target: Any) -> list[ColumnElement[bool]]:
    """``deleted_at IS NULL`` on ``target`` when the entity supports soft delete."""
    column = root.soft_delete_column
    if column is None:
        return []
    return [getattr(target, column.property_name).is_(None)]


def _required_join_paths(
    root: EntityMetadata, request: QueryRequest, field_paths: Sequence[str]
) -> list[str]:
    paths = [p for p in request.relations if p]
    for path in field_paths:
        prefix = relation_prefix(root, path)
        if prefix is not None:
            paths.append(prefix)
    if request.sort_by:
        prefix = relation_prefix(root, request.sort_by.strip())
        if prefix is not None:
            paths.append(prefix)
    return paths


def _search_join_paths(root: EntityMetadata, request: QueryRequest) -> list[str]:
    if request.search is None or not str(request.search).strip():
        return []
    prefixes = (relation_prefix(root, p) for p in request.search_fields if p)
    return [p for p in prefixes if p is not None]


def build_statements(
    entity_name: str,
    request: QueryRequest,
    registry: MetadataRegistry | None = None,
) -> CompiledQuery:
    """
    Validate a listing request and build its count and data statements.

    Args:
        entity_name: Registered entity to list
        request: Raw listing parameters
        registry: Metadata registry (defaults to the application registry)

    Returns:
        CompiledQuery with ``count_stmt`` and ``data_stmt``

    Raises:
        UnknownEntityError: If the entity is not registered
        ValidationError: For any invalid pagination, sort, filter or relation
    """
    registry = registry or get_registry()
    root = registry.get(entity_name)
    window = page_window(request.page, request.limit, settings.query_default_page_size)

    sentinel = settings.query_null_sentinel
    terms = parse_filters(request.filters, sentinel)
    or_groups = [parse_filters(group, sentinel) for group in request.or_filters or ()]
    field_paths = [t.field for t in terms] + [t.field for group in or_groups for t in group]

    plan = plan_joins(
        registry,
        root,
        _required_join_paths(root, request, field_paths),
        optional_paths=_search_join_paths(root, request),
    )

    where = compile_filters(terms, plan)
    or_bracket = compile_or_filters(or_groups, plan)
    if or_bracket is not None:
        where.append(or_bracket)
    search_bracket = compile_search(request.search, request.search_fields, plan)
    if search_bracket is not None:
        where.append(search_bracket)
    where.extend(condition(plan.root_alias) for condition in request.extra_conditions)
    if not request.with_deleted:
        where.extend(not_deleted_conditions(root, plan.root_alias))

    sort = compile_sort(
        request.sort_by, request.sort_order, plan, settings.query_default_sort_field
    )

    root_alias = plan.root_alias
    pk_cols = [getattr(root_alias, name) for name in root.primary_key]
    aggregate = func.min if sort.order is SortOrder.ASC else func.max
    sort_key = aggregate(sort.column).label("sort_key")

    source = plan.apply(select(*pk_cols).select_from(root_alias))
    key_cols = [c.label(f"pk_{i}") for i, c in enumerate(pk_cols)]
    keys = plan.apply(select(*key_cols, sort_key).select_from(root_alias))
    if where:
        source = source.where(and_(*where))
        keys = keys.where(and_(*where))

    matched = source.group_by(*pk_cols).subquery("matched_keys")
    count_stmt = select(func.count()).select_from(matched)

    page_keys = (
        keys.group_by(*pk_cols)
        .order_by(sort.apply_direction(sort_key), *[c.asc() for c in pk_cols])
        .offset(window.offset)
        .limit(window.limit)
        .subquery("page_keys")
    )
    model = root.model
    model_pks = [getattr(model, name) for name in root.primary_key]
    data_stmt = (
        select(model)
        .join(page_keys, and_(*[pk == page_keys.c[f"pk_{i}"] for i, pk in enumerate(model_pks)]))
        .order_by(sort.apply_direction(page_keys.c.sort_key), *[pk.asc() for pk in model_pks])
        .options(*eager_load_options(registry, root, request.relations))
    )

    logger.debug(
        "Listing query compiled",
        extra={
            "entity": entity_name,
            "joins": [s.alias_name for s in plan.steps],
            "predicates": len(where),
            "sort_field": sort.sort_field,
            "sort_order": sort.order.value,
        },
    )
    return CompiledQuery(
        entity=root,
        window=window,
        plan=plan,
        sort=sort,
        count_stmt=count_stmt,
        data_stmt=data_stmt,
    )


async def compile_and_execute(
    db: AsyncSession,
    entity_name: str,
    request: QueryRequest,
    registry: MetadataRegistry | None = None,
) -> PaginatedResult[Any]:
    """
    Run one listing query: a count, then one page of records.

    Args:
        db: Async database session
        entity_name: Registered entity to list
        request: Raw listing parameters
        registry: Metadata registry (defaults to the application registry)

    Returns:
        PaginatedResult with ORM instances (eager relations loaded)
    """
    registry = registry or get_registry()
    # Unknown entities fail before metrics are labelled with them
    registry.get(entity_name)

    with track_query(entity_name):
        compiled = build_statements(entity_name, request, registry)
        total = (await db.execute(compiled.count_stmt)).scalar_one()
        records = list((await db.execute(compiled.data_stmt)).scalars().all())

    logger.info(
        "Listing executed",
        extra={
            "entity": entity_name,
            "total_records": total,
            "page": compiled.window.page,
            "limit": compiled.window.limit,
            "returned": len(records),
        },
    )
    return PaginatedResult(
        total_records=total,
        current_page=compiled.window.page,
        per_page=compiled.window.limit,
        records=records,
    )


async def find_all(db: AsyncSession, entity_name: str, **params: Any) -> PaginatedResult[Any]:
    """Keyword-argument form of ``compile_and_execute``."""
    return await compile_and_execute(db, entity_name, QueryRequest(**params))
