"""
Generic FastAPI routes over every entity in the metadata registry.

``GET /records/{entity}`` runs the listing engine; the single-record routes
use the records repository. Entity names are the registry names
(``audit``, ``branch``, ``journey`` ...).
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Path, Query, Request
from fastapi.encoders import jsonable_encoder

from fieldops.api.schemas import (
    PaginatedResponse,
    parse_bracket_params,
    record_to_dict,
    split_list_param,
)
from fieldops.core.db import AsyncDbSession
from fieldops.query import QueryRequest, compile_and_execute
from fieldops.repos import records_repo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/records", tags=["Records"])

EntityName = Annotated[str, Path(description="Registered entity name")]
RelationsParam = Annotated[
    list[str] | None,
    Query(description="Relation paths to load, repeated or comma separated"),
]
WithDeletedParam = Annotated[
    bool, Query(alias="withDeleted", description="Include soft-deleted records")
]


@router.get("/{entity}", response_model=PaginatedResponse[dict[str, Any]])
async def list_records(
    entity: EntityName,
    request: Request,
    db: AsyncDbSession,
    search: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    sort_order: Annotated[str | None, Query(alias="sortOrder")] = None,
    relations: RelationsParam = None,
    search_fields: Annotated[list[str] | None, Query(alias="searchFields")] = None,
    with_deleted: WithDeletedParam = False,
) -> dict[str, Any]:
    """
    List records of one entity with search, filters, sorting and pagination.

    Filters use bracket notation: ``filters[branch][city][name]=Riyadh``,
    ``filters[created_at][gte]=2024-01-01``,
    ``orFilters[0][status]=approved&orFilters[1][status]=pending``.
    Page and limit are validated by the listing engine, not by FastAPI, so
    bad values produce the engine's error body.
    """
    filters, or_filters = parse_bracket_params(request.query_params.multi_items())
    relation_paths = split_list_param(relations)

    result = await compile_and_execute(
        db,
        entity,
        QueryRequest(
            search=search,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
            relations=relation_paths,
            search_fields=split_list_param(search_fields),
            filters=filters,
            or_filters=or_filters,
            with_deleted=with_deleted,
        ),
    )
    return {
        "total_records": result.total_records,
        "current_page": result.current_page,
        "per_page": result.per_page,
        "records": jsonable_encoder(
            [record_to_dict(record, relation_paths) for record in result.records]
        ),
    }


@router.get("/{entity}/{record_id}")
async def get_record(
    entity: EntityName,
    record_id: Annotated[str, Path(description="Primary key value")],
    db: AsyncDbSession,
    relations: RelationsParam = None,
    with_deleted: WithDeletedParam = False,
) -> dict[str, Any]:
    """Retrieve one record by primary key, with optional relations."""
    relation_paths = split_list_param(relations)
    record = await records_repo.find_one(
        db, entity, record_id, relation_paths, with_deleted=with_deleted
    )
    return jsonable_encoder(record_to_dict(record, relation_paths))


@router.delete("/{entity}/{record_id}")
async def delete_record(
    entity: EntityName,
    record_id: Annotated[str, Path(description="Primary key value")],
    db: AsyncDbSession,
    soft: bool = False,
) -> dict[str, str]:
    """Delete one record; ``?soft=true`` stamps deleted_at instead."""
    if soft:
        return await records_repo.soft_delete(db, entity, record_id)
    return await records_repo.delete(db, entity, record_id)
