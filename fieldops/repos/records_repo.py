"""
Repository functions for single records of any registered entity.

Complements the listing engine with fetch-by-primary-key, hard delete and
soft delete. Relation paths passed to ``find_one`` follow the same rules as
listing relations, so an invalid segment fails the same way. Soft-deleted
rows are not found unless ``with_deleted`` is set.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fieldops.core.errors import RecordNotFoundError, ValidationError
from fieldops.query.executor import eager_load_options, not_deleted_conditions
from fieldops.query.filters import coerce_value
from fieldops.query.joins import plan_joins
from fieldops.query.metadata import SOFT_DELETE_COLUMN, MetadataRegistry, get_registry

logger = logging.getLogger(__name__)


async def find_one(
    db: AsyncSession,
    entity_name: str,
    record_id: Any,
    relations: Sequence[str] = (),
    registry: MetadataRegistry | None = None,
    with_deleted: bool = False,
) -> Any:
    """
    Retrieve one record by primary key.

    Args:
        db: Database session
        entity_name: Registered entity name
        record_id: Primary key value (coerced to the key column type)
        relations: Relation paths to load with the record
        registry: Metadata registry (defaults to the application registry)
        with_deleted: Also find a soft-deleted row

    Returns:
        ORM instance with the requested relations loaded

    Raises:
        UnknownEntityError: If the entity is not registered
        UnknownRelationSegmentError: If a relation path is invalid
        InvalidFilterValueError: If the id does not fit the key column type
        RecordNotFoundError: If no row has this primary key (or it is
            soft-deleted and ``with_deleted`` is not set)
    """
    registry = registry or get_registry()
    meta = registry.get(entity_name)
    relations = [r for r in relations if r]
    plan_joins(registry, meta, relations)

    pk_name = meta.primary_key[0]
    pk_value = coerce_value(record_id, meta.column(pk_name), pk_name)
    stmt = (
        select(meta.model)
        .where(getattr(meta.model, pk_name) == pk_value)
        .options(*eager_load_options(registry, meta, relations))
    )
    if not with_deleted:
        stmt = stmt.where(*not_deleted_conditions(meta, meta.model))
    result = await db.execute(stmt)
    record = result.scalar_one_or_none()

    if record is None:
        logger.warning(f"{entity_name} not found: {record_id}")
        raise RecordNotFoundError(
            f"{entity_name} with ID {record_id} not found.",
            details={"entity": entity_name, "id": str(record_id)},
        )
    return record


async def delete(
    db: AsyncSession,
    entity_name: str,
    record_id: Any,
    registry: MetadataRegistry | None = None,
) -> dict[str, str]:
    """
    Permanently delete one record.

    Raises:
        RecordNotFoundError: If no row has this primary key
    """
    record = await find_one(db, entity_name, record_id, registry=registry)
    await db.delete(record)
    await db.flush()

    logger.info(f"Deleted {entity_name}: {record_id}")
    return {"message": f"{entity_name} deleted successfully."}


async def soft_delete(
    db: AsyncSession,
    entity_name: str,
    record_id: Any,
    registry: MetadataRegistry | None = None,
) -> dict[str, str]:
    """
    Mark one record as deleted by stamping its ``deleted_at`` column.

    Raises:
        ValidationError: If the entity has no deleted_at column
        RecordNotFoundError: If no row has this primary key
    """
    registry = registry or get_registry()
    meta = registry.get(entity_name)
    column = meta.soft_delete_column
    if column is None:
        raise ValidationError(
            f"{entity_name} does not support soft delete",
            details={"entity": entity_name, "column": SOFT_DELETE_COLUMN},
        )

    record = await find_one(db, entity_name, record_id, registry=registry)
    setattr(record, column.property_name, datetime.now(UTC))
    await db.flush()

    logger.info(f"Soft-deleted {entity_name}: {record_id}")
    return {"message": f"{entity_name} soft-deleted successfully."}
