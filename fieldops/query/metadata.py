"""
Entity metadata registry for the listing engine.

The engine never inspects ORM classes per request. Instead, the column and
relation shape of every mapped entity is captured once, ahead of time, from
the SQLAlchemy declarative registry into immutable ``EntityMetadata`` values
that are shared read-only by all requests.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Uuid
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapper
from sqlalchemy.types import TypeEngine

from fieldops.core.errors import UnknownEntityError

logger = logging.getLogger(__name__)

# created_at <-> createdAt are accepted interchangeably on every entity
LEGACY_COLUMN_ALIASES = {"created_at": "createdAt", "createdAt": "created_at"}

# Rows with this column set are hidden unless a caller asks for them
SOFT_DELETE_COLUMN = "deleted_at"


class ColumnKind(str, Enum):
    """Coarse column type used to pick search and coercion behaviour."""

    ENUM = "enum"
    INTEGER = "integer"
    NUMERIC = "numeric"
    JSON = "json"
    TEXT = "text"
    DATE = "date"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    UUID = "uuid"
    OTHER = "other"

    @property
    def is_number(self) -> bool:
        return self in (ColumnKind.INTEGER, ColumnKind.NUMERIC)


def classify_type(sa_type: TypeEngine) -> ColumnKind:
    """Map a SQLAlchemy column type to a ColumnKind."""
    # Enum subclasses String, so it must be tested first
    if isinstance(sa_type, SAEnum):
        return ColumnKind.ENUM
    if isinstance(sa_type, JSON):
        return ColumnKind.JSON
    if isinstance(sa_type, Boolean):
        return ColumnKind.BOOLEAN
    if isinstance(sa_type, Integer):
        return ColumnKind.INTEGER
    if isinstance(sa_type, Numeric):
        return ColumnKind.NUMERIC
    if isinstance(sa_type, DateTime):
        return ColumnKind.DATETIME
    if isinstance(sa_type, Date):
        return ColumnKind.DATE
    if isinstance(sa_type, Uuid):
        return ColumnKind.UUID
    if isinstance(sa_type, String):
        return ColumnKind.TEXT
    return ColumnKind.OTHER


@dataclass(frozen=True)
class ColumnMeta:
    """One mapped scalar column: attribute name, physical name and type."""

    property_name: str
    physical_name: str
    type: TypeEngine
    kind: ColumnKind
    enum_values: tuple[str, ...] = ()
    enum_class: type[Enum] | None = None


@dataclass(frozen=True)
class RelationMeta:
    """One mapped relationship from an entity to a target entity."""

    property_name: str
    target_entity: str
    uselist: bool


@dataclass(frozen=True)
class EntityMetadata:
    """Immutable column/relation shape of one entity."""

    entity_name: str
    model: type
    columns: tuple[ColumnMeta, ...]
    relations: tuple[RelationMeta, ...]
    primary_key: tuple[str, ...]

    _by_property: dict[str, ColumnMeta] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _by_physical: dict[str, ColumnMeta] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _relations: dict[str, RelationMeta] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._by_property.update({c.property_name: c for c in self.columns})
        self._by_physical.update({c.physical_name: c for c in self.columns})
        self._relations.update({r.property_name: r for r in self.relations})

    def column(self, name: str) -> ColumnMeta | None:
        """
        Find a column by property name or physical name.

        The legacy spelling ``created_at`` / ``createdAt`` resolves to
        whichever of the two the entity actually declares.
        """
        col = self._by_property.get(name) or self._by_physical.get(name)
        if col is not None:
            return col
        alias = LEGACY_COLUMN_ALIASES.get(name)
        if alias is not None:
            return self._by_property.get(alias) or self._by_physical.get(alias)
        return None

    def relation(self, name: str) -> RelationMeta | None:
        return self._relations.get(name)

    @property
    def column_names(self) -> list[str]:
        return [c.property_name for c in self.columns]

    @property
    def soft_delete_column(self) -> ColumnMeta | None:
        return self.column(SOFT_DELETE_COLUMN)


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def entity_name_for(model: type) -> str:
    """Entity name used as root alias: ``__entity_name__`` or snake-cased class name."""
    return getattr(model, "__entity_name__", None) or _snake_case(model.__name__)


def _column_meta(key: str, column: Any) -> ColumnMeta:
    sa_type = column.type
    kind = classify_type(sa_type)
    enum_values: tuple[str, ...] = ()
    enum_class = None
    if kind is ColumnKind.ENUM:
        enum_values = tuple(sa_type.enums)
        enum_class = sa_type.enum_class
    return ColumnMeta(
        property_name=key,
        physical_name=column.name,
        type=sa_type,
        kind=kind,
        enum_values=enum_values,
        enum_class=enum_class,
    )


def _entity_from_mapper(mapper: Mapper) -> EntityMetadata:
    columns = tuple(_column_meta(attr.key, attr.columns[0]) for attr in mapper.column_attrs)
    relations = tuple(
        RelationMeta(
            property_name=rel.key,
            target_entity=entity_name_for(rel.mapper.class_),
            uselist=bool(rel.uselist),
        )
        for rel in mapper.relationships
    )
    primary_key = tuple(mapper.get_property_by_column(col).key for col in mapper.primary_key)
    return EntityMetadata(
        entity_name=entity_name_for(mapper.class_),
        model=mapper.class_,
        columns=columns,
        relations=relations,
        primary_key=primary_key,
    )


class MetadataRegistry:
    """
    Read-only lookup of EntityMetadata by entity name.

    Built once at startup; safe for unsynchronized concurrent reads.
    """

    def __init__(self, entities: Iterable[EntityMetadata]):
        self._entities: Mapping[str, EntityMetadata] = {e.entity_name: e for e in entities}

    @classmethod
    def from_base(cls, base: type[DeclarativeBase]) -> "MetadataRegistry":
        """Capture every mapper registered on a declarative base."""
        entities = [_entity_from_mapper(mapper) for mapper in base.registry.mappers]
        logger.debug(
            "Entity metadata registry built",
            extra={"entities": sorted(e.entity_name for e in entities)},
        )
        return cls(entities)

    def get(self, entity_name: str) -> EntityMetadata:
        """
        Get metadata for an entity.

        Raises:
            UnknownEntityError: If the entity is not registered
        """
        meta = self._entities.get(entity_name)
        if meta is None:
            raise UnknownEntityError(entity_name, available=self.names())
        return meta

    def target(self, relation: RelationMeta) -> EntityMetadata:
        """Metadata of the entity a relation points to."""
        return self.get(relation.target_entity)

    def names(self) -> list[str]:
        return sorted(self._entities)

    def __contains__(self, entity_name: object) -> bool:
        return entity_name in self._entities


_default_registry: MetadataRegistry | None = None


def get_registry() -> MetadataRegistry:
    """Registry of the application's ORM models, built on first use."""
    global _default_registry
    if _default_registry is None:
        from fieldops.db.models import Base

        _default_registry = MetadataRegistry.from_base(Base)
    return _default_registry
