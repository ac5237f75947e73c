"""
Join planning for relation paths.

Every relation prefix referenced by a listing query (eager loads, filters,
OR-filters, search fields, sort) is joined exactly once, as a LEFT OUTER JOIN,
under a deterministic alias built from the root alias and the path segments:
``audit`` -> ``audit__branch`` -> ``audit__branch__city``. Because the alias
encodes the whole path, two different paths reaching the same table never
collide.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqlalchemy import Select
from sqlalchemy.orm import aliased
from sqlalchemy.orm.util import AliasedClass

from fieldops.core.errors import MissingJoinError, UnknownRelationSegmentError
from fieldops.query.metadata import EntityMetadata, MetadataRegistry
from fieldops.query.paths import PATH_SEPARATOR, ResolvedField, resolve_field

logger = logging.getLogger(__name__)

ALIAS_SEPARATOR = "__"


@dataclass(frozen=True)
class JoinStep:
    """One LEFT OUTER JOIN from a parent alias through a relation property."""

    relation_path: str
    parent_path: str | None
    property_name: str
    alias_name: str
    alias: AliasedClass = field(compare=False, repr=False)


@dataclass(frozen=True, eq=False)
class JoinPlan:
    """
    Ordered joins plus the relation-path -> alias table for one compilation.

    The plan is immutable; ``apply`` returns a new statement.
    """

    registry: MetadataRegistry = field(repr=False)
    root: EntityMetadata
    root_alias: AliasedClass = field(repr=False)
    steps: tuple[JoinStep, ...]
    aliases: Mapping[str, AliasedClass] = field(repr=False)

    @property
    def root_alias_name(self) -> str:
        return self.root.entity_name

    def alias_names(self) -> dict[str, str]:
        """Relation path -> SQL alias name."""
        return {step.relation_path: step.alias_name for step in self.steps}

    def alias_for(self, relation_path: str | None, field_path: str) -> AliasedClass:
        """
        Alias that owns columns reached through ``relation_path``.

        Raises:
            MissingJoinError: If the relation path was never joined
        """
        if relation_path is None:
            return self.root_alias
        alias = self.aliases.get(relation_path)
        if alias is None:
            raise MissingJoinError(relation_path, field_path)
        return alias

    def resolve(self, path: str) -> tuple[ResolvedField, Any]:
        """Resolve a field path to its metadata and aliased column attribute."""
        resolved = resolve_field(self.registry, self.root, path)
        alias = self.alias_for(resolved.relation_path, path)
        return resolved, getattr(alias, resolved.column.property_name)

    def apply(self, stmt: Select) -> Select:
        for step in self.steps:
            parent = self.root_alias if step.parent_path is None else self.aliases[step.parent_path]
            stmt = stmt.outerjoin(getattr(parent, step.property_name).of_type(step.alias))
        return stmt


def plan_joins(
    registry: MetadataRegistry,
    root: EntityMetadata,
    relation_paths: Iterable[str],
    optional_paths: Iterable[str] = (),
) -> JoinPlan:
    """
    Build the join plan for a set of relation paths.

    Args:
        registry: Metadata registry used to follow relation targets
        root: Metadata of the entity being listed
        relation_paths: Paths that must be valid (eager loads, filters, sort)
        optional_paths: Paths that are joined when valid and skipped otherwise
            (search fields)

    Returns:
        JoinPlan with one step per distinct prefix, in first-seen order

    Raises:
        UnknownRelationSegmentError: If a required path has an invalid segment
    """
    root_alias = aliased(root.model, name=root.entity_name)
    steps: list[JoinStep] = []
    aliases: dict[str, AliasedClass] = {}

    def add_path(path: str) -> None:
        # Validate the whole path before emitting any of its joins
        hops = []
        current = root
        for segment in path.split(PATH_SEPARATOR):
            relation = current.relation(segment)
            if relation is None:
                raise UnknownRelationSegmentError(segment, path)
            current = registry.target(relation)
            hops.append((segment, current))

        parent_path: str | None = None
        alias_name = root.entity_name
        for segment, target in hops:
            prefix = segment if parent_path is None else f"{parent_path}{PATH_SEPARATOR}{segment}"
            alias_name = f"{alias_name}{ALIAS_SEPARATOR}{segment}"
            if prefix not in aliases:
                alias = aliased(target.model, name=alias_name)
                aliases[prefix] = alias
                steps.append(
                    JoinStep(
                        relation_path=prefix,
                        parent_path=parent_path,
                        property_name=segment,
                        alias_name=alias_name,
                        alias=alias,
                    )
                )
            parent_path = prefix

    for path in relation_paths:
        if path:
            add_path(path)

    for path in optional_paths:
        if not path:
            continue
        try:
            add_path(path)
        except UnknownRelationSegmentError as e:
            logger.debug(
                "Skipping unjoinable optional path",
                extra={"path": path, "segment": e.segment},
            )

    logger.debug(
        "Join plan built",
        extra={"entity": root.entity_name, "joins": [s.alias_name for s in steps]},
    )
    return JoinPlan(
        registry=registry,
        root=root,
        root_alias=root_alias,
        steps=tuple(steps),
        aliases=MappingProxyType(aliases),
    )
