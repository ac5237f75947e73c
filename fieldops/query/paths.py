"""
Dotted field path resolution.

A path such as ``branch.city.name`` is a chain of relation hops followed by a
terminal column. Relation hops are recognised left to right starting at the
root entity; when the first segment is not a relation the whole path names a
root column.
"""

from dataclasses import dataclass

from fieldops.core.errors import UnknownFieldError, UnknownRelationSegmentError
from fieldops.query.metadata import ColumnMeta, EntityMetadata, MetadataRegistry

PATH_SEPARATOR = "."


@dataclass(frozen=True)
class ResolvedField:
    """A validated field path: relation prefix (or None) plus terminal column."""

    path: str
    relation_path: str | None
    column: ColumnMeta
    entity: EntityMetadata


def relation_prefix(root: EntityMetadata, path: str) -> str | None:
    """
    Relation part of a field path, without validating the hops.

    ``branch.city.name`` -> ``branch.city``; ``name`` -> None. Paths whose
    first segment is not a relation of ``root`` have no prefix.
    """
    segments = path.split(PATH_SEPARATOR)
    if len(segments) < 2 or root.relation(segments[0]) is None:
        return None
    return PATH_SEPARATOR.join(segments[:-1])


def walk_relations(
    registry: MetadataRegistry, root: EntityMetadata, relation_path: str, full_path: str
) -> EntityMetadata:
    """
    Follow every hop of a relation path and return the final entity.

    Raises:
        UnknownRelationSegmentError: If a segment is not a relation of the
            entity reached so far
    """
    current = root
    for segment in relation_path.split(PATH_SEPARATOR):
        relation = current.relation(segment)
        if relation is None:
            raise UnknownRelationSegmentError(segment, full_path)
        current = registry.target(relation)
    return current


def resolve_field(registry: MetadataRegistry, root: EntityMetadata, path: str) -> ResolvedField:
    """
    Resolve a dotted path against ``root``.

    Raises:
        UnknownRelationSegmentError: If a hop does not name a relation
        UnknownFieldError: If the final segment is not a column of the
            entity reached
    """
    prefix = relation_prefix(root, path)
    if prefix is None:
        column = root.column(path)
        if column is None:
            raise UnknownFieldError(path, root.entity_name)
        return ResolvedField(path=path, relation_path=None, column=column, entity=root)

    target = walk_relations(registry, root, prefix, path)
    column_name = path.rsplit(PATH_SEPARATOR, 1)[1]
    column = target.column(column_name)
    if column is None:
        raise UnknownFieldError(path, target.entity_name)
    return ResolvedField(path=path, relation_path=prefix, column=column, entity=target)
