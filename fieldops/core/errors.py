"""
Domain-specific exceptions for the field-operations API.

Every failure raised while compiling a listing query is a typed client error
carrying a human-readable message and a ``details`` dict naming the bad
field, segment or value. The API layer maps them to HTTP status codes.
"""

from typing import Any


class FieldOpsError(Exception):
    """Base exception for all field-operations domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(FieldOpsError):
    """
    Raised when caller-supplied query input fails validation.

    Examples:
    - Non-numeric page number
    - Filter on a column the entity does not have
    - Soft delete on an entity without a deleted_at column

    HTTP Status: 400 Bad Request
    """

    pass


class NotFoundError(FieldOpsError):
    """
    Raised when a requested resource does not exist.

    Examples:
    - Entity name not registered
    - Record ID not found

    HTTP Status: 404 Not Found
    """

    pass


class InvalidPaginationError(ValidationError):
    """Raised when page or limit is non-numeric or lower than 1."""

    pass


class InvalidSortOrderError(ValidationError):
    """Raised when sort order is not ASC or DESC."""

    pass


class UnknownRelationSegmentError(ValidationError):
    """
    Raised when a relation path segment does not name a relation.

    Details carry the offending ``segment`` and the full ``path``.
    """

    def __init__(self, segment: str, path: str):
        super().__init__(
            f"Invalid relation segment '{segment}' in '{path}'",
            details={"segment": segment, "path": path},
        )
        self.segment = segment
        self.path = path


class UnknownSortFieldError(ValidationError):
    """Raised when a non-nested sort field is not a column of the root entity."""

    def __init__(self, field: str, available: list[str]):
        super().__init__(
            f"Invalid sortBy field: '{field}'. Available: {', '.join(available)}",
            details={"field": field, "available": available},
        )
        self.field = field
        self.available = available


class MissingJoinError(ValidationError):
    """Raised when a field resolves to a relation path that was not joined."""

    def __init__(self, relation_path: str, field: str):
        super().__init__(
            f"Missing join for relation path '{relation_path}' (from '{field}')",
            details={"relation_path": relation_path, "field": field},
        )
        self.relation_path = relation_path
        self.field = field


class UnknownFieldError(ValidationError):
    """Raised when a field path does not end in a column of its resolved entity."""

    def __init__(self, field: str, entity: str):
        super().__init__(
            f"Unknown field '{field}' on '{entity}'",
            details={"field": field, "entity": entity},
        )
        self.field = field
        self.entity = entity


class InvalidFilterValueError(ValidationError):
    """Raised when a filter value cannot be coerced to the column type."""

    def __init__(self, field: str, kind: str):
        super().__init__(
            f"Invalid filter value for field '{field}' ({kind})",
            details={"field": field, "kind": kind},
        )
        self.field = field
        self.kind = kind


class UnknownEntityError(NotFoundError):
    """Raised when an entity name is not present in the metadata registry."""

    def __init__(self, entity: str, available: list[str] | None = None):
        super().__init__(
            f"Unknown entity '{entity}'",
            details={"entity": entity, "available": available or []},
        )
        self.entity = entity


class RecordNotFoundError(NotFoundError):
    """Raised when no row matches the requested primary key."""

    pass


# HTTP Status Code Mapping
ERROR_STATUS_MAP = {
    ValidationError: 400,
    NotFoundError: 404,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Subclasses inherit the status of the closest mapped base class.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    for klass in type(error).__mro__:
        if klass in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[klass]
    return 500
