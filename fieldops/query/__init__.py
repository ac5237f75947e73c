"""
Generic listing engine for the field-operations API.

This package turns raw listing parameters (search term, page, limit, sort,
nested relation filters) into one count statement and one data statement
over any entity mapped on the ORM base, without per-entity code.

Key Components:
- metadata: ahead-of-time registry of entity columns and relations
- paths / joins: dotted field paths and their deterministic LEFT JOINs
- filters / search / sorting / pagination: the individual compiler stages
- executor: statement assembly and async execution

Design Principles:
- Parse once: filter keys become typed terms at a single boundary
- Safety: only resolved columns and generated bind names reach SQL text
- Fail early: every validation error is raised before a statement runs
"""

from fieldops.query.executor import (
    PaginatedResult,
    QueryRequest,
    build_statements,
    compile_and_execute,
    find_all,
)
from fieldops.query.metadata import MetadataRegistry, get_registry

__all__ = [
    "MetadataRegistry",
    "PaginatedResult",
    "QueryRequest",
    "build_statements",
    "compile_and_execute",
    "find_all",
    "get_registry",
]
