"""
Repository layer for data access operations.

Single-record access (fetch, delete, soft delete) for any entity known to
the listing engine's metadata registry.
"""
