"""
Pydantic schemas and request parsing helpers for API endpoints.
"""

# Re-export schemas for convenient imports.
from .listing import PaginatedResponse as PaginatedResponse
from .listing import parse_bracket_params as parse_bracket_params
from .listing import record_to_dict as record_to_dict
from .listing import split_list_param as split_list_param
