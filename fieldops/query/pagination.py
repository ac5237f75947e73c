"""
Page/limit validation for listing queries.
"""

import re
from dataclasses import dataclass
from typing import Any

from fieldops.core.errors import InvalidPaginationError

PAGINATION_ERROR_MESSAGE = "Pagination parameters must be valid numbers greater than 0."

# Whole numbers, optionally written with a zero fraction ("2", "2.0")
_INTEGRAL_LITERAL = re.compile(r"^[+-]?\d+(\.0*)?$")


@dataclass(frozen=True)
class PageWindow:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _coerce_positive(name: str, value: Any, default: int) -> int:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return default
    if isinstance(value, bool):
        raise InvalidPaginationError(PAGINATION_ERROR_MESSAGE, details={name: value})
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if not _INTEGRAL_LITERAL.match(text):
            raise InvalidPaginationError(PAGINATION_ERROR_MESSAGE, details={name: value})
        number = int(text.split(".", 1)[0])
    if number < 1:
        raise InvalidPaginationError(PAGINATION_ERROR_MESSAGE, details={name: value})
    return number


def page_window(page: Any, limit: Any, default_limit: int) -> PageWindow:
    """
    Validate and default pagination input.

    Absent values (None or empty string) fall back to page 1 and
    ``default_limit``. Anything else must be a whole number >= 1; decimal
    text with a zero fraction (``"2.0"``) counts as whole.

    Raises:
        InvalidPaginationError: On a fractional, non-numeric or non-positive value
    """
    return PageWindow(
        page=_coerce_positive("page", page, 1),
        limit=_coerce_positive("limit", limit, default_limit),
    )
