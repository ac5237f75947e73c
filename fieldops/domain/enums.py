"""
Domain enums for the retail field-operations entities.

Values are the strings persisted in the database; the listing engine's
search treats these columns as exact-match only.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role of a platform user."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    PROMOTER = "promoter"


class AuditStatus(str, Enum):
    """Review state of a shelf audit."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DiscountReason(str, Enum):
    """Reason recorded for a discounted shelf price."""

    NATIONAL_DAY = "National Day"
    FOUNDING_DAY = "Founding Day"
    MEGA_SALE = "Mega Sale"
    BLACK_FRIDAY = "Black Friday"
    OTHER = "Other"


class JourneyStatus(str, Enum):
    """Attendance state of a planned store visit."""

    UNPLANNED = "unplanned"
    PRESENT = "present"
    ABSENT = "absent"
    CLOSED = "closed"


class JourneyType(str, Enum):
    """Whether a visit was planned ahead or added on the day."""

    PLANNED = "planned"
    UNPLANNED = "unplanned"
