"""
SQLAlchemy 2.x ORM models for the field-operations API.

Models use the Mapped[] type annotation syntax and mapped_column. Every
entity carries a UUID primary key plus created_at / updated_at / deleted_at
timestamps. The listing engine discovers columns and relations from these
mappings, so relation attribute names are part of the public filter syntax
(``filters[branch][city][name]=Riyadh``).
"""

import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from fieldops.domain.enums import (
    AuditStatus,
    DiscountReason,
    JourneyStatus,
    JourneyType,
    UserRole,
)


def utcnow() -> datetime:
    return datetime.now(UTC)


def _enum(enum_cls: type, name: str) -> Enum:
    # Persist enum values (not member names), portable across Postgres and SQLite
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CoreMixin:
    """Primary key and audit timestamps shared by every entity."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


brand_categories = Table(
    "brand_categories",
    Base.metadata,
    Column("brand_id", ForeignKey("brands.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Project(CoreMixin, Base):
    """A customer project (tenant) grouping branches, users and brands."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(120))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Country(CoreMixin, Base):
    __tablename__ = "countries"

    name: Mapped[str] = mapped_column(String(120))

    regions: Mapped[list["Region"]] = relationship(back_populates="country")


class Region(CoreMixin, Base):
    __tablename__ = "regions"

    name: Mapped[str] = mapped_column(String(120))
    country_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("countries.id"))

    country: Mapped[Country | None] = relationship(back_populates="regions")
    cities: Mapped[list["City"]] = relationship(back_populates="region")


class City(CoreMixin, Base):
    __tablename__ = "cities"

    name: Mapped[str] = mapped_column(String(120))
    region_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("regions.id"))

    region: Mapped[Region | None] = relationship(back_populates="cities")
    branches: Mapped[list["Branch"]] = relationship(back_populates="city")


class Chain(CoreMixin, Base):
    """A retail chain owning several branches."""

    __tablename__ = "chains"

    name: Mapped[str] = mapped_column(String(120))
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))

    project: Mapped[Project | None] = relationship()


class User(CoreMixin, Base):
    """Platform user: admins, supervisors and in-store promoters."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(120))
    username: Mapped[str] = mapped_column(String(80), unique=True)
    mobile: Mapped[str | None] = mapped_column(String(32))
    role: Mapped[UserRole] = mapped_column(_enum(UserRole, "user_role"))
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))
    branch_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("branches.id"))
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))

    project: Mapped[Project | None] = relationship()
    branch: Mapped["Branch | None"] = relationship(foreign_keys=[branch_id])
    created_by: Mapped["User | None"] = relationship(remote_side="User.id")


class Branch(CoreMixin, Base):
    """A physical store visited by promoters."""

    __tablename__ = "branches"

    name: Mapped[str] = mapped_column(String(120))
    geo: Mapped[str | None] = mapped_column(String(64))
    geofence_radius_meters: Mapped[int] = mapped_column(Integer, default=500)
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))
    city_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("cities.id"))
    chain_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("chains.id"))
    supervisor_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", use_alter=True, name="fk_branches_supervisor_id")
    )

    project: Mapped[Project | None] = relationship()
    city: Mapped[City | None] = relationship(back_populates="branches")
    chain: Mapped[Chain | None] = relationship()
    supervisor: Mapped[User | None] = relationship(foreign_keys=[supervisor_id])
    audits: Mapped[list["Audit"]] = relationship(back_populates="branch")


class Category(CoreMixin, Base):
    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(String(120))


class Brand(CoreMixin, Base):
    """A product brand, either shared within a project or owned by one user."""

    __tablename__ = "brands"

    name: Mapped[str] = mapped_column(String(120))
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))
    owner_user_id: Mapped[uuid.UUID | None] = mapped_column("owner_id", ForeignKey("users.id"))

    project: Mapped[Project | None] = relationship()
    owner: Mapped[User | None] = relationship()
    categories: Mapped[list[Category]] = relationship(secondary=brand_categories)


class Product(CoreMixin, Base):
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(200))
    sku: Mapped[str | None] = mapped_column(String(64))
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    attributes: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    brand_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("brands.id"))
    category_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("categories.id"))

    brand: Mapped[Brand | None] = relationship()
    category: Mapped[Category | None] = relationship()


class Audit(CoreMixin, Base):
    """A promoter's shelf audit of one product in one branch on one day."""

    __tablename__ = "audits"

    status: Mapped[AuditStatus] = mapped_column(
        _enum(AuditStatus, "audit_status"), default=AuditStatus.PENDING
    )
    is_available: Mapped[bool] = mapped_column(Boolean, default=False)
    current_price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    discount_reason: Mapped[DiscountReason | None] = mapped_column(
        _enum(DiscountReason, "discount_reason"), nullable=True
    )
    discount_details: Mapped[str | None] = mapped_column(Text)
    audit_date: Mapped[date] = mapped_column(Date)
    product_name: Mapped[str] = mapped_column(String(200))
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))
    promoter_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))
    branch_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("branches.id"))
    product_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("products.id"))

    project: Mapped[Project | None] = relationship()
    promoter: Mapped[User | None] = relationship()
    branch: Mapped[Branch | None] = relationship(back_populates="audits")
    product: Mapped[Product | None] = relationship()


class Journey(CoreMixin, Base):
    """A planned or ad-hoc store visit for attendance tracking."""

    __tablename__ = "journeys"

    visit_date: Mapped[date] = mapped_column("date", Date)
    status: Mapped[JourneyStatus] = mapped_column(
        _enum(JourneyStatus, "journey_status"), default=JourneyStatus.UNPLANNED
    )
    journey_type: Mapped[JourneyType] = mapped_column(
        "type", _enum(JourneyType, "journey_type"), default=JourneyType.PLANNED
    )
    check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    project_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("projects.id"))
    user_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"))
    branch_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("branches.id"))

    project: Mapped[Project | None] = relationship()
    user: Mapped[User | None] = relationship()
    branch: Mapped[Branch | None] = relationship()
