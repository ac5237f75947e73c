"""
Pytest configuration and shared fixtures.

Provides:
- Environment setup before any fieldops import (settings are read at import)
- async_engine: in-memory aiosqlite engine with the full schema created
- async_db_session: function-scoped AsyncSession on that engine
- seeded: a small retail graph (projects, geography, chains, branches, users,
  brands, categories, products, audits, journeys) with fixed timestamps
- api_client: httpx AsyncClient over the FastAPI app, sharing the test engine
- registry: metadata registry built from the ORM base
"""

from __future__ import annotations

import os
import sys
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Set test environment variables before importing fieldops
os.environ.setdefault("DATABASE_URL_APP", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("OBSERVABILITY_STRUCTURED_LOGS", "false")

import httpx  # noqa: E402 (import after env setup)
import pytest  # noqa: E402 (import after env setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from fieldops.core.db import get_async_db_session  # noqa: E402
from fieldops.db.models import (  # noqa: E402
    Audit,
    Base,
    Branch,
    Brand,
    Category,
    Chain,
    City,
    Country,
    Journey,
    Product,
    Project,
    Region,
    User,
)
from fieldops.domain.enums import (  # noqa: E402
    AuditStatus,
    DiscountReason,
    JourneyStatus,
    JourneyType,
    UserRole,
)
from fieldops.main import create_app  # noqa: E402
from fieldops.query.metadata import MetadataRegistry  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Per AnyIO testing docs: https://anyio.readthedocs.io/en/stable/testing.html
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="session")
def registry() -> MetadataRegistry:
    return MetadataRegistry.from_base(Base)


@pytest.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """
    Fresh in-memory database per test.

    StaticPool keeps the single in-memory connection alive across sessions.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def async_db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    session_maker = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


def _ts(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


async def seed_retail_graph(db: AsyncSession) -> SimpleNamespace:
    """
    Insert the shared retail fixture graph and commit it.

    Audits (created_at ascending): a1 < a2 < a5 < a3 < a4.
    Riyadh branches: b1 (project alpha), b3 (project beta). Jeddah: b2.
    """
    alpha = Project(name="Alpha Retail", created_at=_ts(date(2023, 12, 1), 9))
    beta = Project(name="Beta Foods", created_at=_ts(date(2023, 12, 2), 9))

    saudi = Country(name="Saudi Arabia")
    central = Region(name="Central", country=saudi)
    western = Region(name="Western", country=saudi)
    riyadh = City(name="Riyadh", region=central)
    jeddah = City(name="Jeddah", region=western)

    panda = Chain(name="Panda", project=alpha)
    danube = Chain(name="Danube", project=alpha)

    admin = User(name="Admin", username="admin", role=UserRole.ADMIN, project=alpha)
    supervisor = User(name="Huda", username="huda", role=UserRole.SUPERVISOR, project=alpha)
    sara = User(name="Sara", username="sara", role=UserRole.PROMOTER, project=alpha)
    omar = User(name="Omar", username="omar", role=UserRole.PROMOTER, project=alpha)
    beta_promoter = User(name="Faisal", username="faisal", role=UserRole.PROMOTER, project=beta)

    b1 = Branch(
        name="Panda Olaya",
        geofence_radius_meters=300,
        project=alpha,
        city=riyadh,
        chain=panda,
        supervisor=supervisor,
    )
    b2 = Branch(
        name="Danube Tahlia",
        geofence_radius_meters=500,
        project=alpha,
        city=jeddah,
        chain=danube,
    )
    b3 = Branch(name="Beta Store", geofence_radius_meters=450, project=beta, city=riyadh)

    dairy = Category(name="Dairy")
    snacks = Category(name="Snacks")

    almarai = Brand(name="Almarai", project=alpha, categories=[dairy])
    lays = Brand(name="Lays", project=alpha, categories=[snacks, dairy])
    private_label = Brand(name="Private Label", owner=sara)

    milk = Product(
        name="Almarai Milk 1L",
        sku="ALM-1L",
        price=Decimal("6.50"),
        attributes={"size": "1L", "color": "white"},
        brand=almarai,
        category=dairy,
    )
    chips = Product(
        name="Lays Classic",
        sku="LAY-CL",
        price=Decimal("3.00"),
        attributes={"flavor": "salted"},
        brand=lays,
        category=snacks,
    )
    laban = Product(name="Laban 500ml", sku="ALM-LB", price=Decimal("2.25"), brand=almarai, category=dairy)

    def audit(**kwargs) -> Audit:
        product = kwargs.pop("product")
        return Audit(product=product, product_name=product.name, **kwargs)

    a1 = audit(
        project=alpha,
        promoter=sara,
        branch=b1,
        product=milk,
        status=AuditStatus.APPROVED,
        is_available=True,
        current_price=Decimal("6.50"),
        audit_date=date(2024, 1, 5),
        created_at=_ts(date(2024, 1, 5), 9),
    )
    a2 = audit(
        project=alpha,
        promoter=sara,
        branch=b1,
        product=chips,
        status=AuditStatus.PENDING,
        is_available=True,
        current_price=Decimal("3.00"),
        discount_reason=DiscountReason.MEGA_SALE,
        discount_details="Buy one get one",
        audit_date=date(2024, 1, 10),
        created_at=_ts(date(2024, 1, 10), 10),
    )
    a3 = audit(
        project=alpha,
        promoter=omar,
        branch=b2,
        product=milk,
        status=AuditStatus.APPROVED,
        is_available=False,
        audit_date=date(2024, 1, 20),
        created_at=_ts(date(2024, 1, 20), 11),
    )
    a4 = audit(
        project=alpha,
        promoter=omar,
        branch=b2,
        product=laban,
        status=AuditStatus.REJECTED,
        is_available=True,
        current_price=Decimal("2.25"),
        discount_reason=DiscountReason.NATIONAL_DAY,
        audit_date=date(2024, 2, 1),
        created_at=_ts(date(2024, 2, 1), 12),
    )
    a5 = audit(
        project=beta,
        promoter=beta_promoter,
        branch=b3,
        product=milk,
        status=AuditStatus.APPROVED,
        is_available=True,
        current_price=Decimal("6.75"),
        audit_date=date(2024, 1, 15),
        created_at=_ts(date(2024, 1, 15), 8),
    )

    j1 = Journey(
        project=alpha,
        user=sara,
        branch=b1,
        visit_date=date(2024, 1, 5),
        status=JourneyStatus.PRESENT,
        journey_type=JourneyType.PLANNED,
        check_in_at=_ts(date(2024, 1, 5), 8, 30),
        created_at=_ts(date(2024, 1, 4), 18),
    )
    j2 = Journey(
        project=alpha,
        user=omar,
        branch=b2,
        visit_date=date(2024, 1, 6),
        status=JourneyStatus.ABSENT,
        journey_type=JourneyType.PLANNED,
        created_at=_ts(date(2024, 1, 5), 18),
    )
    j3 = Journey(
        project=alpha,
        user=sara,
        branch=b2,
        visit_date=date(2024, 1, 6),
        status=JourneyStatus.UNPLANNED,
        journey_type=JourneyType.UNPLANNED,
        check_in_at=_ts(date(2024, 1, 6), 13, 15),
        created_at=_ts(date(2024, 1, 6), 13),
    )

    db.add_all(
        [
            alpha,
            beta,
            saudi,
            admin,
            supervisor,
            sara,
            omar,
            beta_promoter,
            b1,
            b2,
            b3,
            private_label,
            milk,
            chips,
            laban,
            a1,
            a2,
            a3,
            a4,
            a5,
            j1,
            j2,
            j3,
        ]
    )
    await db.commit()

    return SimpleNamespace(
        projects={"alpha": alpha, "beta": beta},
        cities={"riyadh": riyadh, "jeddah": jeddah},
        users={"admin": admin, "huda": supervisor, "sara": sara, "omar": omar, "faisal": beta_promoter},
        branches={"b1": b1, "b2": b2, "b3": b3},
        categories={"dairy": dairy, "snacks": snacks},
        brands={"almarai": almarai, "lays": lays, "private_label": private_label},
        products={"milk": milk, "chips": chips, "laban": laban},
        audits={"a1": a1, "a2": a2, "a3": a3, "a4": a4, "a5": a5},
        journeys={"j1": j1, "j2": j2, "j3": j3},
    )


@pytest.fixture(scope="function")
async def seeded(async_db_session: AsyncSession) -> SimpleNamespace:
    """
    Seed the retail graph, then detach it.

    Queries in the test load fresh instances, so eager loading is really
    exercised instead of served from the seeding identity map.
    """
    data = await seed_retail_graph(async_db_session)
    async_db_session.expunge_all()
    return data


@pytest.fixture(scope="function")
async def api_client(
    async_engine: AsyncEngine, seeded: SimpleNamespace
) -> AsyncGenerator[httpx.AsyncClient]:
    """
    Async HTTP client over a fresh app whose DB dependency uses the test engine.
    """
    app = create_app()
    session_maker = async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_db_session() -> AsyncGenerator[AsyncSession]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db_session] = override_db_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
