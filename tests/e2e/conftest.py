"""
E2E test fixtures for the NearMatch API.

Provides:
- An async SQLite database session (in-memory) for isolation
- Pre-populated seed data: clients, providers, an agency, and reviews
- The real FastAPI application with the DB dependency overridden
- httpx AsyncClient wired via ASGI transport (no network needed)

Geocoding is replaced with an in-memory fake so address searches never
reach Mapbox.
"""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from nearmatch.models import (
    AvailabilityStatus,
    Base,
    Review,
    ReviewStatus,
    User,
    UserRole,
    VerificationStatus,
)
from tests.fakes import ORIGIN, FakeGeocoder, north_of

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CLIENT_WITH_COORDS_ID = "client-coords"
CLIENT_WITH_REGION_ID = "client-region"
PROVIDER_NEAR_ID = "prov-near"
PROVIDER_BUSY_ID = "prov-busy"
PROVIDER_FAR_ID = "prov-far"
PROVIDER_NO_COORDS_ID = "prov-nocoords"
PROVIDER_QC_ID = "prov-qc"
AGENCY_ID = "agency-3km"

GEOCODED_ADDRESS = "Manila City Hall"


# ---------------------------------------------------------------------------
# Async engine + session (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def _test_engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        await session.begin()
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def _located(km: float) -> dict:
    point = north_of(ORIGIN, km)
    return {"latitude": point.latitude, "longitude": point.longitude}


async def _seed_data(db: AsyncSession) -> None:
    """Insert a small Manila-centred catalog.

    Coordinates sit due north of the origin so distances are easy to read:
    prov-near ~1 km, prov-busy ~2 km (unavailable), agency-3km ~3 km,
    prov-qc ~15 km (Quezon City), prov-far ~80 km (Bulacan).
    """
    manila = {"city": "Manila", "province": "Metro Manila"}

    users = [
        User(
            id=CLIENT_WITH_COORDS_ID,
            role=UserRole.CLIENT,
            display_name="Maria C.",
            latitude=ORIGIN.latitude,
            longitude=ORIGIN.longitude,
            **manila,
        ),
        User(
            id=CLIENT_WITH_REGION_ID,
            role=UserRole.CLIENT,
            display_name="Jose R.",
            **manila,
        ),
        User(
            id=PROVIDER_NEAR_ID,
            role=UserRole.PROVIDER,
            display_name="Juan's Plumbing",
            key_services=["Plumbing", "Drain repair"],
            availability_status=AvailabilityStatus.AVAILABLE,
            verification_status=VerificationStatus.VERIFIED,
            address="1 Taft Ave",
            **manila,
            **_located(1.0),
        ),
        User(
            id=PROVIDER_BUSY_ID,
            role=UserRole.PROVIDER,
            display_name="Busy Bee Plumbing",
            key_services=["Plumbing"],
            availability_status=AvailabilityStatus.UNAVAILABLE,
            **manila,
            **_located(2.0),
        ),
        User(
            id=AGENCY_ID,
            role=UserRole.AGENCY,
            display_name=None,
            key_services=["Electrical wiring", 42],
            availability_status=AvailabilityStatus.LIMITED,
            verification_status=VerificationStatus.PENDING,
            **manila,
            **_located(3.0),
        ),
        User(
            id=PROVIDER_NO_COORDS_ID,
            role=UserRole.PROVIDER,
            display_name="Roving Plumber",
            key_services=["Plumbing"],
            **manila,
        ),
        User(
            id=PROVIDER_QC_ID,
            role=UserRole.PROVIDER,
            display_name="QC Aircon",
            key_services=["Aircon Cleaning"],
            availability_status=AvailabilityStatus.AVAILABLE,
            city="Quezon City",
            province="Metro Manila",
            **_located(15.0),
        ),
        User(
            id=PROVIDER_FAR_ID,
            role=UserRole.PROVIDER,
            display_name="Bulacan Cleaners",
            key_services=["House Cleaning"],
            availability_status=AvailabilityStatus.AVAILABLE,
            city="Malolos",
            province="Bulacan",
            **_located(80.0),
        ),
    ]
    db.add_all(users)
    await db.flush()

    def review(provider_id: str, rating: str, status=ReviewStatus.PUBLISHED) -> Review:
        return Review(
            provider_id=provider_id,
            reviewer_id=CLIENT_WITH_COORDS_ID,
            rating=Decimal(rating),
            status=status,
        )

    db.add_all(
        [
            review(PROVIDER_NEAR_ID, "4.00"),
            review(PROVIDER_NEAR_ID, "5.00"),
            review(PROVIDER_NEAR_ID, "1.00", ReviewStatus.HIDDEN),
            review(AGENCY_ID, "5.00"),
            review(AGENCY_ID, "5.00"),
            review(AGENCY_ID, "4.00"),
            review(PROVIDER_NO_COORDS_ID, "5.00"),
            review(PROVIDER_QC_ID, "3.00"),
            review(PROVIDER_FAR_ID, "5.00"),
        ]
    )
    await db.flush()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """A database session with seed data already inserted."""
    await _seed_data(db_session)
    return db_session


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    return FakeGeocoder({GEOCODED_ADDRESS: ORIGIN})


@pytest.fixture
def app(seeded_db: AsyncSession, fake_geocoder: FakeGeocoder):
    """The real application with the DB dependency overridden to use the
    test session and geocoding served by the fake."""
    from nearmatch.api.deps import get_db
    from nearmatch.main import create_app

    application = create_app()

    async def _override_get_db():
        yield seeded_db

    application.dependency_overrides[get_db] = _override_get_db

    with patch("nearmatch.api.deps.get_geocoder", return_value=fake_geocoder):
        yield application

    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
