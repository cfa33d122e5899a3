"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models are created as-is;
SQLite hands back naive datetimes, which the services normalise to UTC.
The payment gateway is the in-memory sandbox and time comes from a
``FixedClock`` the tests move by hand.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carpool.domain.compatibility import CompatibilityGate, SingleGenderPolicy
from carpool.domain.enums import Gender, RideStatus, TravelStatus
from carpool.infrastructure import models  # noqa: F401  (registers tables)
from carpool.infrastructure.database import Base
from carpool.infrastructure.models import RideModel, UserModel
from carpool.infrastructure.payments import SandboxPaymentGateway


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DB_URL, echo=False)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock frozen at ``now`` until moved."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def gateway() -> SandboxPaymentGateway:
    return SandboxPaymentGateway(decline_above=100_000)


@pytest.fixture
def gate() -> CompatibilityGate:
    return CompatibilityGate(SingleGenderPolicy())


@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        name: str = "User",
        gender: Gender = Gender.MALE,
        travel_status: TravelStatus = TravelStatus.SOLO,
        is_approved_driver: bool = False,
        home_area: str | None = None,
        is_admin: bool = False,
    ) -> UserModel:
        counter["n"] += 1
        user = UserModel(
            name=name,
            email=f"user{counter['n']}@example.com",
            gender=gender,
            travel_status=travel_status,
            is_approved_driver=is_approved_driver,
            home_area=home_area,
            is_admin=is_admin,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_ride(db_session: AsyncSession):
    async def _make(
        driver: UserModel,
        seats: int = 4,
        price_per_seat: int = 2000,
        departure_time: datetime | None = None,
        departure_location: str = "Gateshead Metro Station",
        arrival_location: str = "Manchester Airport",
        occupant_males: int = 0,
        occupant_females: int = 0,
        occupant_couples: int = 0,
        status: RideStatus = RideStatus.UPCOMING,
    ) -> RideModel:
        ride = RideModel(
            driver_id=driver.id,
            departure_location=departure_location,
            arrival_location=arrival_location,
            departure_time=departure_time or NOW + timedelta(hours=100),
            seats_total=seats,
            seats_available=seats,
            version=0,
            price_per_seat=price_per_seat,
            currency="GBP",
            occupant_males=occupant_males,
            occupant_females=occupant_females,
            occupant_couples=occupant_couples,
            status=status,
        )
        db_session.add(ride)
        await db_session.commit()
        return ride

    return _make
