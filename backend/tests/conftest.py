"""
Pytest fixtures for test database, client, tokens, listings and bookings.

Tables are created and dropped per test. The default database is a SQLite
file (aiosqlite) so two sessions can race against the same rows; point
TEST_DATABASE_URL at Postgres to run the suite against asyncpg.
"""

import os
import tempfile

TEST_DATABASE_URL = os.environ.get(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "estate_booking_test.db"),
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["EXPIRY_SWEEP_ENABLED"] = "false"
os.environ["PAYMENTS_CALLBACK_SECRET"] = "test-callback-secret"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from estate_booking.main import app
from estate_booking.api.deps import get_notifier
from estate_booking.core.security import create_access_token
from estate_booking.db.base import Base
from estate_booking.db.session import get_db
from estate_booking.models.booking import Booking
from estate_booking.models.enums import ListingStatus, ListingType, RentOrSale
from estate_booking.models.listing import Listing
from estate_booking.services import booking_service

OWNER_ID = "owner-1"
GUEST_ID = "guest-1"
OTHER_GUEST_ID = "guest-2"
ADMIN_ID = "admin-1"
CALLBACK_SECRET = "test-callback-secret"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


class RecordingNotifier:
    """Collects published events instead of sending them."""

    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    async def publish(self, user_id: str, event: str, payload: dict) -> None:
        self.events.append((user_id, event, payload))

    async def close(self) -> None:
        return None

    def names_for(self, user_id: str) -> list[str]:
        return [event for uid, event, _ in self.events if uid == user_id]


def rent_dates(start_in_days: int = 10, end_in_days: int = 45, now: datetime | None = None):
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=start_in_days), now + timedelta(days=end_in_days)


async def reload(model, row_id: str):
    """Current row state from a fresh session."""
    async with TestSessionLocal() as session:
        return await session.get(model, row_id)


def bearer(user_id: str, role: str | None = None) -> dict:
    claims = {"sub": user_id}
    if role:
        claims["role"] = role
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Independent sessions on the same database, for race scenarios."""
    return TestSessionLocal


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client on the test database; one session per request like get_db."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers() -> dict:
    return bearer(OWNER_ID)


@pytest.fixture
def guest_headers() -> dict:
    return bearer(GUEST_ID)


@pytest.fixture
def other_guest_headers() -> dict:
    return bearer(OTHER_GUEST_ID)


@pytest.fixture
def admin_headers() -> dict:
    return bearer(ADMIN_ID, role="admin")


async def _add_listing(db: AsyncSession, **overrides) -> Listing:
    values = dict(
        owner_id=OWNER_ID,
        title="Lakeside apartment",
        description="Two bedrooms near the lake",
        location="Pokhara",
        listing_type=ListingType.APARTMENT.value,
        rent_or_sale=RentOrSale.RENT.value,
        price=Decimal("30000"),
        status=ListingStatus.ACTIVE.value,
    )
    values.update(overrides)
    listing = Listing(**values)
    db.add(listing)
    await db.commit()
    await db.refresh(listing)
    return listing


@pytest_asyncio.fixture
async def rent_listing(db_session: AsyncSession) -> Listing:
    """Rent listing at 30000 per 30 days."""
    return await _add_listing(db_session)


@pytest_asyncio.fixture
async def sale_listing(db_session: AsyncSession) -> Listing:
    return await _add_listing(
        db_session,
        title="Villa for sale",
        listing_type=ListingType.VILLA.value,
        rent_or_sale=RentOrSale.SALE.value,
        price=Decimal("25000000"),
    )


@pytest_asyncio.fixture
async def pending_rent_booking(db_session: AsyncSession, rent_listing: Listing) -> Booking:
    start, end = rent_dates()
    booking = await booking_service.create_booking(
        db_session, GUEST_ID, rent_listing.id, RentOrSale.RENT, start, end
    )
    await db_session.commit()
    return booking


@pytest_asyncio.fixture
async def pending_sale_booking(db_session: AsyncSession, sale_listing: Listing) -> Booking:
    booking = await booking_service.create_booking(
        db_session, GUEST_ID, sale_listing.id, RentOrSale.SALE
    )
    await db_session.commit()
    return booking
