"""Pytest configuration and fixtures for testing."""

from datetime import datetime, timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.core.database import Base
from app.models import AuctionPost, BuyerAccount, SubmitterAccount
from app.services.auction_service import AuctionService
from app.services.content_registry import clear_ownership_cache

T0 = datetime(2026, 3, 1, 12, 0, 0)


class FrozenClock:
    """Controllable clock for the auction services."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture(autouse=True)
def _clear_caches():
    clear_ownership_cache()
    yield
    clear_ownership_cache()


async def _create_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


# In-memory database, one per test
@pytest_asyncio.fixture
async def db_engine():
    engine = await _create_engine()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()

    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.publish = AsyncMock(return_value=1)
    redis.register_script = MagicMock(return_value=AsyncMock(return_value=1))

    return redis


# ==================== Factories ====================

@pytest.fixture
def make_post(db, clock):
    """Open an auction at the current clock time."""

    async def _make_post(**kwargs) -> AuctionPost:
        return await AuctionService(db, clock).open_auction(**kwargs)

    return _make_post


@pytest.fixture
def make_buyer(db):
    """Create a buyer account with a starting balance."""

    async def _make_buyer(
        phone_number: str = "+27820000001",
        credit_balance: int = 100_000,
        organization_name: str | None = None,
    ) -> BuyerAccount:
        buyer = BuyerAccount(
            phone_number=phone_number,
            organization_name=organization_name,
            credit_balance=credit_balance,
        )
        db.add(buyer)
        await db.commit()
        return buyer

    return _make_buyer


@pytest.fixture
def make_submitter(db):
    async def _make_submitter(display_name: str = "anon-submitter") -> SubmitterAccount:
        submitter = SubmitterAccount(display_name=display_name)
        db.add(submitter)
        await db.commit()
        return submitter

    return _make_submitter


@pytest.fixture
def reload(db):
    """Re-read a row, bypassing any expired identity-map state."""

    async def _reload(model, pk: UUID):
        return await db.get(model, pk, populate_existing=True)

    return _reload


@pytest_asyncio.fixture
async def ledger_session_maker():
    """Sessions on a separate database, standing in for an external ledger."""
    engine = await _create_engine()
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
