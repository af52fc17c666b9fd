"""
Pytest configuration and shared fixtures for metering tests.
"""
import os
import tempfile

# Point the module-level engine at a throwaway SQLite file before metering is imported.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "metering_test.db"),
)

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.pool import NullPool

from metering.core.database import Base, build_engine, build_sessionmaker
from metering.models import PlanType, Subscription, SubscriptionStatus, UsageRecord, User
from metering.services.usage_service import UsageService

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the service reads instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def engine(tmp_path):
    # NullPool: every session gets its own connection, so concurrent sessions really are concurrent
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'metering.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock(START)


@pytest.fixture
def service(db, clock):
    return UsageService(db, clock=clock)


async def create_user(db, email="test@example.com"):
    user = User(email=email, full_name="Test User")
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db):
    return await create_user(db)


async def create_subscription(db, user_id, plan_type=PlanType.STARTER, start=START, days=30,
                              status=SubscriptionStatus.ACTIVE):
    subscription = Subscription(
        user_id=user_id,
        plan_type=plan_type.value,
        status=status.value,
        current_period_start=start,
        current_period_end=start + timedelta(days=days),
    )
    db.add(subscription)
    await db.commit()
    return subscription


async def set_counters(db, record_id, **counters):
    await db.execute(update(UsageRecord).where(UsageRecord.id == record_id).values(**counters))
    await db.commit()
