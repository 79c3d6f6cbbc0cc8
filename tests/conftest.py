"""Common test fixtures and configuration for pytest.

Database fixtures run against an in-memory SQLite database, which enforces the
same check constraints and partial unique index as PostgreSQL.
"""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from schoolbilling import schemas
from schoolbilling.models import School, SubscriptionPlan
from schoolbilling.models._base import Base


class FrozenClock:
    """Controllable source of "now" for the webhook processor."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@pytest.fixture
async def db_engine():
    """Create a fresh in-memory database for each test function."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session, configured like the application's sessions."""
    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        yield session


def _plan(name: str, price: str, billing_cycle: str, is_active: bool = True) -> SubscriptionPlan:
    return SubscriptionPlan(
        name=name,
        price=Decimal(price),
        currency="USD",
        billing_cycle=billing_cycle,
        features=["gradebook", "attendance"],
        max_students=500,
        max_teachers=40,
        is_active=is_active,
    )


@pytest.fixture
async def school(db_session) -> School:
    """A school with no gateway customer yet."""
    obj = School(name="Springfield Elementary")
    db_session.add(obj)
    await db_session.commit()
    return obj


@pytest.fixture
async def monthly_plan(db_session) -> SubscriptionPlan:
    plan = _plan("Basic", "49.99", schemas.BillingCycle.MONTHLY.value)
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def yearly_plan(db_session) -> SubscriptionPlan:
    plan = _plan("Premium", "499.00", schemas.BillingCycle.YEARLY.value)
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def free_plan(db_session) -> SubscriptionPlan:
    plan = _plan("Starter", "0.00", schemas.BillingCycle.MONTHLY.value)
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def one_time_plan(db_session) -> SubscriptionPlan:
    plan = _plan("Lifetime", "999.00", schemas.BillingCycle.ONE_TIME.value)
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def retired_plan(db_session) -> SubscriptionPlan:
    plan = _plan("Legacy", "19.00", schemas.BillingCycle.MONTHLY.value, is_active=False)
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 1, 15, 9, 30))


@pytest.fixture
def gateway() -> MagicMock:
    """Stand-in for StripeClient with async gateway calls."""
    mock_gateway = MagicMock()
    mock_gateway.create_customer = AsyncMock(return_value=SimpleNamespace(id="cus_new"))
    mock_gateway.create_checkout_session = AsyncMock(
        return_value=SimpleNamespace(
            id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123"
        )
    )
    return mock_gateway


@pytest.fixture
def school_admin(school) -> schemas.Requester:
    return schemas.Requester(
        id="user-42",
        role=schemas.RequesterRole.ADMIN.value,
        school_id=school.id,
        email="principal@springfield.edu",
        auth_method="jwt",
    )
