"""
Pytest configuration and fixtures.
"""

import sys
import os
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_URL", "")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base
import app.models  # noqa: F401  registers every table on Base.metadata
from app.fsm.states import PaymentStatus, PaymentType, SubscriptionStatus
from app.models.payment import Payment
from app.models.product import Product, Price
from app.models.subscription import Subscription
from app.models.user import User
from app.periods import utcnow
from app.services.notifier_config import NotifierConfig

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh async engine and schema per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier_config() -> NotifierConfig:
    """Notifier with no providers configured, so nothing leaves the process."""
    return NotifierConfig(app_url="http://testserver", admin_email="admin@example.com")


@pytest_asyncio.fixture
async def merchant(db) -> User:
    user = User(
        email="merchant@example.com",
        full_name="Deng Garang",
        business_name="Juba Fitness",
        phone="0912345678",
        mtn_momo_number="0920000000",
        bank_name="Equity Bank",
        bank_account_number="1000200030",
        bank_account_name="Juba Fitness Ltd",
    )
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def other_merchant(db) -> User:
    user = User(email="other@example.com", business_name="Other Shop")
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def price(db, merchant) -> Price:
    product = Product(merchant_id=merchant.id, name="Gym Membership")
    db.add(product)
    await db.flush()

    monthly = Price(
        product_id=product.id,
        name="Monthly",
        amount=Decimal("15000.00"),
        currency="SSP",
        billing_cycle="monthly",
        grace_period_days=3,
    )
    db.add(monthly)
    await db.flush()
    return monthly


@pytest.fixture
def make_payment(db, merchant, price):
    """Factory for payments owned by `merchant`."""

    async def _make(**overrides) -> Payment:
        values = {
            "merchant_id": merchant.id,
            "price_id": price.id,
            "product_id": price.product_id,
            "customer_phone": "+211911111111",
            "reference_code": uuid.uuid4().hex[:10],
            "amount": price.amount,
            "currency": price.currency,
            "payment_type": PaymentType.INITIAL.value,
            "status": PaymentStatus.PENDING.value,
            "expires_at": utcnow() + timedelta(hours=24),
        }
        values.update(overrides)
        payment = Payment(**values)
        db.add(payment)
        await db.flush()
        return payment

    return _make


@pytest.fixture
def make_subscription(db, merchant, price):
    """Factory for subscriptions on `price`."""

    async def _make(**overrides) -> Subscription:
        now = utcnow()
        values = {
            "merchant_id": merchant.id,
            "product_id": price.product_id,
            "price_id": price.id,
            "customer_phone": "+211911111111",
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_start": now - timedelta(days=25),
            "current_period_end": now + timedelta(days=5),
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db.add(subscription)
        await db.flush()
        return subscription

    return _make
