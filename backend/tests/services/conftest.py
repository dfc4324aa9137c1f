"""Service test fixtures — async DB, fake payment provider, principals, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db and get_payment_provider dependencies overridden for route tests
    - FakePaymentProvider issues sequential order refs and records every request

Design Decisions:
    - SQLite in-memory: fast, no external dependency; supports the partial unique
      index and savepoints the core relies on
    - Principals are passed to routes as gateway headers, same as production
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from marketplace.core.domain_types import Principal, Role
from marketplace.db.base import Base
from marketplace.infrastructure.database import get_db
from marketplace.infrastructure.payment_provider import get_payment_provider
from marketplace.main import app
from marketplace.models.product import Product
from marketplace.services.order_ledger import OrderLedger
from marketplace.services.review_store import ReviewStore

from tests.services.fake_provider import SECRET, FakePaymentProvider, sign


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def buyer():
    return Principal(user_id=uuid4(), role=Role.BUYER)


@pytest.fixture
def other_buyer():
    return Principal(user_id=uuid4(), role=Role.BUYER)


@pytest.fixture
def admin():
    return Principal(user_id=uuid4(), role=Role.ADMIN)


@pytest.fixture
async def product(test_db):
    """A 500.00 INR project bundle."""
    product = Product(title="Library Management System", price=Decimal("500.00"))
    test_db.add(product)
    await test_db.commit()
    await test_db.refresh(product)
    return product


@pytest.fixture
def ledger(test_db, provider):
    return OrderLedger(test_db, provider, secret=SECRET, currency="INR")


@pytest.fixture
def review_store(test_db):
    return ReviewStore(test_db)


@pytest.fixture
def purchase(ledger):
    """Run CreateIntent + valid VerifyPayment; returns the paid order."""

    async def _purchase(principal, product_id, payment_ref="pay_test0001"):
        intent = await ledger.create_intent(principal, product_id)
        return await ledger.verify_payment(
            intent.provider_order_ref, payment_ref,
            sign(intent.provider_order_ref, payment_ref),
        )

    return _purchase


@pytest.fixture
async def client(test_session_factory, provider):
    """FastAPI test client with DB and provider dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: provider

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
