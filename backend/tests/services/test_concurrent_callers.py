"""Concurrent callers — separate sessions racing on one file-backed database.

Invariants tested:
    - Two pending orders for one buyer/product verified at once: exactly one paid,
      the other failed with InvalidTransitionError
    - Two identical review submissions at once: one created, one Conflict, and the
      aggregate counts the survivor only
    - Reviews from different buyers at once: the aggregate reflects both
    - A review deleted between another caller's read and its product lock is
      NotFound for that caller and leaves the aggregate consistent

Design Decisions:
    - File-backed SQLite (not :memory:): every session gets its own connection to
      the same database, so writers really contend for the lock
    - Each caller owns its session and service instances, as separate requests would
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)

from marketplace.core.domain_types import Principal, Role
from marketplace.core.errors import ResourceNotFoundError
from marketplace.db.base import Base
from marketplace.models.order import Order
from marketplace.models.product import Product
from marketplace.models.review import Review
from marketplace.services.order_ledger import OrderLedger
from marketplace.services.review_store import ReviewStore

from tests.services.fake_provider import SECRET, FakePaymentProvider, sign


@pytest.fixture
async def file_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(file_engine):
    return async_sessionmaker(
        file_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
def shared_provider():
    return FakePaymentProvider()


@pytest.fixture
async def product_id(sessions):
    async with sessions() as db:
        product = Product(title="Hospital Management System", price=Decimal("500.00"))
        db.add(product)
        await db.commit()
        return product.id


def _ledger(db, provider) -> OrderLedger:
    return OrderLedger(db, provider, secret=SECRET, currency="INR")


async def _buy(sessions, provider, principal, product_id, payment_ref):
    async with sessions() as db:
        ledger = _ledger(db, provider)
        intent = await ledger.create_intent(principal, product_id)
        await ledger.verify_payment(
            intent.provider_order_ref, payment_ref,
            sign(intent.provider_order_ref, payment_ref),
        )


async def _outcome(call) -> str:
    try:
        await call
    except Exception as e:
        return type(e).__name__
    return "ok"


async def _aggregate(sessions, product_id):
    async with sessions() as db:
        result = await db.execute(
            select(Product.rating, Product.total_ratings, Product.rating_stale)
            .where(Product.id == product_id)
        )
        return tuple(result.one())


async def _review_count(sessions, product_id):
    async with sessions() as db:
        result = await db.execute(
            select(func.count(Review.id)).where(Review.product_id == product_id)
        )
        return result.scalar_one()


# ─── Orders ──────────────────────────────────────────────────────

async def test_concurrent_verifications_pay_exactly_one_order(
    sessions, shared_provider, product_id,
):
    buyer = Principal(user_id=uuid4(), role=Role.BUYER)
    async with sessions() as db:
        ledger = _ledger(db, shared_provider)
        first = await ledger.create_intent(buyer, product_id)
        second = await ledger.create_intent(buyer, product_id)

    async def verify(intent, payment_ref):
        async with sessions() as db:
            await _ledger(db, shared_provider).verify_payment(
                intent.provider_order_ref, payment_ref,
                sign(intent.provider_order_ref, payment_ref),
            )

    outcomes = await asyncio.gather(
        _outcome(verify(first, "pay_a")), _outcome(verify(second, "pay_b")),
    )

    assert sorted(outcomes) == ["InvalidTransitionError", "ok"]
    async with sessions() as db:
        result = await db.execute(
            select(Order.status)
            .where(Order.buyer_id == buyer.user_id)
            .where(Order.product_id == product_id)
        )
        assert sorted(result.scalars().all()) == ["failed", "paid"]


# ─── Reviews ─────────────────────────────────────────────────────

async def test_concurrent_duplicate_reviews_create_one(
    sessions, shared_provider, product_id,
):
    buyer = Principal(user_id=uuid4(), role=Role.BUYER)
    await _buy(sessions, shared_provider, buyer, product_id, "pay_1")

    async def submit():
        async with sessions() as db:
            await ReviewStore(db).create(buyer, product_id, 5, "solid")

    outcomes = await asyncio.gather(_outcome(submit()), _outcome(submit()))

    assert sorted(outcomes) == ["ConflictError", "ok"]
    assert await _review_count(sessions, product_id) == 1
    assert await _aggregate(sessions, product_id) == (5.0, 1, False)


async def test_concurrent_reviews_from_two_buyers_both_counted(
    sessions, shared_provider, product_id,
):
    first = Principal(user_id=uuid4(), role=Role.BUYER)
    second = Principal(user_id=uuid4(), role=Role.BUYER)
    await _buy(sessions, shared_provider, first, product_id, "pay_1")
    await _buy(sessions, shared_provider, second, product_id, "pay_2")

    async def submit(principal, rating):
        async with sessions() as db:
            await ReviewStore(db).create(principal, product_id, rating)

    outcomes = await asyncio.gather(
        _outcome(submit(first, 5)), _outcome(submit(second, 3)),
    )

    assert outcomes == ["ok", "ok"]
    assert await _aggregate(sessions, product_id) == (4.0, 2, False)


@pytest.mark.parametrize("action", ["update", "delete", "set_approval"])
async def test_review_deleted_before_lock_is_not_found(
    sessions, shared_provider, product_id, action,
):
    buyer = Principal(user_id=uuid4(), role=Role.BUYER)
    admin = Principal(user_id=uuid4(), role=Role.ADMIN)
    await _buy(sessions, shared_provider, buyer, product_id, "pay_1")
    async with sessions() as db:
        review = await ReviewStore(db).create(buyer, product_id, 5)
        review_id = review.id

    async with sessions() as db, sessions() as other:
        store = ReviewStore(db)
        lock_product = store.aggregator.lock_product

        async def delete_then_lock(pid):
            # another caller removes the review after this one has read it
            await ReviewStore(other).delete(review_id, buyer)
            await lock_product(pid)

        store.aggregator.lock_product = delete_then_lock
        calls = {
            "update": lambda: store.update(review_id, buyer, rating=4),
            "delete": lambda: store.delete(review_id, buyer),
            "set_approval": lambda: store.set_approval(review_id, admin, False),
        }

        with pytest.raises(ResourceNotFoundError):
            await calls[action]()

    assert await _review_count(sessions, product_id) == 0
    assert await _aggregate(sessions, product_id) == (0.0, 0, False)
