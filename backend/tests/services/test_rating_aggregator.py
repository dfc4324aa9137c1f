"""Rating Aggregator — recompute from source, isolate failures, repair stale products.

Invariants tested:
    - recompute() derives the aggregate from approved reviews only
    - A failing aggregate write never fails the review mutation: the review commits
      and the product is left flagged stale
    - retry_stale() repairs every flagged product and clears the flag
"""

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from marketplace.models.product import Product
from marketplace.services.rating_aggregator import RatingAggregator


async def _aggregate(db, product_id):
    result = await db.execute(
        select(Product.rating, Product.total_ratings, Product.rating_stale)
        .where(Product.id == product_id)
    )
    return tuple(result.one())


async def _failing_write(self, product_id, aggregate):
    raise OperationalError("UPDATE products", {}, Exception("database is locked"))


@pytest.fixture
def aggregator(test_db):
    return RatingAggregator(test_db)


async def test_recompute_empty_product(aggregator, test_db, product):
    aggregate = await aggregator.recompute(product.id)
    await test_db.commit()

    assert (aggregate.rating, aggregate.total_ratings) == (0.0, 0)
    assert await _aggregate(test_db, product.id) == (0.0, 0, False)


async def test_lock_product_flags_stale(aggregator, test_db, product):
    await aggregator.lock_product(product.id)
    await test_db.commit()

    assert (await _aggregate(test_db, product.id))[2] is True


async def test_failed_refresh_keeps_review_and_flags_stale(
    review_store, test_db, purchase, buyer, product, monkeypatch,
):
    await purchase(buyer, product.id)
    monkeypatch.setattr(RatingAggregator, "_write_aggregate", _failing_write)

    review = await review_store.create(buyer, product.id, 4, "works")

    assert review.rating == 4
    assert await _aggregate(test_db, product.id) == (0.0, 0, True)


async def test_retry_stale_repairs_flagged_products(
    review_store, aggregator, test_db, purchase, buyer, product, monkeypatch,
):
    await purchase(buyer, product.id)
    monkeypatch.setattr(RatingAggregator, "_write_aggregate", _failing_write)
    await review_store.create(buyer, product.id, 4)
    monkeypatch.undo()

    repaired = await aggregator.retry_stale()

    assert repaired == [product.id]
    assert await _aggregate(test_db, product.id) == (4.0, 1, False)


async def test_retry_stale_leaves_product_flagged_on_failure(
    aggregator, test_db, product, monkeypatch,
):
    await test_db.execute(
        update(Product).where(Product.id == product.id).values(rating_stale=True)
    )
    await test_db.commit()
    product_id = product.id  # the failed retry rolls back and expires loaded rows
    monkeypatch.setattr(RatingAggregator, "_write_aggregate", _failing_write)

    repaired = await aggregator.retry_stale()

    assert repaired == []
    assert (await _aggregate(test_db, product_id))[2] is True


async def test_retry_stale_with_nothing_flagged(aggregator, product):
    assert await aggregator.retry_stale() == []


async def test_next_successful_mutation_clears_stale(
    review_store, test_db, purchase, buyer, other_buyer, product, monkeypatch,
):
    await purchase(buyer, product.id, "pay_1")
    await purchase(other_buyer, product.id, "pay_2")
    monkeypatch.setattr(RatingAggregator, "_write_aggregate", _failing_write)
    await review_store.create(buyer, product.id, 5)
    monkeypatch.undo()

    await review_store.create(other_buyer, product.id, 3)

    assert await _aggregate(test_db, product.id) == (4.0, 2, False)
