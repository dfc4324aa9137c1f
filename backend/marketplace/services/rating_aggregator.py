"""Rating Aggregator — keeps Product.rating/total_ratings equal to the approved-review derivation.

Invariants:
    - lock_product() runs first in every review-mutating transaction: it flags the
      product stale AND takes the product row lock, serializing per-product mutations
    - refresh_after_mutation() recomputes inside a SAVEPOINT: on failure only the
      savepoint rolls back, the review mutation still commits, the product stays stale
    - The aggregate is always recomputed from source (core/rating.py), never patched
    - retry_stale() is the only path that repairs flagged products outside a mutation

Design Decisions:
    - Stale flag set by UPDATE rather than SELECT ... FOR UPDATE: works on every
      backend, and the flag is committed atomically with the mutation it guards
    - Failures logged at ERROR and swallowed here only: callers of review mutations
      must never see an aggregation failure
"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.rating import RatingAggregate, compute_aggregate
from marketplace.models.product import Product
from marketplace.models.review import Review

logger = logging.getLogger(__name__)


class RatingAggregator:
    """Materializes per-product rating aggregates from approved reviews."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def lock_product(self, product_id: UUID) -> None:
        """Flag the aggregate stale; holds the product row lock until commit."""
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(rating_stale=True)
            .execution_options(synchronize_session=False)
        )

    async def recompute(self, product_id: UUID) -> RatingAggregate:
        """Read approved ratings and write the aggregate. Caller owns the transaction."""
        result = await self.db.execute(
            select(Review.rating)
            .where(Review.product_id == product_id)
            .where(Review.approved.is_(True))
        )
        aggregate = compute_aggregate(result.scalars().all())
        await self._write_aggregate(product_id, aggregate)
        return aggregate

    async def refresh_after_mutation(
        self, product_id: UUID,
    ) -> RatingAggregate | None:
        """Recompute within the mutation's transaction. Returns None if flagged for retry."""
        try:
            async with self.db.begin_nested():
                return await self.recompute(product_id)
        except SQLAlchemyError as e:
            logger.error(
                f"Rating recompute failed, product left stale: {e}",
                extra={"product_id": product_id},
                exc_info=True,
            )
            return None

    async def retry_stale(self) -> list[UUID]:
        """Recompute every product flagged stale. Each product commits on its own."""
        result = await self.db.execute(
            select(Product.id).where(Product.rating_stale.is_(True))
        )
        repaired: list[UUID] = []
        for product_id in result.scalars().all():
            try:
                await self.lock_product(product_id)
                await self.recompute(product_id)
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    f"Rating retry failed: {e}",
                    extra={"product_id": product_id},
                )
                continue
            repaired.append(product_id)
        if repaired:
            logger.info(f"Repaired {len(repaired)} stale rating aggregate(s)")
        return repaired

    async def _write_aggregate(
        self, product_id: UUID, aggregate: RatingAggregate,
    ) -> None:
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(
                rating=aggregate.rating,
                total_ratings=aggregate.total_ratings,
                rating_stale=False,
            )
            .execution_options(synchronize_session=False)
        )
