"""Review Store — one review per (buyer, product), CRUD and moderation.

Invariants:
    - Create requires entitlement (AccessGate) and fails Conflict on duplicates,
      detected from the unique constraint at flush time, never from a pre-read
    - Update/Delete only by the owning buyer or an administrator; approval changes
      by administrators only
    - Every mutation runs RatingAggregator.lock_product() before touching reviews
      and refresh_after_mutation() before commit
    - Update/Delete/Approval re-read the review under the product lock: a review
      deleted concurrently is NotFound, never a 0-row write
    - A rejected mutation (Forbidden, NotFound, Conflict) changes nothing

Design Decisions:
    - Update takes None as "leave unchanged" rather than falsy checks: a caller can
      clear a comment with ""
    - Aggregation failures never propagate out of this service (see rating_aggregator)
"""

import logging
import math
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.domain_types import Principal, ReviewId
from marketplace.core.errors import (
    ConflictError, ErrorContext, ForbiddenError, ResourceNotFoundError,
)
from marketplace.core.rating import validate_comment, validate_rating
from marketplace.models.product import Product
from marketplace.models.review import Review
from marketplace.services.access_gate import AccessGate
from marketplace.services.rating_aggregator import RatingAggregator

logger = logging.getLogger(__name__)


class ReviewStore:
    """Review persistence with entitlement and ownership rules."""

    def __init__(
        self,
        db: AsyncSession,
        gate: AccessGate | None = None,
        aggregator: RatingAggregator | None = None,
        comment_max_length: int = 1000,
    ):
        self.db = db
        self.gate = gate or AccessGate(db)
        self.aggregator = aggregator or RatingAggregator(db)
        self.comment_max_length = comment_max_length

    async def create(
        self,
        principal: Principal,
        product_id: UUID,
        rating: int,
        comment: str | None = "",
    ) -> Review:
        rating = validate_rating(rating)
        comment = validate_comment(comment, self.comment_max_length)
        ctx = ErrorContext(product_id=str(product_id))
        if not await self.db.get(Product, product_id):
            raise ResourceNotFoundError("Product", str(product_id), ctx)
        await self.gate.require_entitlement(principal.user_id, product_id, "review")

        await self.aggregator.lock_product(product_id)
        review = Review(
            buyer_id=principal.user_id,
            product_id=product_id,
            rating=rating,
            comment=comment,
            approved=True,
        )
        self.db.add(review)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("You have already reviewed this project", ctx)

        await self.aggregator.refresh_after_mutation(product_id)
        await self.db.commit()
        logger.info(
            "Review created",
            extra={"review_id": review.id, "product_id": product_id},
        )
        return review

    async def update(
        self,
        review_id: ReviewId,
        actor: Principal,
        rating: int | None = None,
        comment: str | None = None,
    ) -> Review:
        review = await self._get_owned(review_id, actor, "update")
        if rating is not None:
            rating = validate_rating(rating)
        if comment is not None:
            comment = validate_comment(comment, self.comment_max_length)

        product_id = review.product_id
        review = await self._lock_review(review_id, product_id)
        if rating is not None:
            review.rating = rating
        if comment is not None:
            review.comment = comment
        await self.db.flush()
        await self.aggregator.refresh_after_mutation(product_id)
        await self.db.commit()
        logger.info("Review updated", extra={"review_id": review_id})
        return review

    async def delete(self, review_id: ReviewId, actor: Principal) -> None:
        review = await self._get_owned(review_id, actor, "delete")
        product_id = review.product_id
        review = await self._lock_review(review_id, product_id)
        await self.db.delete(review)
        await self.db.flush()
        await self.aggregator.refresh_after_mutation(product_id)
        await self.db.commit()
        logger.info(
            "Review deleted",
            extra={"review_id": review_id, "product_id": product_id},
        )

    async def set_approval(
        self, review_id: ReviewId, actor: Principal, approved: bool,
    ) -> Review:
        """Moderation: hide or restore a review in the aggregate."""
        if not actor.is_admin:
            raise ForbiddenError(
                "Only administrators can moderate reviews",
                ErrorContext(review_id=str(review_id)),
            )
        review = await self._get(review_id)
        product_id = review.product_id
        review = await self._lock_review(review_id, product_id)
        review.approved = approved
        await self.db.flush()
        await self.aggregator.refresh_after_mutation(product_id)
        await self.db.commit()
        logger.info(
            f"Review {'approved' if approved else 'hidden'}",
            extra={"review_id": review_id, "product_id": product_id},
        )
        return review

    async def list_for_product(
        self, product_id: UUID, page: int = 1, limit: int = 10,
    ) -> dict:
        """Approved reviews, newest first, with pagination metadata."""
        base = (
            select(Review)
            .where(Review.product_id == product_id)
            .where(Review.approved.is_(True))
        )
        result = await self.db.execute(
            base.order_by(Review.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        count = await self.db.execute(
            select(func.count()).select_from(base.subquery())
        )
        total = count.scalar_one()
        return {
            "reviews": list(result.scalars().all()),
            "total_reviews": total,
            "total_pages": math.ceil(total / limit) if total else 0,
            "current_page": page,
        }

    async def _get(self, review_id: ReviewId) -> Review:
        review = await self.db.get(Review, review_id)
        if not review:
            raise ResourceNotFoundError(
                "Review", str(review_id), ErrorContext(review_id=str(review_id)),
            )
        return review

    async def _lock_review(self, review_id: ReviewId, product_id: UUID) -> Review:
        """Take the product lock, then re-read the review under it.

        A concurrent delete that committed between the first read and the lock
        surfaces here as NotFound instead of a 0-row flush.
        """
        await self.aggregator.lock_product(product_id)
        result = await self.db.execute(
            select(Review)
            .where(Review.id == review_id)
            .execution_options(populate_existing=True)
        )
        review = result.scalar_one_or_none()
        if not review:
            await self.db.rollback()
            raise ResourceNotFoundError(
                "Review", str(review_id), ErrorContext(review_id=str(review_id)),
            )
        return review

    async def _get_owned(self, review_id: ReviewId, actor: Principal, action: str) -> Review:
        review = await self._get(review_id)
        if review.buyer_id != actor.user_id and not actor.is_admin:
            raise ForbiddenError(
                f"You can only {action} your own reviews",
                ErrorContext(review_id=str(review_id)),
            )
        return review
