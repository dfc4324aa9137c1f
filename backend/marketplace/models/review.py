"""Review ORM — one buyer's rating and comment for one product.

Invariants:
    - Exactly 0 or 1 review per (buyer_id, product_id): unique constraint
    - rating is an integer 1–5 (check constraint backs the service validation)
    - approved defaults to true; only administrators flip it

Design Decisions:
    - Duplicate detection relies on the unique constraint, not on a pre-read
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from marketplace.db.base import Base

REVIEW_UNIQUE_CONSTRAINT = "uq_reviews_buyer_product"


class Review(Base):
    """Buyer review entity."""
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("buyer_id", "product_id", name=REVIEW_UNIQUE_CONSTRAINT),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(
        String(1000), nullable=False, default="",
    )
    approved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
