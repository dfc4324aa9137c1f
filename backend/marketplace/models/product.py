"""Product ORM — the minimal catalog row the core needs, plus the owned rating aggregate.

Invariants:
    - price is a positive Decimal in major currency units (500.00)
    - rating/total_ratings are written only by the RatingAggregator
    - rating_stale is true from the moment a review mutation starts until a
      recompute over the committed review set succeeds

Design Decisions:
    - Catalog fields beyond title/price are out of scope for this service
    - rating_stale column instead of a retry queue: the flag lives in the same
      transaction as the review mutation, so it cannot be lost
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Integer, Float, Boolean, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from marketplace.db.base import Base


class Product(Base):
    """Purchasable project bundle."""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Denormalized aggregate (materialized view over approved reviews)
    rating: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0,
    )
    total_ratings: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    rating_stale: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
