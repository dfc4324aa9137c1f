"""Order ORM — one purchase attempt by one buyer for one product.

Invariants:
    - provider_order_ref is unique: the provider callback addresses orders by it
    - At most one row with status 'paid' per (buyer_id, product_id), enforced by a
      partial unique index rather than application checks
    - amount is integer minor units; provider_payment_ref/signature are '' until paid
    - status transitions: pending -> paid | failed, paid -> refunded (core/order_rules.py)
    - Rows are never deleted by the core

Design Decisions:
    - Partial index keyed on status='paid' only: failed attempts may be retried with
      a fresh order, while two paid rows for one pair are impossible at storage level
    - buyer_id has no FK: identity lives in an external service
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from marketplace.core.domain_types import OrderStatus
from marketplace.db.base import Base

PAID_ORDER_INDEX = "uq_orders_one_paid_per_buyer_product"


class Order(Base):
    """Purchase attempt entity."""
    __tablename__ = "orders"
    __table_args__ = (
        Index(
            PAID_ORDER_INDEX, "buyer_id", "product_id",
            unique=True,
            postgresql_where=text("status = 'paid'"),
            sqlite_where=text("status = 'paid'"),
        ),
        Index("ix_orders_buyer_product", "buyer_id", "product_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("products.id"), nullable=False,
    )
    provider_order_ref: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True,
    )
    provider_payment_ref: Mapped[str] = mapped_column(
        String(100), nullable=False, default="",
    )
    signature: Mapped[str] = mapped_column(
        String(128), nullable=False, default="",
    )
    receipt: Mapped[str] = mapped_column(String(40), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="INR",
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PENDING.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    purchased_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
