"""Order Schemas — Pydantic models for purchase intents, payment callbacks, and order views.

Invariants:
    - PaymentVerification fields are stripped, non-empty, bounded
    - OrderResponse never carries an unredacted payment reference unless built
      with reveal_payment_ref=True (administrative views only)

Design Decisions:
    - from_order classmethods keep redaction in one place instead of every route
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from marketplace.core.order_rules import redact_reference


class OrderCreate(BaseModel):
    """Purchase request — the buyer comes from the authenticated principal."""
    product_id: UUID


class PaymentVerification(BaseModel):
    """Provider callback forwarded by the checkout widget."""
    provider_order_ref: str = Field(min_length=1, max_length=100)
    provider_payment_ref: str = Field(min_length=1, max_length=100)
    signature: str = Field(min_length=1, max_length=128)

    @field_validator("provider_order_ref", "provider_payment_ref", "signature")
    @classmethod
    def strip_value(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("value cannot be empty or whitespace")
        return v


class OrderIntentResponse(BaseModel):
    order_id: UUID
    provider_order_ref: str
    amount: int
    currency: str
    key_id: str


class OrderResponse(BaseModel):
    """Client-facing order view."""
    id: UUID
    product_id: UUID
    status: str
    amount: int
    currency: str
    purchased_at: datetime | None = None
    payment_ref: str = ""

    @classmethod
    def from_order(cls, order, reveal_payment_ref: bool = False) -> "OrderResponse":
        return cls(
            id=order.id,
            product_id=order.product_id,
            status=order.status,
            amount=order.amount,
            currency=order.currency,
            purchased_at=order.purchased_at,
            payment_ref=(
                order.provider_payment_ref if reveal_payment_ref
                else redact_reference(order.provider_payment_ref)
            ),
        )


class AdminOrderResponse(OrderResponse):
    """Administrative order view — includes buyer and provider references."""
    buyer_id: UUID
    provider_order_ref: str
    created_at: datetime

    @classmethod
    def from_order(cls, order, reveal_payment_ref: bool = True) -> "AdminOrderResponse":
        return cls(
            id=order.id,
            product_id=order.product_id,
            buyer_id=order.buyer_id,
            status=order.status,
            amount=order.amount,
            currency=order.currency,
            purchased_at=order.purchased_at,
            created_at=order.created_at,
            provider_order_ref=order.provider_order_ref,
            payment_ref=(
                order.provider_payment_ref if reveal_payment_ref
                else redact_reference(order.provider_payment_ref)
            ),
        )


class TransactionPageResponse(BaseModel):
    transactions: list[AdminOrderResponse]
    total_transactions: int
    total_revenue: int
    limit: int
    offset: int
