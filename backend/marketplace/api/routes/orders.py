"""Order Routes — purchase intents, payment verification, and the buyer's order views.

Invariants:
    - The buyer is always the authenticated principal, never a body field
    - Payment references are redacted unless the caller is an administrator
    - Routes delegate every state change to OrderLedger

Design Decisions:
    - /orders/verify is not owner-checked: the HMAC signature is the authority,
      and provider webhooks carry no buyer identity
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from marketplace.api.dependencies import get_order_ledger, get_principal
from marketplace.core.domain_types import Principal
from marketplace.schemas.order import (
    OrderCreate, OrderIntentResponse, OrderResponse, PaymentVerification,
)
from marketplace.services.order_ledger import OrderLedger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post(
    "", response_model=OrderIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    body: OrderCreate,
    principal: Principal = Depends(get_principal),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """Open a pending order with the payment provider."""
    intent = await ledger.create_intent(principal, body.product_id)
    return OrderIntentResponse(
        order_id=intent.order_id,
        provider_order_ref=intent.provider_order_ref,
        amount=intent.amount,
        currency=intent.currency,
        key_id=intent.key_id,
    )


@router.post("/verify", response_model=OrderResponse)
async def verify_payment(
    body: PaymentVerification,
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """Verify a provider payment callback and mark the order paid."""
    order = await ledger.verify_payment(
        body.provider_order_ref, body.provider_payment_ref, body.signature,
    )
    return OrderResponse.from_order(order)


@router.get("/mine", response_model=list[OrderResponse])
async def list_my_orders(
    principal: Principal = Depends(get_principal),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """The caller's paid orders, newest purchase first."""
    orders = await ledger.list_purchases(principal.user_id)
    return [OrderResponse.from_order(o) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: UUID,
    principal: Principal = Depends(get_principal),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    order = await ledger.get_order(order_id, principal)
    return OrderResponse.from_order(
        order, reveal_payment_ref=principal.is_admin,
    )
