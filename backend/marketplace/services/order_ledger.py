"""Order Ledger — owns the lifecycle of purchase attempts per (buyer, product).

Invariants:
    - Every status change is a conditional UPDATE ... WHERE status = <expected>:
      a transition either matches exactly one row and commits, or changes nothing
    - Two 'paid' orders for one pair are rejected by the partial unique index; the
      loser is rolled back, marked failed, and reported as InvalidTransitionError
    - VerifyPayment on an already-paid order is a no-op success (provider retries)
    - Signature mismatch commits pending -> failed BEFORE raising SignatureMismatchError
    - Nothing is persisted when the provider call fails
    - No DB transaction is held open across the provider call

Design Decisions:
    - The paid-order pre-check in create_intent is a fast path for a clean Conflict;
      correctness under concurrency comes from the index, not from the pre-check
    - Failed attempts do not block retries: a buyer may open a new pending order
      after a failure or refund (uniqueness keys off 'paid' only)
    - ORM objects are never touched after a rollback (they are expired; async
      sessions cannot lazy-load); ids are captured up front
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.domain_types import (
    BuyerId, OrderId, OrderStatus, Principal, ProductId,
)
from marketplace.core.errors import (
    ConflictError, ErrorContext, ForbiddenError, InvalidTransitionError,
    ResourceNotFoundError, SignatureMismatchError,
)
from marketplace.core.order_rules import (
    build_receipt, check_transition, is_terminal, to_minor_units,
)
from marketplace.core.repository_protocols import PaymentProvider, ProviderOrderRequest
from marketplace.core.signature import verify_signature
from marketplace.models.order import Order
from marketplace.models.product import Product
from marketplace.services.access_gate import AccessGate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseIntent:
    """What the checkout widget needs to open a payment with the provider."""
    order_id: OrderId
    provider_order_ref: str
    amount: int
    currency: str
    key_id: str


@dataclass(frozen=True)
class TransactionPage:
    orders: list[Order]
    total: int
    total_revenue: int


class OrderLedger:
    """Purchase state machine over the orders table."""

    def __init__(
        self,
        db: AsyncSession,
        provider: PaymentProvider,
        secret: str,
        currency: str = "INR",
    ):
        self.db = db
        self.provider = provider
        self.secret = secret
        self.currency = currency

    # ─── CreateIntent ────────────────────────────────────────────

    async def create_intent(
        self, principal: Principal, product_id: UUID,
    ) -> PurchaseIntent:
        """Open a pending order backed by a provider order reference."""
        buyer_id = principal.user_id
        ctx = ErrorContext(product_id=str(product_id))
        product = await self.db.get(Product, product_id)
        if not product:
            raise ResourceNotFoundError("Product", str(product_id), ctx)
        if await AccessGate(self.db).entitled(buyer_id, product_id):
            raise ConflictError("You have already purchased this project", ctx)

        amount = to_minor_units(product.price)
        created_at = datetime.now(timezone.utc)
        request = ProviderOrderRequest(
            amount=amount,
            currency=self.currency,
            receipt=build_receipt(BuyerId(buyer_id), ProductId(product_id), created_at),
            notes={"productId": str(product_id), "buyerId": str(buyer_id)},
        )
        # end the read transaction: the provider call may back off for seconds
        await self.db.commit()
        provider_order = await self.provider.create_order(request)

        order = Order(
            buyer_id=buyer_id,
            product_id=product_id,
            provider_order_ref=provider_order.provider_order_ref,
            receipt=request.receipt,
            amount=amount,
            currency=self.currency,
            status=OrderStatus.PENDING.value,
            created_at=created_at,
        )
        self.db.add(order)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                f"Provider order '{provider_order.provider_order_ref}' already recorded",
                ctx,
            )
        logger.info(
            "Purchase intent created",
            extra={"order_id": order.id, "product_id": product_id, "buyer_id": buyer_id},
        )
        return PurchaseIntent(
            order_id=OrderId(order.id),
            provider_order_ref=provider_order.provider_order_ref,
            amount=provider_order.amount,
            currency=provider_order.currency,
            key_id=self.provider.key_id,
        )

    # ─── VerifyPayment ───────────────────────────────────────────

    async def verify_payment(
        self, provider_order_ref: str, provider_payment_ref: str, signature: str,
    ) -> Order:
        """Apply a provider payment callback. Safe to replay."""
        order = await self._get_by_provider_ref(provider_order_ref)
        order_id = order.id
        ctx = ErrorContext(order_id=str(order_id), product_id=str(order.product_id))

        if order.status == OrderStatus.PAID.value:
            logger.info(
                "Payment callback replayed on paid order",
                extra={"order_id": order_id},
            )
            return order
        if is_terminal(order.status):
            raise InvalidTransitionError(order.status, OrderStatus.PAID.value, ctx)

        if not verify_signature(
            provider_order_ref, provider_payment_ref, signature, self.secret,
        ):
            await self._transition(order_id, OrderStatus.PENDING, OrderStatus.FAILED)
            await self.db.commit()
            logger.warning(
                "Payment signature mismatch, order failed",
                extra={"order_id": order_id, "error_code": "SIGNATURE_MISMATCH"},
            )
            raise SignatureMismatchError(ctx)

        try:
            matched = await self._transition(
                order_id, OrderStatus.PENDING, OrderStatus.PAID,
                provider_payment_ref=provider_payment_ref,
                signature=signature,
                purchased_at=datetime.now(timezone.utc),
            )
        except IntegrityError:
            await self.db.rollback()
            await self._transition(order_id, OrderStatus.PENDING, OrderStatus.FAILED)
            await self.db.commit()
            logger.warning(
                "Second paid order for buyer/product rejected",
                extra={"order_id": order_id, "error_code": "INVALID_TRANSITION"},
            )
            ctx.debug_info = {"reason": "already_purchased"}
            raise InvalidTransitionError(
                OrderStatus.PENDING.value, OrderStatus.PAID.value, ctx,
            )

        if not matched:
            # lost a race with another callback for the same order
            await self.db.rollback()
            current = await self._get_by_id(order_id)
            if current.status == OrderStatus.PAID.value:
                return current
            raise InvalidTransitionError(current.status, OrderStatus.PAID.value, ctx)

        await self.db.commit()
        logger.info(
            "Payment verified",
            extra={"order_id": order_id, "status": OrderStatus.PAID.value},
        )
        return await self._get_by_id(order_id)

    # ─── Refund (administrative) ─────────────────────────────────

    async def refund(self, order_id: OrderId, actor: Principal) -> Order:
        if not actor.is_admin:
            raise ForbiddenError("Only administrators can refund orders")
        order = await self._get_by_id(order_id)
        ctx = ErrorContext(order_id=str(order_id))
        check_transition(order.status, OrderStatus.REFUNDED)
        if not await self._transition(order_id, OrderStatus.PAID, OrderStatus.REFUNDED):
            await self.db.rollback()
            current = await self._get_by_id(order_id)
            raise InvalidTransitionError(
                current.status, OrderStatus.REFUNDED.value, ctx,
            )
        await self.db.commit()
        logger.info(
            "Order refunded",
            extra={"order_id": order_id, "status": OrderStatus.REFUNDED.value},
        )
        return await self._get_by_id(order_id)

    # ─── Reads ───────────────────────────────────────────────────

    async def get_order(self, order_id: OrderId, principal: Principal) -> Order:
        order = await self._get_by_id(order_id)
        if order.buyer_id != principal.user_id and not principal.is_admin:
            raise ForbiddenError(
                "You can only view your own orders",
                ErrorContext(order_id=str(order_id)),
            )
        return order

    async def list_purchases(self, buyer_id: UUID) -> list[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.buyer_id == buyer_id)
            .where(Order.status == OrderStatus.PAID.value)
            .order_by(Order.purchased_at.desc().nulls_last())
        )
        return list(result.scalars().all())

    async def list_transactions(
        self,
        status: OrderStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> TransactionPage:
        """Administrative ledger view: filtered orders, count, and paid revenue."""
        window = []
        if start:
            window.append(Order.purchased_at >= start)
        if end:
            window.append(Order.purchased_at <= end)
        filters = list(window)
        if status:
            filters.append(Order.status == status.value)

        result = await self.db.execute(
            select(Order)
            .where(*filters)
            .order_by(Order.purchased_at.desc().nulls_last(), Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(select(func.count(Order.id)).where(*filters))
        revenue = await self.db.execute(
            select(func.coalesce(func.sum(Order.amount), 0))
            .where(*window)
            .where(Order.status == OrderStatus.PAID.value)
        )
        return TransactionPage(
            orders=list(result.scalars().all()),
            total=total.scalar_one(),
            total_revenue=int(revenue.scalar_one()),
        )

    # ─── Internals ───────────────────────────────────────────────

    async def _transition(
        self,
        order_id: OrderId,
        current: OrderStatus,
        target: OrderStatus,
        **values: object,
    ) -> bool:
        """Compare-and-set status. True iff the order was still in `current`."""
        check_transition(current, target)
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == current.value)
            .values(
                status=target.value,
                updated_at=datetime.now(timezone.utc),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _get_by_id(self, order_id: OrderId) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise ResourceNotFoundError("Order", str(order_id))
        return order

    async def _get_by_provider_ref(self, provider_order_ref: str) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.provider_order_ref == provider_order_ref)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise ResourceNotFoundError("Order", provider_order_ref)
        return order
