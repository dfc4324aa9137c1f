"""Access Gate — read-only entitlement checks against the order ledger.

Invariants:
    - entitled(buyer, product) is true iff exactly one order for the pair is 'paid'
    - Every check is a fresh query on the caller's session: no cache, so a committed
      VerifyPayment is visible to the very next check
    - Never writes

Design Decisions:
    - Administrators are not implicitly entitled: downloads and reviews follow purchases
    - Download authorization returns a DownloadGrant; file bytes stay with the
      storage collaborator (core/repository_protocols.AssetStore)
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.domain_types import (
    BuyerId, OrderStatus, Principal, ProductAsset, ProductId,
)
from marketplace.core.errors import ErrorContext, ForbiddenError, InputValidationError
from marketplace.core.repository_protocols import DownloadGrant
from marketplace.models.order import Order

logger = logging.getLogger(__name__)


class AccessGate:
    """Single source of truth for purchase entitlement."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def entitled(self, buyer_id: UUID, product_id: UUID) -> bool:
        result = await self.db.execute(
            select(func.count(Order.id))
            .where(Order.buyer_id == buyer_id)
            .where(Order.product_id == product_id)
            .where(Order.status == OrderStatus.PAID.value)
        )
        return result.scalar_one() == 1

    async def require_entitlement(
        self, buyer_id: UUID, product_id: UUID, action: str = "access",
    ) -> None:
        if not await self.entitled(buyer_id, product_id):
            raise ForbiddenError(
                f"You must purchase this project to {action} it",
                ErrorContext(product_id=str(product_id)),
            )

    async def authorize_download(
        self, principal: Principal, product_id: UUID, asset: str,
    ) -> DownloadGrant:
        """Check entitlement before the storage collaborator releases an asset."""
        try:
            kind = ProductAsset(asset)
        except ValueError:
            raise InputValidationError(f"Unknown asset type '{asset}'", "asset")
        await self.require_entitlement(principal.user_id, product_id, "download")
        logger.info(
            f"Download authorized: {kind.value}",
            extra={"buyer_id": principal.user_id, "product_id": product_id},
        )
        return DownloadGrant(
            buyer_id=BuyerId(principal.user_id),
            product_id=ProductId(product_id),
            asset=kind,
        )

    async def purchase_status(self, buyer_id: UUID, product_id: UUID) -> dict:
        """Entitlement plus the paid order summary, if any."""
        result = await self.db.execute(
            select(Order)
            .where(Order.buyer_id == buyer_id)
            .where(Order.product_id == product_id)
            .where(Order.status == OrderStatus.PAID.value)
        )
        order = result.scalar_one_or_none()
        return {
            "entitled": order is not None,
            "order": {
                "id": str(order.id),
                "purchased_at": (
                    order.purchased_at.isoformat() if order.purchased_at else None
                ),
                "amount": order.amount,
                "currency": order.currency,
            } if order else None,
        }
