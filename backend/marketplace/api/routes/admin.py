"""Admin Routes — refunds, transaction ledger, review moderation, rating repair.

Invariants:
    - Every route requires an administrator principal (require_admin)
    - Refund is the only way an order leaves 'paid'

Design Decisions:
    - Rating repair is an explicit endpoint, not a scheduler: the core runs no
      background jobs, so an operator or cron hits this after aggregation failures
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from marketplace.api.dependencies import (
    get_order_ledger, get_rating_aggregator, get_review_store, require_admin,
)
from marketplace.core.domain_types import OrderStatus, Principal
from marketplace.schemas.order import AdminOrderResponse, TransactionPageResponse
from marketplace.schemas.review import ReviewApproval, ReviewResponse
from marketplace.services.order_ledger import OrderLedger
from marketplace.services.rating_aggregator import RatingAggregator
from marketplace.services.review_store import ReviewStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post("/orders/{order_id}/refund", response_model=AdminOrderResponse)
async def refund_order(
    order_id: UUID,
    admin: Principal = Depends(require_admin),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    order = await ledger.refund(order_id, admin)
    return AdminOrderResponse.from_order(order)


@router.get("/transactions", response_model=TransactionPageResponse)
async def list_transactions(
    status_filter: OrderStatus | None = Query(None, alias="status"),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: Principal = Depends(require_admin),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """All orders with filters, total count, and paid revenue (minor units)."""
    page = await ledger.list_transactions(
        status_filter, start_date, end_date, limit, offset,
    )
    return TransactionPageResponse(
        transactions=[AdminOrderResponse.from_order(o) for o in page.orders],
        total_transactions=page.total,
        total_revenue=page.total_revenue,
        limit=limit,
        offset=offset,
    )


@router.patch("/reviews/{review_id}/approval", response_model=ReviewResponse)
async def set_review_approval(
    review_id: UUID,
    body: ReviewApproval,
    admin: Principal = Depends(require_admin),
    store: ReviewStore = Depends(get_review_store),
):
    review = await store.set_approval(review_id, admin, body.approved)
    return ReviewResponse.from_review(review)


@router.post("/ratings/recompute")
async def recompute_stale_ratings(
    admin: Principal = Depends(require_admin),
    aggregator: RatingAggregator = Depends(get_rating_aggregator),
):
    """Retry aggregation for every product flagged stale."""
    repaired = await aggregator.retry_stale()
    return {"repaired": [str(p) for p in repaired], "count": len(repaired)}
