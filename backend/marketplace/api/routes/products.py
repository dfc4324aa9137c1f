"""Product Routes — rating aggregate, entitlement check, and download authorization.

Invariants:
    - Rating aggregate is read-only here; only the RatingAggregator writes it
    - Download authorization never returns file bytes, only a grant for the
      storage collaborator

Design Decisions:
    - Entitlement endpoint exposes the paid order summary (check-purchase view)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.dependencies import get_access_gate, get_principal
from marketplace.core.domain_types import Principal
from marketplace.core.errors import ErrorContext, ResourceNotFoundError
from marketplace.infrastructure.database import get_db
from marketplace.models.product import Product
from marketplace.schemas.product import (
    DownloadGrantResponse, EntitlementResponse, RatingResponse,
)
from marketplace.services.access_gate import AccessGate

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/products", tags=["products"])


@router.get("/{product_id}/rating", response_model=RatingResponse)
async def get_rating(product_id: UUID, db: AsyncSession = Depends(get_db)):
    product = await db.get(Product, product_id)
    if not product:
        raise ResourceNotFoundError(
            "Product", str(product_id), ErrorContext(product_id=str(product_id)),
        )
    return RatingResponse(
        product_id=product.id,
        rating=product.rating,
        total_ratings=product.total_ratings,
    )


@router.get("/{product_id}/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    product_id: UUID,
    principal: Principal = Depends(get_principal),
    gate: AccessGate = Depends(get_access_gate),
):
    """Has the caller purchased this product?"""
    purchase = await gate.purchase_status(principal.user_id, product_id)
    return EntitlementResponse(product_id=product_id, **purchase)


@router.get(
    "/{product_id}/downloads/{asset}", response_model=DownloadGrantResponse,
)
async def authorize_download(
    product_id: UUID,
    asset: str,
    principal: Principal = Depends(get_principal),
    gate: AccessGate = Depends(get_access_gate),
):
    """Authorize release of one bundle asset to an entitled buyer."""
    grant = await gate.authorize_download(principal, product_id, asset)
    return DownloadGrantResponse(
        product_id=grant.product_id, asset=grant.asset.value,
    )
