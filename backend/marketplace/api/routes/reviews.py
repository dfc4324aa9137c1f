"""Review Routes — create, list, update, delete reviews.

Invariants:
    - Create is scoped to a product; update/delete address the review by id
    - Ownership and entitlement are enforced by ReviewStore, not here
    - Listing is public and only shows approved reviews

Design Decisions:
    - DELETE returns 204: the aggregate can be re-read from /products/{id}/rating
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from marketplace.api.dependencies import get_principal, get_review_store
from marketplace.core.domain_types import Principal
from marketplace.schemas.review import (
    ReviewCreate, ReviewPageResponse, ReviewResponse, ReviewUpdate,
)
from marketplace.services.review_store import ReviewStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["reviews"])


@router.post(
    "/products/{product_id}/reviews", response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    product_id: UUID,
    body: ReviewCreate,
    principal: Principal = Depends(get_principal),
    store: ReviewStore = Depends(get_review_store),
):
    review = await store.create(principal, product_id, body.rating, body.comment)
    return ReviewResponse.from_review(review)


@router.get(
    "/products/{product_id}/reviews", response_model=ReviewPageResponse,
)
async def list_reviews(
    product_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store: ReviewStore = Depends(get_review_store),
):
    """Approved reviews for a product, newest first."""
    result = await store.list_for_product(product_id, page, limit)
    return ReviewPageResponse(
        reviews=[ReviewResponse.from_review(r) for r in result["reviews"]],
        total_reviews=result["total_reviews"],
        total_pages=result["total_pages"],
        current_page=result["current_page"],
    )


@router.patch("/reviews/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: UUID,
    body: ReviewUpdate,
    principal: Principal = Depends(get_principal),
    store: ReviewStore = Depends(get_review_store),
):
    review = await store.update(
        review_id, principal, rating=body.rating, comment=body.comment,
    )
    return ReviewResponse.from_review(review)


@router.delete(
    "/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_review(
    review_id: UUID,
    principal: Principal = Depends(get_principal),
    store: ReviewStore = Depends(get_review_store),
):
    await store.delete(review_id, principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
