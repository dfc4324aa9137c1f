"""Product Schemas — read-only views of the rating aggregate and entitlement.

Invariants:
    - rating/total_ratings are output-only: no request schema accepts them
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class RatingResponse(BaseModel):
    product_id: UUID
    rating: float
    total_ratings: int


class PurchasedOrderSummary(BaseModel):
    id: UUID
    purchased_at: datetime | None = None
    amount: int
    currency: str


class EntitlementResponse(BaseModel):
    product_id: UUID
    entitled: bool
    order: PurchasedOrderSummary | None = None


class DownloadGrantResponse(BaseModel):
    product_id: UUID
    asset: str
    authorized: bool = True
