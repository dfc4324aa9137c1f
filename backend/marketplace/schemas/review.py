"""Review Schemas — Pydantic models with field-level validation for review endpoints.

Invariants:
    - rating: integer 1–5
    - comment: at most 1000 chars, stripped
    - ReviewUpdate requires at least one of rating/comment

Design Decisions:
    - The service re-validates rating/comment: it is callable without the API layer
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str = Field("", max_length=1000)

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v: str) -> str:
        return v.strip()


class ReviewUpdate(BaseModel):
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_change(self):
        if self.rating is None and self.comment is None:
            raise ValueError("update requires rating or comment")
        return self


class ReviewApproval(BaseModel):
    approved: bool


class ReviewResponse(BaseModel):
    id: UUID
    product_id: UUID
    buyer_id: UUID
    rating: int
    comment: str
    approved: bool
    created_at: datetime

    @classmethod
    def from_review(cls, review) -> "ReviewResponse":
        return cls(
            id=review.id,
            product_id=review.product_id,
            buyer_id=review.buyer_id,
            rating=review.rating,
            comment=review.comment,
            approved=review.approved,
            created_at=review.created_at,
        )


class ReviewPageResponse(BaseModel):
    reviews: list[ReviewResponse]
    total_reviews: int
    total_pages: int
    current_page: int
