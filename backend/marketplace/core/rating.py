"""Rating Math — pure derivation of a product's aggregate from its approved ratings.

Invariants:
    - No reviews -> rating 0.0, total_ratings 0
    - rating is sum / count with native float precision (no rounding)
    - Ratings outside 1–5 are rejected before they reach the aggregate

Design Decisions:
    - Recompute-from-source over running sums: the aggregate is a materialized view
      and must equal the derivation exactly, so derive it every time
"""

from dataclasses import dataclass
from typing import Iterable

from marketplace.core.domain_types import MAX_RATING, MIN_RATING, Rating
from marketplace.core.errors import InputValidationError


@dataclass(frozen=True)
class RatingAggregate:
    rating: float
    total_ratings: int


EMPTY_AGGREGATE = RatingAggregate(rating=0.0, total_ratings=0)


def compute_aggregate(ratings: Iterable[int]) -> RatingAggregate:
    values = list(ratings)
    if not values:
        return EMPTY_AGGREGATE
    return RatingAggregate(
        rating=sum(values) / len(values), total_ratings=len(values),
    )


def validate_rating(rating: int) -> Rating:
    # bool is an int subclass; True would otherwise pass as a 1-star rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InputValidationError("Rating must be an integer", "rating")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InputValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}", "rating",
        )
    return Rating(rating)


def validate_comment(comment: str | None, max_length: int) -> str:
    comment = (comment or "").strip()
    if len(comment) > max_length:
        raise InputValidationError(
            f"Comment cannot exceed {max_length} characters", "comment",
        )
    return comment
