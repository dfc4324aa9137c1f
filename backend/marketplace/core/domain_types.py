"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - BuyerId, ProductId, OrderId, ReviewId wrap UUIDs — never mix them up in domain logic
    - MinorUnits is an integer amount in the currency's smallest unit (paise for INR)
    - All valid states encoded as Enums — no raw string matching

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and compare equal to DB string columns
    - Principal is a frozen dataclass: identity arrives from the auth gateway, never mutated
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

BuyerId = NewType("BuyerId", UUID)
ProductId = NewType("ProductId", UUID)
OrderId = NewType("OrderId", UUID)
ReviewId = NewType("ReviewId", UUID)


# ─── Value Types ─────────────────────────────────────────────────

MinorUnits = NewType("MinorUnits", int)   # 50000 == 500.00 INR
Rating = NewType("Rating", int)           # 1–5

MIN_RATING = 1
MAX_RATING = 5


# ─── Enums ───────────────────────────────────────────────────────

class OrderStatus(str, Enum):
    """Order lifecycle states — maps to DB `status` column."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Role(str, Enum):
    """Principal roles forwarded by the auth gateway."""
    BUYER = "buyer"
    ADMIN = "admin"


class ProductAsset(str, Enum):
    """Downloadable parts of a project bundle, released only to entitled buyers."""
    SOURCE_CODE = "source_code"
    DOCUMENTATION = "documentation"
    PROJECT_REPORT = "project_report"
    DEMO_VIDEO = "demo_video"
    README = "readme"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller. Identity management lives outside this service."""
    user_id: UUID
    role: Role = Role.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
