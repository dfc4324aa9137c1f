"""Order Rules — pure lifecycle table, pricing and reference helpers for the ledger.

Invariants:
    - All functions are PURE: no IO, no async, no DB (timestamps passed in, not read)
    - Legal transitions: pending -> paid | failed, paid -> refunded. Nothing else.
    - Amounts leave this module as integer minor units, rounded half-up
    - Receipts are deterministic for (buyer, product, timestamp) and <= 40 chars

Design Decisions:
    - Transition table as data (dict of frozensets): one place to read the state machine
    - check_transition raises InvalidTransitionError instead of returning a dict: the
      ledger propagates it straight to the API error handler
    - Decimal arithmetic for price conversion: float * 100 drifts (e.g. 19.99)
"""

import hashlib
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from marketplace.core.domain_types import (
    BuyerId, MinorUnits, OrderStatus, ProductId,
)
from marketplace.core.errors import InputValidationError, InvalidTransitionError

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

MINOR_UNITS_PER_MAJOR = 100
MAX_RECEIPT_LENGTH = 40  # provider limit
_RECEIPT_PREFIX = "rcpt_"


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]


def check_transition(current: OrderStatus | str, target: OrderStatus | str) -> None:
    """Raise InvalidTransitionError unless current -> target is a legal edge."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            OrderStatus(current).value, OrderStatus(target).value,
        )


def is_terminal(status: OrderStatus | str) -> bool:
    return not ALLOWED_TRANSITIONS[OrderStatus(status)]


def to_minor_units(price: Decimal | int | float | str) -> MinorUnits:
    """500.00 -> 50000. Rejects non-positive prices."""
    amount = Decimal(str(price)) * MINOR_UNITS_PER_MAJOR
    minor = int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if minor <= 0:
        raise InputValidationError(
            f"Product price must be positive, got {price}", "price",
        )
    return MinorUnits(minor)


def build_receipt(
    buyer_id: BuyerId, product_id: ProductId, created_at: datetime,
) -> str:
    """Idempotency key sent to the provider for one purchase attempt."""
    stamp = int(created_at.timestamp() * 1000)
    digest = hashlib.sha256(
        f"{product_id}:{buyer_id}:{stamp}".encode("utf-8"),
    ).hexdigest()
    return (_RECEIPT_PREFIX + digest)[:MAX_RECEIPT_LENGTH]


def redact_reference(reference: str | None, visible: int = 4) -> str:
    """Mask a provider payment reference for non-administrative readers."""
    if not reference:
        return ""
    if len(reference) <= visible:
        return "*" * len(reference)
    return "****" + reference[-visible:]
