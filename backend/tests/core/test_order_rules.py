"""Order Rules — tests for the pure transition table and pricing helpers.

Tests cover:
    - Legal transitions: pending->paid, pending->failed, paid->refunded
    - Every other edge raises InvalidTransitionError
    - Price conversion to minor units (half-up, Decimal-exact)
    - Receipt determinism and length bound
    - Payment reference redaction
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from marketplace.core.domain_types import OrderStatus
from marketplace.core.errors import InputValidationError, InvalidTransitionError
from marketplace.core.order_rules import (
    MAX_RECEIPT_LENGTH,
    build_receipt,
    can_transition,
    check_transition,
    is_terminal,
    redact_reference,
    to_minor_units,
)


# ─── Transitions ─────────────────────────────────────────────────

@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PENDING, OrderStatus.FAILED),
    (OrderStatus.PAID, OrderStatus.REFUNDED),
])
def test_legal_transitions(current, target):
    assert can_transition(current, target)
    check_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.REFUNDED),
    (OrderStatus.PAID, OrderStatus.FAILED),
    (OrderStatus.PAID, OrderStatus.PENDING),
    (OrderStatus.FAILED, OrderStatus.PAID),
    (OrderStatus.FAILED, OrderStatus.PENDING),
    (OrderStatus.REFUNDED, OrderStatus.PAID),
    (OrderStatus.PAID, OrderStatus.PAID),
])
def test_illegal_transitions_raise(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransitionError) as exc:
        check_transition(current, target)
    assert exc.value.current == current.value
    assert exc.value.target == target.value
    assert exc.value.http_status == 409


def test_check_transition_accepts_raw_strings():
    check_transition("pending", "paid")
    with pytest.raises(InvalidTransitionError):
        check_transition("failed", "paid")


def test_terminal_states():
    assert is_terminal(OrderStatus.FAILED)
    assert is_terminal(OrderStatus.REFUNDED)
    assert not is_terminal(OrderStatus.PENDING)
    assert not is_terminal(OrderStatus.PAID)


# ─── Pricing ─────────────────────────────────────────────────────

def test_price_500_is_50000_minor_units():
    assert to_minor_units(Decimal("500.00")) == 50000


def test_price_conversion_is_decimal_exact():
    assert to_minor_units(Decimal("19.99")) == 1999
    assert to_minor_units(19.99) == 1999


def test_price_conversion_rounds_half_up():
    assert to_minor_units("10.005") == 1001
    assert to_minor_units("10.004") == 1000


@pytest.mark.parametrize("price", [Decimal("0"), Decimal("-5.00"), "0.004"])
def test_non_positive_price_rejected(price):
    with pytest.raises(InputValidationError) as exc:
        to_minor_units(price)
    assert exc.value.field == "price"


# ─── Receipts ────────────────────────────────────────────────────

def test_receipt_is_deterministic_and_bounded():
    buyer, product = uuid4(), uuid4()
    at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    first = build_receipt(buyer, product, at)
    assert first == build_receipt(buyer, product, at)
    assert len(first) <= MAX_RECEIPT_LENGTH
    assert first.startswith("rcpt_")


def test_receipt_changes_with_timestamp():
    buyer, product = uuid4(), uuid4()
    a = build_receipt(buyer, product, datetime(2026, 1, 1, tzinfo=timezone.utc))
    b = build_receipt(buyer, product, datetime(2026, 1, 2, tzinfo=timezone.utc))
    assert a != b


# ─── Redaction ───────────────────────────────────────────────────

def test_redact_keeps_last_four():
    assert redact_reference("pay_xyz789") == "****z789"


def test_redact_short_and_empty():
    assert redact_reference("abc") == "***"
    assert redact_reference("") == ""
    assert redact_reference(None) == ""
