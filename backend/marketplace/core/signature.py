"""Payment Signature Verification — validates provider callbacks against the shared secret.

Invariants:
    - All functions are PURE: no IO, no async, no DB, no side effects
    - signature = hex(HMAC-SHA256(secret, order_ref + "|" + payment_ref))
    - Comparison is constant-time (hmac.compare_digest), never `==` / `!=`

Design Decisions:
    - Returns bool instead of raising: the ledger owns the failed-transition side effect
    - Missing inputs verify as False rather than raising: a callback with an empty
      payment ref is a forged or broken callback, handled like any other mismatch
"""

import hashlib
import hmac

SIGNATURE_SEPARATOR = "|"


def compute_signature(order_ref: str, payment_ref: str, secret: str) -> str:
    """Expected callback signature for an (order, payment) pair."""
    message = f"{order_ref}{SIGNATURE_SEPARATOR}{payment_ref}".encode("utf-8")
    return hmac.new(
        secret.encode("utf-8"), msg=message, digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(
    order_ref: str, payment_ref: str, signature: str, secret: str,
) -> bool:
    if not (order_ref and payment_ref and signature and secret):
        return False
    expected = compute_signature(order_ref, payment_ref, secret)
    # compare_digest rejects non-ASCII str input; compare as bytes
    return hmac.compare_digest(
        expected.encode("utf-8"), signature.encode("utf-8"),
    )
