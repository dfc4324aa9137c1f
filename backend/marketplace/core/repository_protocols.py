"""Boundary Protocols — contracts between the core and its external collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - The payment provider and the file store are reached only through these Protocols
    - Implementations provided by the shell via dependency injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - ProviderOrder as frozen dataclass: the ledger never touches raw provider JSON
"""

from dataclasses import dataclass, field
from typing import Protocol

from marketplace.core.domain_types import (
    BuyerId, MinorUnits, ProductAsset, ProductId,
)


@dataclass(frozen=True)
class ProviderOrderRequest:
    """Order creation payload sent to the payment provider."""
    amount: MinorUnits
    currency: str
    receipt: str
    notes: dict[str, str] = field(default_factory=dict)

    def to_payload(self) -> dict:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "notes": dict(self.notes),
        }


@dataclass(frozen=True)
class ProviderOrder:
    """Provider's answer to an order creation request."""
    provider_order_ref: str
    amount: int
    currency: str


class PaymentProvider(Protocol):
    """Contract for the external payment provider — implemented by infrastructure."""
    key_id: str

    async def create_order(self, request: ProviderOrderRequest) -> ProviderOrder: ...


@dataclass(frozen=True)
class DownloadGrant:
    """Authorization the file-storage collaborator must see before releasing bytes."""
    buyer_id: BuyerId
    product_id: ProductId
    asset: ProductAsset


class AssetStore(Protocol):
    """Contract for the file-storage collaborator. Not implemented by this service."""
    async def open_asset(self, grant: DownloadGrant) -> object: ...
