"""API Dependencies — principal extraction and per-request service construction.

Invariants:
    - The principal comes only from gateway headers (X-User-Id, X-User-Role);
      a missing or malformed id is AuthenticationError (401) before any service runs
    - Every service built here shares the request's single AsyncSession

Design Decisions:
    - Identity is issued upstream: this service trusts the gateway headers and
      never sees credentials
    - Services constructed per request (cheap objects) rather than app singletons
"""

from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.config import get_settings
from marketplace.core.domain_types import Principal, Role
from marketplace.core.errors import AuthenticationError, ForbiddenError
from marketplace.infrastructure.database import get_db
from marketplace.infrastructure.payment_provider import (
    PaymentProviderClient, get_payment_provider,
)
from marketplace.services.access_gate import AccessGate
from marketplace.services.order_ledger import OrderLedger
from marketplace.services.rating_aggregator import RatingAggregator
from marketplace.services.review_store import ReviewStore


async def get_principal(
    x_user_id: str | None = Header(None),
    x_user_role: str = Header(Role.BUYER.value),
) -> Principal:
    """Authenticated caller as forwarded by the auth gateway."""
    try:
        return Principal(
            user_id=UUID(x_user_id), role=Role(x_user_role.lower()),
        )
    except (TypeError, ValueError):
        raise AuthenticationError()


async def require_admin(
    principal: Principal = Depends(get_principal),
) -> Principal:
    if not principal.is_admin:
        raise ForbiddenError("Administrator access required")
    return principal


def get_order_ledger(
    db: AsyncSession = Depends(get_db),
    provider: PaymentProviderClient = Depends(get_payment_provider),
) -> OrderLedger:
    settings = get_settings()
    return OrderLedger(
        db, provider,
        secret=settings.payment_key_secret,
        currency=settings.payment_currency,
    )


def get_access_gate(db: AsyncSession = Depends(get_db)) -> AccessGate:
    return AccessGate(db)


def get_rating_aggregator(db: AsyncSession = Depends(get_db)) -> RatingAggregator:
    return RatingAggregator(db)


def get_review_store(db: AsyncSession = Depends(get_db)) -> ReviewStore:
    return ReviewStore(
        db, comment_max_length=get_settings().review_comment_max_length,
    )
