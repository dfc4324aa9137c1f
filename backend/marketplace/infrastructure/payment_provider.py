"""Resilient Payment Provider Client — wraps httpx.AsyncClient with timeout, retry, and error mapping.

Invariants:
    - Every call is bounded by the configured timeout; a timeout is never retried
      (the provider may already have created the order) and surfaces as ProviderError
    - Rate limits (429): backoff, respects Retry-After header
    - Transient errors (5xx, connection): max `max_retries` retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - All failures mapped to ProviderError (core/errors.py); httpx never leaks upward

Design Decisions:
    - Wrapper over raw client: isolates retry logic from the order ledger
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
    - Retried POSTs carry the same receipt: the provider deduplicates on it
    - transport injectable: tests drive the client with httpx.MockTransport
"""

import asyncio
import random
import logging

import httpx

from marketplace.core.errors import ErrorContext, ProviderError
from marketplace.core.repository_protocols import ProviderOrder, ProviderOrderRequest

logger = logging.getLogger(__name__)

_RATE_LIMITED = 429


class PaymentProviderClient:
    """Creates provider-side orders with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        base_url: str,
        key_id: str,
        key_secret: str,
        max_retries: int = 2,
        base_delay_ms: int = 250,
        max_delay_ms: int = 5_000,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.key_id = key_id
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=(key_id, key_secret),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    async def create_order(
        self,
        request: ProviderOrderRequest,
        context: ErrorContext | None = None,
    ) -> ProviderOrder:
        """Create a provider order; retried on transient failures only."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.post(
                    "/orders", json=request.to_payload(),
                )
            except httpx.TimeoutException:
                raise ProviderError(
                    "Order creation timed out", "timeout", context=context,
                )
            except httpx.TransportError as e:
                await self._handle_transient_error(e, attempt, context)
                continue

            if response.status_code == _RATE_LIMITED:
                await self._handle_rate_limit(response, attempt, context)
                continue
            if response.status_code >= 500:
                await self._handle_transient_error(
                    f"HTTP {response.status_code}", attempt, context,
                )
                continue
            if response.status_code >= 400:
                raise ProviderError(
                    self._describe_error(response), "client_error",
                    context=context,
                )

            order = self._parse_order(response, context)
            logger.info(
                "Provider order created",
                extra={"attempt": attempt + 1, "order_id": order.provider_order_ref},
            )
            return order

        # unreachable: the last attempt either returns or raises
        raise ProviderError("Retries exhausted", "connection_error", context=context)

    async def aclose(self) -> None:
        await self.client.aclose()

    def _parse_order(
        self, response: httpx.Response, context: ErrorContext | None,
    ) -> ProviderOrder:
        try:
            body = response.json()
            return ProviderOrder(
                provider_order_ref=str(body["id"]),
                amount=int(body["amount"]),
                currency=str(body["currency"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(
                f"Malformed order response: {e}", "bad_response", context=context,
            )

    async def _handle_rate_limit(
        self, response: httpx.Response, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle rate limit error with retry or raise."""
        retry_after_ms = self._extract_retry_after(response)
        if attempt >= self.max_retries:
            raise ProviderError(
                "Rate limit exceeded after retries",
                "rate_limit",
                retry_after_ms=retry_after_ms,
                context=context,
            )
        delay = retry_after_ms or self._backoff(attempt)
        logger.warning(
            f"Provider rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
        )
        await asyncio.sleep(delay / 1000)

    async def _handle_transient_error(
        self, e: object, attempt: int, context: ErrorContext | None,
    ) -> None:
        """Handle transient errors with retry or raise."""
        if attempt >= self.max_retries:
            raise ProviderError(
                f"Transient failure after {self.max_retries} retries: {e}",
                "connection_error",
                retry_after_ms=self._backoff(attempt),
                context=context,
            )
        delay = self._backoff(attempt)
        logger.warning(f"Provider transient error, retry after {delay}ms: {e}")
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    def _extract_retry_after(self, response: httpx.Response) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None

    def _describe_error(self, response: httpx.Response) -> str:
        try:
            return response.json()["error"]["description"]
        except (ValueError, KeyError, TypeError):
            return f"HTTP {response.status_code}"


# Singleton (initialized on startup)
payment_provider: PaymentProviderClient | None = None


def init_payment_provider(base_url: str, key_id: str, key_secret: str, **kwargs):
    global payment_provider
    payment_provider = PaymentProviderClient(base_url, key_id, key_secret, **kwargs)


def get_payment_provider() -> PaymentProviderClient:
    """FastAPI dependency for the provider client."""
    if not payment_provider:
        raise RuntimeError("Payment provider not initialized")
    return payment_provider
