"""Marketplace API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map MarketplaceError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database and payment provider initialized on startup via lifespan, closed on shutdown

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py to keep this module wiring-only
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.api.error_handlers import register_error_handlers
from marketplace.api.routes import admin, health, orders, products, reviews
from marketplace.config import get_settings
from marketplace.infrastructure import database, payment_provider
from marketplace.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    payment_provider.init_payment_provider(
        settings.payment_provider_base_url,
        settings.payment_key_id,
        settings.payment_key_secret,
        max_retries=settings.payment_provider_max_retries,
        base_delay_ms=settings.payment_provider_base_delay_ms,
        max_delay_ms=settings.payment_provider_max_delay_ms,
        timeout_seconds=settings.payment_provider_timeout_seconds,
    )
    logger.info("Marketplace API started")
    yield
    logger.info("Marketplace API shutting down")
    if payment_provider.payment_provider:
        await payment_provider.payment_provider.aclose()
    if database.db_manager:
        await database.db_manager.dispose()


app = FastAPI(
    title="Marketplace Core API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(products.router)
app.include_router(reviews.router)
app.include_router(admin.router)

register_error_handlers(app)
