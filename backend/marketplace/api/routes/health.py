"""Health endpoints for the marketplace core.

Invariants:
    - /health/ answers 200 whenever the process serves requests; it never touches
      the database or the payment provider
    - /health/ready answers 503 until init_db() has run and a SELECT 1 against the
      orders database succeeds

Design Decisions:
    - The payment provider is not part of readiness: checkout degrades to
      ProviderError per request, while reviews and downloads keep working
"""

import logging
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from marketplace.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Liveness: process is up."""
    return {
        "status": "healthy",
        "service": "marketplace-core",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness: orders database reachable."""
    manager = database.db_manager
    db_ok = await manager.health_check() if manager else False
    if not db_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "database_unavailable",
            },
        )
    return {"status": "ready", "checks": {"database": "healthy"}}
