"""DatabaseSessionManager — SQLAlchemy failures surface as DatabaseError, domain errors pass through.

Invariants:
    - A MarketplaceError raised inside a session is re-raised unchanged
    - OperationalError inside a session becomes DatabaseError (503)
    - health_check() is True against a reachable database
"""

import pytest
from sqlalchemy import text

from marketplace.core.errors import ConflictError, DatabaseError
from marketplace.infrastructure.database import DatabaseSessionManager


@pytest.fixture
async def manager():
    manager = DatabaseSessionManager("sqlite+aiosqlite:///:memory:")
    yield manager
    await manager.dispose()


async def test_health_check(manager):
    assert await manager.health_check() is True


async def test_domain_error_passes_through(manager):
    with pytest.raises(ConflictError):
        async with manager.session():
            raise ConflictError("You have already purchased this project")


async def test_operational_error_mapped(manager):
    with pytest.raises(DatabaseError) as exc:
        async with manager.session() as db:
            await db.execute(text("SELECT * FROM no_such_table"))

    assert exc.value.http_status == 503
    assert exc.value.operation == "execute"
