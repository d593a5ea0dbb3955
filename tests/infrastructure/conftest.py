"""Infrastructure test fixtures — in-memory SQLite engine and session manager.

Invariants:
    - Every test gets a fresh in-memory database with the schema created
    - The session manager wraps the test engine, never the process singleton
"""

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from tokensync.db.base import Base
from tokensync.infrastructure.database import DatabaseSessionManager
import tokensync.models  # noqa: F401  (registers KeyValueEntry on Base.metadata)


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db(test_engine):
    return DatabaseSessionManager.from_engine(test_engine)
