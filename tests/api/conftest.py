"""API test fixtures — FastAPI app with an injected manager and test database.

Invariants:
    - The lifespan never runs: ASGITransport skips it, so fixtures wire app.state
    - Storage and transport fakes answer on the next loop iteration
    - db_manager points at a fresh in-memory engine for readiness probes

Design Decisions:
    - push_result fixture is parametrizable: tests override it
      to make the fake server reject requests
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

import tokensync.infrastructure.database as db_module
from tokensync.infrastructure.database import DatabaseSessionManager
from tokensync.main import app
from tokensync.services.device_token_manager import DeviceTokenManager
from tests.services.fakes import (
    LOCAL_ACCOUNT_ID, AutoAckTransport, AutoStorage, random_bytes,
)


@pytest.fixture
def push_result():
    return True


@pytest.fixture
def manager(push_result):
    return DeviceTokenManager(
        AutoStorage(), AutoAckTransport(push_result), random_bytes,
        local_account_id=LOCAL_ACCOUNT_ID,
    )


@pytest.fixture
async def client(manager):
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    original_manager = db_module.db_manager
    db_module.db_manager = DatabaseSessionManager.from_engine(engine)
    app.state.device_token_manager = manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    db_module.db_manager = original_manager
    await engine.dispose()
