"""Health probes — liveness always 200, readiness follows database and manager."""

import tokensync.infrastructure.database as db_module
from tokensync.main import app


async def test_liveness(client):
    res = await client.get("/api/v1/health/")
    assert res.status_code == 200
    assert res.json()["service"] == "tokensync"


async def test_readiness_with_database_and_manager(client):
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 200
    body = res.json()
    assert body["checks"] == {"database": "healthy", "device_tokens": "ready"}
    assert body["outstanding_writes"] == 0


async def test_readiness_without_database(client, monkeypatch):
    monkeypatch.setattr(db_module, "db_manager", None)
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["checks"]["database"] == "unavailable"


async def test_readiness_before_manager_started(client, monkeypatch):
    monkeypatch.delattr(app.state, "device_token_manager")
    res = await client.get("/api/v1/health/ready")
    assert res.status_code == 503
    assert res.json()["checks"]["device_tokens"] == "not_started"
