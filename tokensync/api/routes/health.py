"""Health & Readiness Probes.

Invariants:
    - GET /health/ is 200 whenever the process is up
    - GET /health/ready is 503 until the key-value database answers and the
      device token manager is wired; it reports unflushed record writes
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

import tokensync.infrastructure.database as db_module

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/")
async def liveness():
    return {"status": "healthy", "service": "tokensync", "version": "1.0.0"}


@router.get("/ready")
async def readiness(request: Request):
    db = db_module.db_manager
    manager = getattr(request.app.state, "device_token_manager", None)
    checks = {
        "database": "healthy" if db and await db.health_check() else "unavailable",
        "device_tokens": "ready" if manager else "not_started",
    }
    if checks["database"] != "healthy" or manager is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "checks": checks},
        )
    return {
        "status": "ready",
        "checks": checks,
        "outstanding_writes": manager.outstanding_writes,
    }
