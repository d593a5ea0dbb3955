"""tokensync API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TokenSyncError → structured JSON responses
    - Storage is loaded before the manager starts, so startup reconciliation sees
      the persisted records
    - Shutdown drains pending storage flushes before the engine is disposed

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Manager, storage and transport on app.state: one instance each per process
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokensync.api.error_handlers import register_error_handlers
from tokensync.api.routes import device_tokens, health
from tokensync.config import get_settings
from tokensync.infrastructure.database import init_db
from tokensync.infrastructure.http_transport import HttpPushTransport
from tokensync.infrastructure.kv_storage import SqlKeyValueStorage
from tokensync.infrastructure.observability import setup_logging
from tokensync.infrastructure.secure_random import secure_random_bytes
from tokensync.services.device_token_manager import DeviceTokenManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    storage = SqlKeyValueStorage(
        db,
        base_delay_ms=settings.storage_retry_base_delay_ms,
        max_delay_ms=settings.storage_retry_max_delay_ms,
    )
    await storage.load()
    transport = HttpPushTransport(
        settings.push_server_url,
        timeout_seconds=settings.push_server_timeout_seconds,
        max_retries=settings.push_max_retries,
        base_delay_ms=settings.push_base_delay_ms,
        max_delay_ms=settings.push_max_delay_ms,
    )
    manager = DeviceTokenManager(
        storage, transport, secure_random_bytes,
        local_account_id=settings.local_account_id,
        max_other_account_ids=settings.max_other_account_ids,
    )
    app.state.device_token_manager = manager
    manager.start()
    logger.info("tokensync API started")
    yield
    logger.info("tokensync API shutting down")
    await transport.aclose()
    await storage.aclose()
    await db.dispose()


app = FastAPI(title="tokensync API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(device_tokens.router)

register_error_handlers(app)
