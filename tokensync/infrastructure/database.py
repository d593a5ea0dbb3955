"""Database Session Manager — async engine behind the key-value store.

Invariants:
    - Every session auto-rolls-back on exception (no partial commits leak)
    - Every SQLAlchemy exception leaves a session as StorageError (core/errors.py),
      which is what the flush loop retries on
    - Pooled backends use pool_pre_ping; SQLite gets the dialect's default pool

Design Decisions:
    - Singleton db_manager initialized on startup: FastAPI lifespan manages lifecycle
    - expire_on_commit=False: entries are read after the session closes
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)

from tokensync.core.errors import StorageError

logger = logging.getLogger(__name__)

# SQLAlchemy failure type → (StorageError message, operation); first match wins
_STORAGE_FAILURES: tuple[tuple[type[SQLAlchemyError], str, str], ...] = (
    (IntegrityError, "Integrity constraint violated", "commit"),
    (OperationalError, "Connection or operational error", "execute"),
    (SQLAlchemyError, "Database operation failed", "query"),
)


def engine_options(
    database_url: str, pool_size: int, max_overflow: int,
) -> dict:
    """Keyword arguments for create_async_engine, by backend."""
    if database_url.startswith("sqlite"):
        return {}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


class DatabaseSessionManager:
    """Owns the engine and hands out sessions that fail as StorageError."""

    def __init__(
        self, database_url: str, pool_size: int = 5, max_overflow: int = 5,
    ):
        self._bind(create_async_engine(
            database_url,
            **engine_options(database_url, pool_size, max_overflow),
        ))

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> "DatabaseSessionManager":
        """Wrap an existing engine (tests, scripts)."""
        manager = cls.__new__(cls)
        manager._bind(engine)
        return manager

    def _bind(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide session with auto-rollback on exception."""
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            message, operation = _classify(e)
            logger.error(
                f"DB {operation} failed: {e}",
                extra={"error_code": "STORAGE_ERROR"},
            )
            raise StorageError(message, operation) from e
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Check database connectivity (for readiness probes)."""
        try:
            async with self.session() as db:
                await db.execute(text("SELECT 1"))
            return True
        except (StorageError, OSError) as e:
            logger.error(f"DB health check failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


def _classify(error: SQLAlchemyError) -> tuple[str, str]:
    return next(
        (message, operation)
        for failure_type, message, operation in _STORAGE_FAILURES
        if isinstance(error, failure_type)
    )


# Singleton (initialized on startup)
db_manager: DatabaseSessionManager | None = None


def init_db(database_url: str, **kwargs) -> DatabaseSessionManager:
    global db_manager
    db_manager = DatabaseSessionManager(database_url, **kwargs)
    return db_manager
