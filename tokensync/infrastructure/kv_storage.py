"""SQL Key-Value Storage — durable store behind the KeyValueStorage protocol.

Invariants:
    - get() is synchronous: served from a map populated by load() and kept current by set/erase
    - set()/erase() only queue mutations; nothing reaches the database until a flush
    - A force_sync() callback runs only after every mutation queued before it is committed
    - Flushes never overlap: one background task drains the queue in order
    - A failed flush is retried with backoff; callbacks never fire on failure
    - A raising callback is logged and never prevents the rest of its batch from running

Design Decisions:
    - Batched commit per flush: many records saved in one tick share one transaction
    - Retry-until-committed: the write-before-send discipline depends on callbacks
      meaning "durable", so there is no give-up path
"""

import asyncio
import logging
import random

from sqlalchemy import delete, select

from tokensync.core.errors import StorageError
from tokensync.core.repository_protocols import FlushCallback
from tokensync.infrastructure.database import DatabaseSessionManager
from tokensync.models.key_value_entry import KeyValueEntry

logger = logging.getLogger(__name__)


class SqlKeyValueStorage:
    """Write-behind key-value store over the key_value_entries table."""

    def __init__(
        self,
        db: DatabaseSessionManager,
        base_delay_ms: int = 200,
        max_delay_ms: int = 30_000,
    ):
        self._db = db
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._cache: dict[str, bytes] = {}
        self._pending: dict[str, bytes | None] = {}  # None = erase
        self._callbacks: list[FlushCallback] = []
        self._flush_task: asyncio.Task | None = None

    async def load(self) -> None:
        """Read every entry into memory. Call once before get()."""
        async with self._db.session() as db:
            result = await db.execute(select(KeyValueEntry))
            self._cache = {row.key: row.value for row in result.scalars()}
        logger.info(f"Loaded {len(self._cache)} key-value entries")

    def get(self, key: str) -> bytes | None:
        return self._cache.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._cache[key] = value
        self._pending[key] = value

    def erase(self, key: str) -> None:
        self._cache.pop(key, None)
        self._pending[key] = None

    def force_sync(self, callback: FlushCallback) -> None:
        self._callbacks.append(callback)
        if self._flush_task is None:
            self._flush_task = asyncio.get_running_loop().create_task(
                self._flush_loop(),
            )

    async def aclose(self) -> None:
        """Wait for queued mutations to be committed."""
        if self._flush_task is not None:
            await self._flush_task

    async def _flush_loop(self) -> None:
        attempt = 0
        try:
            while self._pending or self._callbacks:
                pending, self._pending = self._pending, {}
                callbacks, self._callbacks = self._callbacks, []
                try:
                    await self._write(pending)
                except StorageError as e:
                    # Newer mutations queued during the failed write win
                    self._pending = {**pending, **self._pending}
                    self._callbacks = callbacks + self._callbacks
                    delay = self._backoff(attempt)
                    attempt += 1
                    logger.error(
                        f"Flush failed, retry after {delay}ms: {e.message}",
                        extra={"attempt": attempt, "error_code": e.code},
                    )
                    await asyncio.sleep(delay / 1000)
                    continue
                attempt = 0
                for callback in callbacks:
                    self._run_callback(callback)
        finally:
            self._flush_task = None

    def _run_callback(self, callback: FlushCallback) -> None:
        try:
            callback()
        except Exception as e:
            logger.error(f"Flush callback failed: {e}", exc_info=True)

    async def _write(self, pending: dict[str, bytes | None]) -> None:
        async with self._db.session() as db:
            for key, value in pending.items():
                if value is None:
                    await db.execute(
                        delete(KeyValueEntry).where(KeyValueEntry.key == key),
                    )
                else:
                    await db.merge(KeyValueEntry(key=key, value=value))
            await db.commit()

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
