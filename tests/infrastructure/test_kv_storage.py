"""SQL Key-Value Storage — write-behind cache with commit-then-callback flushes.

Tests:
    - load() makes existing rows visible to get()
    - set/erase are visible immediately but reach the database only on flush
    - force_sync callbacks fire after the commit, in order
    - A failed flush is retried and callbacks wait for the successful commit
"""

from sqlalchemy import select

from tokensync.core.errors import StorageError
from tokensync.infrastructure.kv_storage import SqlKeyValueStorage
from tokensync.models.key_value_entry import KeyValueEntry


async def _rows(db) -> dict[str, bytes]:
    async with db.session() as session:
        result = await session.execute(select(KeyValueEntry))
        return {row.key: row.value for row in result.scalars()}


async def test_load_reads_existing_entries(db):
    async with db.session() as session:
        session.add(KeyValueEntry(key="device_token2", value=b"=abc"))
        await session.commit()

    storage = SqlKeyValueStorage(db)
    await storage.load()

    assert storage.get("device_token2") == b"=abc"
    assert storage.get("device_token1") is None


async def test_set_visible_before_flush(db):
    storage = SqlKeyValueStorage(db)
    storage.set("k", b"v")

    assert storage.get("k") == b"v"
    assert await _rows(db) == {}


async def test_force_sync_commits_then_calls_back(db):
    storage = SqlKeyValueStorage(db)
    events = []
    real_write = storage._write

    async def tracking_write(pending):
        await real_write(pending)
        events.append("committed")

    storage._write = tracking_write
    storage.set("a", b"1")
    storage.force_sync(lambda: events.append("first"))
    storage.set("b", b"2")
    storage.force_sync(lambda: events.append("second"))

    assert events == []
    await storage.aclose()

    assert events[0] == "committed"
    assert events.index("first") < events.index("second")
    assert await _rows(db) == {"a": b"1", "b": b"2"}


async def test_erase_removes_row(db):
    storage = SqlKeyValueStorage(db)
    storage.set("k", b"v")
    storage.force_sync(lambda: None)
    await storage.aclose()

    storage.erase("k")
    storage.force_sync(lambda: None)
    await storage.aclose()

    assert storage.get("k") is None
    assert await _rows(db) == {}


async def test_last_mutation_wins_within_one_flush(db):
    storage = SqlKeyValueStorage(db)
    storage.set("k", b"v1")
    storage.erase("k")
    storage.set("k", b"v2")
    storage.force_sync(lambda: None)
    await storage.aclose()

    assert await _rows(db) == {"k": b"v2"}


async def test_failed_flush_is_retried(db, caplog):
    storage = SqlKeyValueStorage(db, base_delay_ms=0)
    real_write = storage._write
    attempts = []
    flushed = []

    async def flaky_write(pending):
        attempts.append(dict(pending))
        if len(attempts) == 1:
            raise StorageError("Connection or operational error", "execute")
        await real_write(pending)

    storage._write = flaky_write
    storage.set("k", b"v")
    storage.force_sync(lambda: flushed.append(True))
    await storage.aclose()

    assert len(attempts) == 2
    assert attempts[1] == {"k": b"v"}
    assert flushed == [True]
    assert await _rows(db) == {"k": b"v"}
    assert "Flush failed" in caplog.text


def test_backoff_is_capped():
    storage = SqlKeyValueStorage(db=None, base_delay_ms=100, max_delay_ms=1000)
    for attempt in range(10):
        assert storage._backoff(attempt) <= 1250


async def test_raising_callback_does_not_drop_the_rest(db, caplog):
    storage = SqlKeyValueStorage(db)
    flushed = []

    def broken():
        raise RuntimeError("boom")

    storage.set("k", b"v")
    storage.force_sync(broken)
    storage.force_sync(lambda: flushed.append("second"))
    await storage.aclose()

    storage.set("k", b"w")
    storage.force_sync(lambda: flushed.append("later"))
    await storage.aclose()

    assert flushed == ["second", "later"]
    assert "Flush callback failed" in caplog.text
    assert await _rows(db) == {"k": b"w"}
