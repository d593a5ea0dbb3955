"""Persistence Gate — write-before-send discipline for token records.

Invariants:
    - outstanding_writes is incremented before force_sync and decremented only in
      its flush callback
    - on_idle runs after every flush confirmation; the hook itself decides whether
      the counter being zero lets it proceed
    - Empty-token records are erased, never written

Design Decisions:
    - One process-wide counter gates every platform's sends together: coarser than
      per-record tracking, but a single integer is the whole barrier
"""

import logging
from collections.abc import Callable

from tokensync.core.domain_types import PlatformKind
from tokensync.core.record_codec import serialize_record
from tokensync.core.repository_protocols import KeyValueStorage
from tokensync.core.token_record import TokenRecord

logger = logging.getLogger(__name__)


class PersistenceGate:
    """Serializes records into storage and tracks unflushed writes."""

    def __init__(self, storage: KeyValueStorage, on_idle: Callable[[], None]):
        self._storage = storage
        self._on_idle = on_idle
        self.outstanding_writes = 0

    @property
    def is_idle(self) -> bool:
        return self.outstanding_writes == 0

    def save(self, kind: PlatformKind, record: TokenRecord) -> None:
        key = kind.database_key
        logger.info(
            f"SET device token {kind.value} ---> {record.describe()}",
            extra={"platform_kind": kind.value, "storage_key": key},
        )
        self.outstanding_writes += 1
        if record.token:
            self._storage.set(key, serialize_record(record))
        else:
            self._storage.erase(key)
        self._storage.force_sync(self._on_flushed)

    def _on_flushed(self) -> None:
        self.outstanding_writes -= 1
        self._on_idle()
