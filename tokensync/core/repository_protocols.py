"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - Storage reads are synchronous (the shell preloads); only flushing is deferred
    - Transport results arrive on the same event loop that issued the send

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - Callbacks instead of awaitables at this boundary: the manager is a synchronous
      state machine driven by the loop, so the shell calls back into it
"""

from collections.abc import Callable
from typing import Protocol

from tokensync.core.remote_requests import DeviceRequest

FlushCallback = Callable[[], None]
ResultCallback = Callable[[int, "bool | Exception"], None]
RandomSource = Callable[[int], bytes]


class KeyValueStorage(Protocol):
    """Durable key-value store with an explicit flush confirmation."""
    def get(self, key: str) -> bytes | None: ...
    def set(self, key: str, value: bytes) -> None: ...
    def erase(self, key: str) -> None: ...
    def force_sync(self, callback: FlushCallback) -> None: ...


class PushTransport(Protocol):
    """Delivers device requests to the push server."""
    def send(self, request: DeviceRequest, on_result: ResultCallback) -> int:
        """Dispatch request; return its nonzero request id.

        on_result(request_id, result) is called later with True/False from
        the server or the Exception describing the failure. It is never called
        before send() has returned.
        """
        ...
