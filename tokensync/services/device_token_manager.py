"""Device Token Manager — keeps every platform's token record in sync with the push server.

Invariants:
    - Single control flow: every method runs on the event loop thread, no locks
    - submit() validates before mutating; a rejected call changes nothing
    - At most one request in flight per record; in_flight_request_id correlates results
    - A newer submit resolves the previous pending caller with 0 and makes any older
      in-flight result stale (id mismatch → discarded)
    - No request leaves while any record write is unflushed (PersistenceGate counter > 0)
    - Successful register reports fingerprint (encrypted) or the local account id;
      successful unregister reports 0
    - Failed register demotes to PENDING_UNREGISTER; failed unregister gives up
      (token cleared, SYNCED)

Design Decisions:
    - submit() returns a Future instead of being a coroutine: the caller gets a
      handle immediately and the reconciliation loop resolves it later
    - Transport and storage results re-enter through plain callbacks (on_result,
      PersistenceGate flush) so state transitions never interleave with an await
"""

import asyncio
import logging
from functools import partial

from tokensync.core.domain_types import (
    MAX_OTHER_ACCOUNT_IDS, PlatformKind, TokenState,
)
from tokensync.core.encryption_keys import generate_key, snapshot
from tokensync.core.errors import (
    ErrorContext, RecordDecodeError, RemoteRejectedError, TokenSyncError,
)
from tokensync.core.record_codec import parse_record
from tokensync.core.remote_requests import (
    DeviceRequest, RegisterDeviceRequest, UnregisterDeviceRequest,
)
from tokensync.core.repository_protocols import (
    KeyValueStorage, PushTransport, RandomSource,
)
from tokensync.core.token_record import TokenRecord
from tokensync.core.token_store import TokenRecordStore
from tokensync.core.validate_input import (
    validate_other_account_ids, validate_utf8_text,
)
from tokensync.services.persistence_gate import PersistenceGate

logger = logging.getLogger(__name__)


class DeviceTokenManager:
    """Reconciles local desired token state with the push server."""

    def __init__(
        self,
        storage: KeyValueStorage,
        transport: PushTransport,
        random_source: RandomSource,
        local_account_id: int,
        max_other_account_ids: int = MAX_OTHER_ACCOUNT_IDS,
    ):
        self._storage = storage
        self._transport = transport
        self._random_source = random_source
        self._local_account_id = local_account_id
        self._max_other_account_ids = max_other_account_ids
        self._records = TokenRecordStore()
        self._gate = PersistenceGate(storage, on_idle=self.reconcile)

    # ─── Queries ────────────────────────────────────────────────

    @property
    def outstanding_writes(self) -> int:
        return self._gate.outstanding_writes

    def get_record(self, kind: PlatformKind) -> TokenRecord:
        return self._records[kind]

    def records(self) -> list[tuple[PlatformKind, TokenRecord]]:
        return list(self._records.items())

    def get_encryption_keys(self) -> list[tuple[int, bytes]]:
        return snapshot(self._records.items(), self._local_account_id)

    # ─── Startup ────────────────────────────────────────────────

    def start(self) -> None:
        """Load every record from storage, then run a reconciliation pass."""
        for kind in self._records:
            self._load(kind)
        self.reconcile()

    def _load(self, kind: PlatformKind) -> None:
        serialized = self._storage.get(kind.database_key)
        if not serialized:
            return
        try:
            record = parse_record(serialized)
        except RecordDecodeError as e:
            self._records.reset(kind)
            logger.error(
                f"{e.message}: {serialized!r}",
                extra={"platform_kind": kind.value, "error_code": e.code},
            )
            return
        self._records.replace(kind, record)
        logger.info(
            f"GET device token {kind.value} ---> {record.describe()}",
            extra={"platform_kind": kind.value},
        )

    # ─── Inbound ────────────────────────────────────────────────

    def submit(
        self,
        kind: PlatformKind,
        token: str,
        other_account_ids: list[int],
        is_sandboxed: bool = False,
        encrypted: bool = False,
    ) -> "asyncio.Future[int]":
        """Record the desired registration; the future resolves with the receiver id."""
        caller = asyncio.get_running_loop().create_future()
        try:
            token = validate_utf8_text(token, "token", "Device token")
            validate_other_account_ids(
                other_account_ids, self._max_other_account_ids,
            )
        except TokenSyncError as e:
            e.context.platform_kind = kind.value
            caller.set_exception(e)
            return caller

        record = self._records[kind]
        if not token and not record.token:
            caller.set_result(0)
            return caller

        if token:
            record.state = TokenState.PENDING_REGISTER
            record.token = token
        else:
            # Keep the stored token: the unregister request has to name it
            record.state = TokenState.PENDING_UNREGISTER
        record.other_account_ids = list(other_account_ids)
        record.is_sandboxed = is_sandboxed

        if encrypted != record.encrypted:
            if encrypted:
                key = generate_key(self._random_source)
                record.set_key(key.key_bytes, key.fingerprint)
            else:
                record.clear_key()

        record.in_flight_request_id = 0
        self._swap_caller(record, caller)
        self._gate.save(kind, record)
        return caller

    async def register_device(
        self,
        kind: PlatformKind,
        token: str,
        other_account_ids: list[int],
        is_sandboxed: bool = False,
        encrypted: bool = False,
    ) -> int:
        return await self.submit(
            kind, token, other_account_ids, is_sandboxed, encrypted,
        )

    # ─── Reconciliation ─────────────────────────────────────────

    def reconcile(self) -> None:
        """Send one request for each unsettled record without one in flight."""
        if not self._gate.is_idle:
            return
        for kind, record in self._records.items():
            if record.is_settled or record.has_request_in_flight:
                continue
            request = self._build_request(kind, record)
            request_id = self._transport.send(request, partial(self.on_result, kind))
            record.in_flight_request_id = request_id
            logger.debug(
                f"Sent {request.method} for platform {kind.value}",
                extra={"platform_kind": kind.value, "request_id": request_id},
            )

    def _build_request(self, kind: PlatformKind, record: TokenRecord) -> DeviceRequest:
        other_account_ids = tuple(record.other_account_ids)
        if record.state == TokenState.PENDING_UNREGISTER:
            return UnregisterDeviceRequest(kind, record.token, other_account_ids)
        return RegisterDeviceRequest(
            kind, record.token, record.is_sandboxed,
            record.key_bytes, other_account_ids,
        )

    def on_result(
        self, kind: PlatformKind, request_id: int, result: "bool | Exception",
    ) -> None:
        """Correlate a transport result with its record and advance the state."""
        record = self._records[kind]
        if request_id != record.in_flight_request_id:
            logger.debug(
                f"Discarding stale result for platform {kind.value}",
                extra={"platform_kind": kind.value, "request_id": request_id},
            )
            return
        record.in_flight_request_id = 0

        if result is True:
            self._on_success(record)
        else:
            self._on_failure(kind, request_id, record, result)
        self._gate.save(kind, record)

    def _on_success(self, record: TokenRecord) -> None:
        receiver_id = 0
        if record.state == TokenState.PENDING_REGISTER:
            receiver_id = (
                record.key_fingerprint if record.encrypted
                else self._local_account_id
            )
        self._resolve_caller(record, receiver_id)
        if record.state == TokenState.PENDING_UNREGISTER:
            record.token = ""
        record.state = TokenState.SYNCED

    def _on_failure(
        self,
        kind: PlatformKind,
        request_id: int,
        record: TokenRecord,
        result: "bool | Exception",
    ) -> None:
        if isinstance(result, Exception):
            error = result
            logger.error(
                f"Device request failed for platform {kind.value}: {error}",
                extra={"platform_kind": kind.value, "request_id": request_id},
            )
        else:
            error = RemoteRejectedError(
                ErrorContext(platform_kind=kind.value, request_id=request_id),
            )
        self._reject_caller(record, error)

        if record.state == TokenState.PENDING_REGISTER:
            record.state = TokenState.PENDING_UNREGISTER
        else:
            record.state = TokenState.SYNCED
            record.token = ""

    # ─── Pending caller slot ────────────────────────────────────

    def _swap_caller(
        self, record: TokenRecord, caller: "asyncio.Future[int]",
    ) -> None:
        self._resolve_caller(record, 0)
        record.pending_caller = caller

    def _resolve_caller(self, record: TokenRecord, receiver_id: int) -> None:
        caller, record.pending_caller = record.pending_caller, None
        if caller is not None and not caller.done():
            caller.set_result(receiver_id)

    def _reject_caller(self, record: TokenRecord, error: Exception) -> None:
        caller, record.pending_caller = record.pending_caller, None
        if caller is not None and not caller.done():
            caller.set_exception(error)
