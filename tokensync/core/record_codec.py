"""Record Codec — durable byte format for TokenRecord.

Invariants:
    - Leading b"*" marks the structured form; b"+", b"-", b"=" mark legacy raw-token forms
    - Structured flags carry exactly one state bit; anything else is a decode error
    - parse_record(serialize_record(r)) == r for every valid record
    - Runtime-only fields (in_flight_request_id, pending_caller) are never written

Design Decisions:
    - struct with explicit little-endian formats: fixed layout, no third-party codec
    - Strict decoding (trailing bytes, unknown flag bits rejected): a corrupt record
      is dropped at load instead of being half-trusted
"""

import struct

from tokensync.core.domain_types import (
    ENCRYPTION_KEY_LENGTH, MAX_OTHER_ACCOUNT_IDS, TokenState,
)
from tokensync.core.errors import RecordDecodeError
from tokensync.core.token_record import TokenRecord

STRUCTURED_MARKER = b"*"

_LEGACY_STATES = {
    ord("+"): TokenState.PENDING_REGISTER,
    ord("-"): TokenState.PENDING_UNREGISTER,
    ord("="): TokenState.SYNCED,
}

# Flag bits
HAS_OTHER_ACCOUNT_IDS = 1 << 0
IS_SYNCED = 1 << 1
IS_UNREGISTER = 1 << 2
IS_REGISTER = 1 << 3
IS_SANDBOXED = 1 << 4
ENCRYPTED = 1 << 5
_KNOWN_FLAGS = (
    HAS_OTHER_ACCOUNT_IDS | IS_SYNCED | IS_UNREGISTER
    | IS_REGISTER | IS_SANDBOXED | ENCRYPTED
)

_STATE_FLAGS = {
    TokenState.SYNCED: IS_SYNCED,
    TokenState.PENDING_UNREGISTER: IS_UNREGISTER,
    TokenState.PENDING_REGISTER: IS_REGISTER,
}

_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_I64 = struct.Struct("<q")


def serialize_record(record: TokenRecord) -> bytes:
    """Encode record in the structured form, including the leading marker."""
    flags = _STATE_FLAGS[record.state]
    if record.other_account_ids:
        flags |= HAS_OTHER_ACCOUNT_IDS
    if record.is_sandboxed:
        flags |= IS_SANDBOXED
    if record.encrypted:
        flags |= ENCRYPTED

    token = record.token.encode("utf-8")
    parts = [STRUCTURED_MARKER, bytes([flags]), _U32.pack(len(token)), token]
    if record.other_account_ids:
        parts.append(_U32.pack(len(record.other_account_ids)))
        parts.extend(_I32.pack(i) for i in record.other_account_ids)
    if record.encrypted:
        parts.append(record.key_bytes)
        parts.append(_I64.pack(record.key_fingerprint))
    return b"".join(parts)


def parse_record(data: bytes) -> TokenRecord:
    """Decode either form. Raises RecordDecodeError on any malformed input."""
    if not data:
        raise RecordDecodeError("empty value")
    marker, body = data[0], data[1:]
    if marker == STRUCTURED_MARKER[0]:
        record = _parse_structured(body)
    elif marker in _LEGACY_STATES:
        record = TokenRecord(
            token=_decode_text(body), state=_LEGACY_STATES[marker],
        )
    else:
        raise RecordDecodeError(f"unknown leading byte {bytes([marker])!r}")

    problems = record.invariant_violations()
    if problems:
        raise RecordDecodeError("; ".join(problems))
    return record


class _Reader:
    """Cursor over a byte string that raises on truncation."""

    def __init__(self, data: bytes):
        self._data = data
        self._pos = 0

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise RecordDecodeError("truncated record")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def unpack(self, fmt: struct.Struct) -> int:
        return fmt.unpack(self.take(fmt.size))[0]

    def ensure_consumed(self) -> None:
        if self._pos != len(self._data):
            raise RecordDecodeError(
                f"{len(self._data) - self._pos} trailing bytes",
            )


def _parse_structured(body: bytes) -> TokenRecord:
    reader = _Reader(body)
    flags = reader.take(1)[0]
    if flags & ~_KNOWN_FLAGS:
        raise RecordDecodeError(f"unknown flags 0x{flags:02x}")

    states = [s for s, bit in _STATE_FLAGS.items() if flags & bit]
    if len(states) != 1:
        raise RecordDecodeError(
            f"expected exactly one state flag, got {len(states)}",
        )

    record = TokenRecord(
        state=states[0],
        is_sandboxed=bool(flags & IS_SANDBOXED),
    )
    record.token = _decode_text(reader.take(reader.unpack(_U32)))

    if flags & HAS_OTHER_ACCOUNT_IDS:
        count = reader.unpack(_U32)
        if count > MAX_OTHER_ACCOUNT_IDS:
            raise RecordDecodeError(f"too many other account ids ({count})")
        record.other_account_ids = [reader.unpack(_I32) for _ in range(count)]

    if flags & ENCRYPTED:
        key_bytes = reader.take(ENCRYPTION_KEY_LENGTH)
        record.set_key(key_bytes, reader.unpack(_I64))

    reader.ensure_consumed()
    return record


def _decode_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise RecordDecodeError(f"token is not valid UTF-8: {e.reason}")
