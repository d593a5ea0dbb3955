"""Encryption Keys — per-record payload key generation and the receiver snapshot.

Invariants:
    - Keys are exactly ENCRYPTION_KEY_LENGTH bytes from a secure random source
    - Fingerprint = low 64 bits of SHA-1(key), little-endian signed
    - A returned fingerprint never lies in [-RESERVED_FINGERPRINT_BAND, RESERVED_FINGERPRINT_BAND]
    - snapshot() is read-only

Design Decisions:
    - RandomSource injected: tests drive the redraw loop with scripted bytes
    - Reserved band keeps fingerprints disjoint from small positive account ids,
      since both are handed to the same delivery path as receiver ids
"""

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass

from tokensync.core.domain_types import (
    ENCRYPTION_KEY_LENGTH, PlatformKind, TokenState, is_reserved_fingerprint,
)
from tokensync.core.repository_protocols import RandomSource
from tokensync.core.token_record import TokenRecord


@dataclass(frozen=True)
class EncryptionKey:
    key_bytes: bytes
    fingerprint: int


def compute_fingerprint(key_bytes: bytes) -> int:
    digest = hashlib.sha1(key_bytes).digest()  # nosec B324 - identifier, not integrity
    return int.from_bytes(digest[12:20], "little", signed=True)


def generate_key(random_source: RandomSource) -> EncryptionKey:
    """Draw keys until one has a fingerprint outside the reserved band."""
    while True:
        key_bytes = random_source(ENCRYPTION_KEY_LENGTH)
        fingerprint = compute_fingerprint(key_bytes)
        if not is_reserved_fingerprint(fingerprint):
            return EncryptionKey(key_bytes, fingerprint)


def snapshot(
    records: Iterable[tuple[PlatformKind, TokenRecord]],
    local_account_id: int,
) -> list[tuple[int, bytes]]:
    """Receiver ids with their keys for every record registered or registering.

    Encrypted records yield (fingerprint, key_bytes); plain ones yield
    (local_account_id, b"").
    """
    result = []
    for _, record in records:
        if not record.token or record.state == TokenState.PENDING_UNREGISTER:
            continue
        if record.encrypted:
            result.append((record.key_fingerprint, record.key_bytes))
        else:
            result.append((local_account_id, b""))
    return result
