"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - PlatformKind values are stable: they appear in durable keys and on the wire
    - TokenState is a genuine tri-state, never encoded as independent booleans
    - AccountId is positive and fits in a signed 32-bit integer
    - KeyFingerprint is a signed 64-bit value outside [-RESERVED_FINGERPRINT_BAND, +RESERVED_FINGERPRINT_BAND]

Design Decisions:
    - IntEnum for PlatformKind: the integer index is the identity used by storage and server
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - Index 7 is retired and never reassigned, so old durable keys stay unambiguous
"""

from enum import Enum, IntEnum
from typing import NewType


# ─── Identity Types ──────────────────────────────────────────────

AccountId = NewType("AccountId", int)
RequestId = NewType("RequestId", int)           # 0 = no request in flight
KeyFingerprint = NewType("KeyFingerprint", int)


# ─── Limits ──────────────────────────────────────────────────────

ENCRYPTION_KEY_LENGTH = 256
RESERVED_FINGERPRINT_BAND = 10_000_000_000_000
MAX_OTHER_ACCOUNT_IDS = 100
MAX_ACCOUNT_ID = (1 << 31) - 1

DATABASE_KEY_PREFIX = "device_token"


# ─── Enums ───────────────────────────────────────────────────────

class PlatformKind(IntEnum):
    """Push delivery channels. One token record exists per member."""
    APPLE_PUSH = 1
    FIREBASE = 2
    MICROSOFT_PUSH = 3
    SIMPLE_PUSH = 4
    UBUNTU_PUSH = 5
    BLACKBERRY_PUSH = 6
    WINDOWS_PUSH = 8
    APPLE_PUSH_VOIP = 9
    WEB_PUSH = 10
    MICROSOFT_PUSH_VOIP = 11
    TIZEN_PUSH = 12

    @property
    def database_key(self) -> str:
        return f"{DATABASE_KEY_PREFIX}{self.value}"

    @property
    def supports_sandbox(self) -> bool:
        return self in (PlatformKind.APPLE_PUSH, PlatformKind.APPLE_PUSH_VOIP)

    @property
    def supports_encryption(self) -> bool:
        return self in (PlatformKind.FIREBASE, PlatformKind.APPLE_PUSH_VOIP)


class TokenState(str, Enum):
    """Reconciliation state of a token record against the remote server."""
    SYNCED = "synced"
    PENDING_UNREGISTER = "pending_unregister"
    PENDING_REGISTER = "pending_register"


def is_valid_account_id(value: int) -> bool:
    return 0 < value <= MAX_ACCOUNT_ID


def is_reserved_fingerprint(value: int) -> bool:
    """True when value falls inside the band kept for plain account ids."""
    return -RESERVED_FINGERPRINT_BAND <= value <= RESERVED_FINGERPRINT_BAND
