"""Remote Requests — the two calls the reconciliation loop issues to the push server.

Invariants:
    - Immutable snapshots of a record taken at send time
    - Register carries key material (empty when unencrypted); unregister never does
"""

from dataclasses import dataclass, field

from tokensync.core.domain_types import PlatformKind


@dataclass(frozen=True)
class RegisterDeviceRequest:
    platform_kind: PlatformKind
    token: str
    is_sandboxed: bool
    key_bytes: bytes
    other_account_ids: tuple[int, ...] = field(default_factory=tuple)

    method = "account.registerDevice"


@dataclass(frozen=True)
class UnregisterDeviceRequest:
    platform_kind: PlatformKind
    token: str
    other_account_ids: tuple[int, ...] = field(default_factory=tuple)

    method = "account.unregisterDevice"


DeviceRequest = RegisterDeviceRequest | UnregisterDeviceRequest
