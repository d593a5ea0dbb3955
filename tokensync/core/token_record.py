"""Token Record — per-platform registration state mirrored against the push server.

Invariants:
    - encrypted ⇔ key_bytes is 256 bytes and key_fingerprint != 0
    - token == "" ⇒ state ∈ {SYNCED, PENDING_UNREGISTER}
    - len(other_account_ids) ≤ MAX_OTHER_ACCOUNT_IDS
    - in_flight_request_id and pending_caller are runtime-only, never persisted

Design Decisions:
    - Mutable dataclass: the manager mutates records in place on its single control flow
    - pending_caller is a bare Future slot: the record holds it, never awaits it
"""

import asyncio
from dataclasses import dataclass, field

from tokensync.core.domain_types import (
    ENCRYPTION_KEY_LENGTH, MAX_OTHER_ACCOUNT_IDS,
    TokenState, is_reserved_fingerprint,
)

_STATE_LABELS = {
    TokenState.SYNCED: "Synchronized",
    TokenState.PENDING_UNREGISTER: "Unregister",
    TokenState.PENDING_REGISTER: "Register",
}


@dataclass
class TokenRecord:
    """Desired registration for one platform kind plus its sync bookkeeping."""

    token: str = ""
    state: TokenState = TokenState.SYNCED
    other_account_ids: list[int] = field(default_factory=list)
    is_sandboxed: bool = False
    encrypted: bool = False
    key_bytes: bytes = b""
    key_fingerprint: int = 0

    # Runtime-only
    in_flight_request_id: int = 0
    pending_caller: "asyncio.Future[int] | None" = field(
        default=None, compare=False, repr=False,
    )

    @property
    def is_settled(self) -> bool:
        return self.state == TokenState.SYNCED

    @property
    def has_request_in_flight(self) -> bool:
        return self.in_flight_request_id != 0

    def set_key(self, key_bytes: bytes, fingerprint: int) -> None:
        self.encrypted = True
        self.key_bytes = key_bytes
        self.key_fingerprint = fingerprint

    def clear_key(self) -> None:
        self.encrypted = False
        self.key_bytes = b""
        self.key_fingerprint = 0

    def invariant_violations(self) -> list[str]:
        """Return a description of each broken invariant (empty when valid)."""
        problems = []
        if self.encrypted:
            if len(self.key_bytes) != ENCRYPTION_KEY_LENGTH:
                problems.append(
                    f"encryption key must be {ENCRYPTION_KEY_LENGTH} bytes",
                )
            if is_reserved_fingerprint(self.key_fingerprint):
                problems.append("key fingerprint inside reserved band")
        elif self.key_bytes or self.key_fingerprint:
            problems.append("key material present on unencrypted record")
        if not self.token and self.state == TokenState.PENDING_REGISTER:
            problems.append("empty token cannot be pending registration")
        if len(self.other_account_ids) > MAX_OTHER_ACCOUNT_IDS:
            problems.append("too many other account ids")
        return problems

    def describe(self) -> str:
        """Human-readable summary for log lines. Never includes key bytes."""
        escaped = self.token.encode("unicode_escape").decode("ascii")
        escaped = escaped.replace('"', '\\"')
        text = f'{_STATE_LABELS[self.state]} token "{escaped}"'
        if self.other_account_ids:
            text += f", with other accounts {self.other_account_ids}"
        if self.is_sandboxed:
            text += ", sandboxed"
        if self.encrypted:
            text += ", encrypted"
        return text
