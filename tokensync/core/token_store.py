"""Token Record Store — fixed table of records, one per PlatformKind.

Invariants:
    - Every PlatformKind has a record from construction onward
    - Records are never removed; reset() replaces one with a fresh default
    - Iteration order is ascending platform index
"""

from collections.abc import Iterator

from tokensync.core.domain_types import PlatformKind
from tokensync.core.token_record import TokenRecord


class TokenRecordStore:
    """Mapping sized to the PlatformKind enumeration."""

    def __init__(self):
        self._records: dict[PlatformKind, TokenRecord] = {
            kind: TokenRecord() for kind in sorted(PlatformKind)
        }

    def __getitem__(self, kind: PlatformKind) -> TokenRecord:
        return self._records[kind]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[PlatformKind]:
        return iter(self._records)

    def items(self) -> Iterator[tuple[PlatformKind, TokenRecord]]:
        return iter(self._records.items())

    def replace(self, kind: PlatformKind, record: TokenRecord) -> None:
        self._records[kind] = record

    def reset(self, kind: PlatformKind) -> TokenRecord:
        record = TokenRecord()
        self._records[kind] = record
        return record
