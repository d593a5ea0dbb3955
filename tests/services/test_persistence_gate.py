"""Persistence Gate — counter discipline and set/erase selection."""

from tokensync.core.domain_types import PlatformKind, TokenState
from tokensync.core.record_codec import parse_record
from tokensync.core.token_record import TokenRecord
from tokensync.services.persistence_gate import PersistenceGate
from tests.services.fakes import FakeStorage


def _gate():
    storage = FakeStorage()
    idle_calls = []
    gate = PersistenceGate(storage, lambda: idle_calls.append(gate.outstanding_writes))
    return gate, storage, idle_calls


def test_save_writes_serialized_record_and_counts():
    gate, storage, _ = _gate()
    record = TokenRecord(token="t", state=TokenState.PENDING_REGISTER)

    gate.save(PlatformKind.FIREBASE, record)

    assert gate.outstanding_writes == 1
    assert not gate.is_idle
    assert parse_record(storage.data["device_token2"]) == record


def test_empty_token_erases_key():
    gate, storage, _ = _gate()
    storage.data["device_token1"] = b"=old"

    gate.save(PlatformKind.APPLE_PUSH, TokenRecord())

    assert storage.writes == [("erase", "device_token1", None)]
    assert "device_token1" not in storage.data


def test_flush_decrements_then_notifies():
    gate, storage, idle_calls = _gate()
    gate.save(PlatformKind.APPLE_PUSH, TokenRecord(token="a"))
    gate.save(PlatformKind.FIREBASE, TokenRecord(token="b"))

    storage.flush_one()
    assert idle_calls == [1]
    storage.flush_one()
    assert idle_calls == [1, 0]
    assert gate.is_idle


def test_log_line_never_contains_key(caplog):
    gate, _, _ = _gate()
    record = TokenRecord(token="t")
    record.set_key(b"Q" * 256, 10 ** 14)

    with caplog.at_level("INFO"):
        gate.save(PlatformKind.FIREBASE, record)

    assert "SET device token 2" in caplog.text
    assert "QQQQ" not in caplog.text
