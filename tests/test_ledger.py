import json
from pathlib import Path

import pytest

from payouts.batching import Destination, TransferBatch
from payouts.ledger import PaymentLedger, SettlementRecord
from payouts.payout_store import (
    STATUS_PENDING,
    STATUS_RECONCILE_REQUIRED,
    PendingSettlementStore,
    SettlementIntentError,
)
from payouts.store import JsonKeyValueStore


def test_record_ops_write_summary_and_per_address_entries(tmp_path: Path):
    store = JsonKeyValueStore(tmp_path / "store.json")
    ledger = PaymentLedger(store, "coin")
    batch = TransferBatch(
        fee=40,
        ring_size=16,
        destinations=[Destination("a", 1000), Destination("b", 3000)],
    )
    record = SettlementRecord(
        tx_hash="abc",
        total_amount=batch.total_amount,
        fee=batch.fee,
        ring_size=batch.ring_size,
        destination_count=batch.destination_count,
        timestamp=1234,
    )

    store.execute(ledger.record_ops(record, batch))

    assert store.zrevrange("coin:payments:all", 0, -1) == [("abc:4000:40:16:2", 1234.0)]
    assert store.zrevrange("coin:payments:b", 0, -1) == [("abc:3000:40:16", 1234.0)]
    assert ledger.history() == [
        {"tx_hash": "abc", "amount": 4000, "fee": 40, "ring_size": 16, "timestamp": 1234, "destination_count": 2}
    ]
    assert ledger.history("a") == [{"tx_hash": "abc", "amount": 1000, "fee": 40, "ring_size": 16, "timestamp": 1234}]


def test_ledger_address_appends_payment_id(tmp_path: Path):
    ledger = PaymentLedger(JsonKeyValueStore(tmp_path / "store.json"), "coin", ".")

    assert ledger.ledger_address("addr", "0123456789abcdef") == "addr.0123456789abcdef"
    assert ledger.ledger_address("addr", None) == "addr"


def test_history_skips_malformed_members(tmp_path: Path):
    path = tmp_path / "store.json"
    path.write_text(json.dumps({"hashes": {}, "zsets": {"coin:payments:all": {"junk": 5, "t:1:2:3:x": 4}}}))

    assert PaymentLedger(JsonKeyValueStore(path), "coin").history() == []


def test_pending_store_round_trip(tmp_path: Path):
    path = tmp_path / "intents.json"
    store = PendingSettlementStore(path)

    record = store.upsert("b1", {"status": STATUS_PENDING, "workers": ["w1", "w2"]})
    assert record["created_at"]

    reloaded = PendingSettlementStore(path)
    assert reloaded.get("b1")["workers"] == ["w1", "w2"]
    assert reloaded.held_workers() == {"w1", "w2"}

    reloaded.delete("b1")
    assert PendingSettlementStore(path).get("b1") is None


def test_truncated_intents_file_refuses_to_load(tmp_path: Path):
    path = tmp_path / "intents.json"
    PendingSettlementStore(path).upsert("b1", {"status": STATUS_RECONCILE_REQUIRED, "workers": ["w1"]})
    path.write_text(path.read_text()[:20])

    with pytest.raises(SettlementIntentError):
        PendingSettlementStore(path)


def test_non_object_intents_file_refuses_to_load(tmp_path: Path):
    path = tmp_path / "intents.json"
    path.write_text("[]")

    with pytest.raises(SettlementIntentError):
        PendingSettlementStore(path)


def test_failed_intent_write_leaves_memory_unchanged(tmp_path: Path, monkeypatch):
    store = PendingSettlementStore(tmp_path / "intents.json")
    store.upsert("b1", {"status": STATUS_PENDING, "workers": ["w1"]})

    def broken_persist(records):
        raise OSError("disk full")

    monkeypatch.setattr(store, "_persist", broken_persist)

    with pytest.raises(OSError):
        store.upsert("b2", {"status": STATUS_PENDING, "workers": ["w2"]})
    with pytest.raises(OSError):
        store.delete("b1")

    assert store.held_workers() == {"w1"}
    assert store.get("b2") is None
