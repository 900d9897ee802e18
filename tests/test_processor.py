from typing import List, Optional

from payouts.calculator import NO_ELIGIBLE_WORKERS
from payouts.chain_state import ChainPhase
from payouts.payout_store import STATUS_RECONCILE_REQUIRED, PendingSettlementStore
from payouts.processor import PayoutProcessor
from payouts.rpc import HeightQueryError
from payouts.store import JsonKeyValueStore, StoreOp

from conftest import CRYPTONOTE_PREFIX, make_address


class FakeDaemon:
    def __init__(self, height: int = 1000, error: Optional[Exception] = None):
        self.height = height
        self.error = error
        self.calls = 0

    def get_block_height(self) -> int:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.height


class FakeWallet:
    command = "transfer"

    def __init__(self):
        self.batches = []

    def submit_transfer(self, batch) -> str:
        self.batches.append(batch)
        return f"tx{len(self.batches)}"


class RecordingNotifier:
    def __init__(self):
        self.payments: List[tuple] = []

    def send_payment(self, address: str, amount: int) -> None:
        self.payments.append((address, amount))


PAYMENTS = {"denomination": 1000, "min_payment": 500_000}


def build_processor(settings, *, daemon=None, pending_store=None):
    store = JsonKeyValueStore(settings.store_path)
    wallet = FakeWallet()
    notifier = RecordingNotifier()
    processor = PayoutProcessor(
        settings,
        store,
        daemon or FakeDaemon(),
        wallet,
        notifier=notifier,
        pending_store=pending_store,
    )
    return processor, store, wallet, notifier


def credit(store, **balances):
    store.execute([StoreOp.hincrby(f"monero:workers:{name}", "balance", amount) for name, amount in balances.items()])


def test_cycle_pays_eligible_workers(make_settings):
    settings = make_settings(payments=PAYMENTS)
    processor, store, wallet, notifier = build_processor(settings)
    credit(store, w1=1_000_000, w2=50)

    report = processor.run_cycle()

    assert report.success_count == 1
    assert report.failure_count == 0
    assert len(wallet.batches) == 1
    assert [(d.address, d.amount) for d in wallet.batches[0].destinations] == [("w1", 1_000_000)]
    assert store.hgetall("monero:workers:w1") == {"balance": "0", "paid": "1000000"}
    assert store.hgetall("monero:workers:w2") == {"balance": "50"}
    assert notifier.payments == [("w1", 1_000_000)]
    assert processor.last_report is report
    assert report.finished_at is not None


def test_second_cycle_does_not_pay_twice(make_settings):
    settings = make_settings(payments=PAYMENTS)
    processor, store, wallet, _ = build_processor(settings)
    credit(store, w1=1_000_000)

    processor.run_cycle()
    report = processor.run_cycle()

    assert len(wallet.batches) == 1
    assert report.skipped_reason == NO_ELIGIBLE_WORKERS
    assert store.zcard("monero:payments:all") == 1


def test_capped_remainder_is_paid_next_cycle(make_settings):
    settings = make_settings(payments={**PAYMENTS, "max_payout_amount": 1_000_000})
    processor, store, wallet, _ = build_processor(settings)
    credit(store, whale=1_500_000)

    processor.run_cycle()
    assert store.hget("monero:workers:whale", "balance") == "500000"

    processor.run_cycle()
    assert [batch.total_amount for batch in wallet.batches] == [1_000_000, 500_000]
    assert store.hgetall("monero:workers:whale") == {"balance": "0", "paid": "1500000"}


def test_no_eligible_workers_skips_submission(make_settings):
    settings = make_settings(payments=PAYMENTS)
    processor, store, wallet, _ = build_processor(settings)
    credit(store, w1=10)

    report = processor.run_cycle()

    assert report.skipped_reason == NO_ELIGIBLE_WORKERS
    assert wallet.batches == []


def test_blackout_skips_cycle(make_settings, migration_config):
    settings = make_settings(payments=PAYMENTS, migration=migration_config)
    processor, store, wallet, _ = build_processor(settings, daemon=FakeDaemon(height=150))
    credit(store, w1=1_000_000)

    report = processor.run_cycle()

    assert report.phase is ChainPhase.PAYOUT_BLACKOUT
    assert report.skipped_reason == "payout_blackout"
    assert wallet.batches == []
    assert store.hgetall("monero:workers:w1") == {"balance": "1000000"}


def test_resume_phase_pays_with_successor_asset(make_settings, migration_config):
    settings = make_settings(payments=PAYMENTS, migration=migration_config)
    processor, store, wallet, _ = build_processor(settings, daemon=FakeDaemon(height=250))
    miner = make_address(CRYPTONOTE_PREFIX, 1)
    credit(store, **{miner: 1_000_000})

    report = processor.run_cycle()

    assert report.phase is ChainPhase.PAYOUT_RESUME
    assert report.success_count == 1
    assert wallet.batches[0].asset_overrides.dest_asset == "SAL1"
    assert wallet.batches[0].destinations[0].address == miner


def test_height_failure_aborts_cycle(make_settings, migration_config):
    settings = make_settings(payments=PAYMENTS, migration=migration_config)
    daemon = FakeDaemon(error=HeightQueryError("daemon offline"))
    processor, store, wallet, _ = build_processor(settings, daemon=daemon)
    credit(store, w1=1_000_000)

    report = processor.run_cycle()

    assert "daemon offline" in report.error
    assert wallet.batches == []
    assert store.hgetall("monero:workers:w1") == {"balance": "1000000"}


def test_height_not_queried_when_migration_disabled(make_settings):
    settings = make_settings(payments=PAYMENTS)
    daemon = FakeDaemon(error=HeightQueryError("unused"))
    processor, store, wallet, _ = build_processor(settings, daemon=daemon)
    credit(store, w1=1_000_000)

    report = processor.run_cycle()

    assert daemon.calls == 0
    assert report.success_count == 1


def test_store_read_failure_aborts_cycle(make_settings):
    settings = make_settings(payments=PAYMENTS)
    settings.store_path.write_text("{broken")
    processor, _, wallet, _ = build_processor(settings)

    report = processor.run_cycle()

    assert report.error is not None
    assert wallet.batches == []


def test_workers_with_unreconciled_intents_are_held(make_settings):
    settings = make_settings(payments=PAYMENTS)
    pending = PendingSettlementStore(settings.intents_path)
    pending.upsert("batch-1", {"status": STATUS_RECONCILE_REQUIRED, "workers": ["w1"]})
    processor, store, wallet, _ = build_processor(settings, pending_store=pending)
    credit(store, w1=1_000_000, w2=2_000_000)

    report = processor.run_cycle()

    assert report.held_workers == ["w1"]
    assert [d.address for d in wallet.batches[0].destinations] == ["w2"]
    assert store.hget("monero:workers:w1", "balance") == "1000000"
    assert [key for key, _ in pending.iter_with_ids()] == ["batch-1"]


def test_report_serializes_outcomes(make_settings):
    settings = make_settings(payments=PAYMENTS)
    processor, store, _, _ = build_processor(settings)
    credit(store, w1=1_000_000)

    data = processor.run_cycle().as_dict()

    assert data["phase"] == "disabled"
    assert data["success_count"] == 1
    assert data["batches"][0]["state"] == "committed"
    assert data["batches"][0]["tx_hash"] == "tx1"
