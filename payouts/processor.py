"""Payment loop that settles worker balances through the pool wallet."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .balances import BalanceSource
from .batching import BatchBuilder
from .calculator import PayoutCalculator
from .chain_state import ChainPhase, ChainStateResolver
from .config import PayoutSettings
from .ledger import PaymentLedger
from .notifications import LoggingNotifier, Notifier
from .payout_store import PendingSettlementStore
from .rpc import DaemonClient, HeightQueryError, WalletAdapter
from .settlement import BatchOutcome, SettlementExecutor
from .store import KeyValueStore, StoreReadError

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    started_at: float
    finished_at: Optional[float] = None
    height: Optional[int] = None
    phase: ChainPhase = ChainPhase.DISABLED
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    held_workers: List[str] = field(default_factory=list)
    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @property
    def critical_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.critical)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "height": self.height,
            "phase": self.phase.value,
            "skipped_reason": self.skipped_reason,
            "error": self.error,
            "held_workers": list(self.held_workers),
            "batches": [outcome.as_dict() for outcome in self.outcomes],
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "critical_count": self.critical_count,
        }


class PayoutProcessor:
    def __init__(
        self,
        settings: PayoutSettings,
        store: KeyValueStore,
        daemon: DaemonClient,
        wallet: WalletAdapter,
        notifier: Optional[Notifier] = None,
        pending_store: Optional[PendingSettlementStore] = None,
        resolver: Optional[ChainStateResolver] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.daemon = daemon
        self.wallet = wallet
        self.notifier = notifier or LoggingNotifier(settings)
        self.pending_store = pending_store
        self.resolver = resolver or ChainStateResolver(settings)

        self.balances = BalanceSource(store, settings.coin)
        self.calculator = PayoutCalculator(settings, self.resolver)
        self.builder = BatchBuilder(settings)
        self.ledger = PaymentLedger(store, settings.coin, settings.payment_id.address_separator)
        self.executor = SettlementExecutor(
            settings,
            wallet,
            store,
            self.ledger,
            self.resolver,
            height_source=daemon.get_block_height,
            pending_store=pending_store,
        )
        self._lock = threading.Lock()
        self._last_report: Optional[CycleReport] = None

    @property
    def last_report(self) -> Optional[CycleReport]:
        with self._lock:
            return self._last_report

    def run_cycle(self) -> CycleReport:
        """Run one fetch -> filter -> build -> submit cycle."""
        report = CycleReport(started_at=time.time())
        try:
            self._run_cycle(report)
        finally:
            report.finished_at = time.time()
            with self._lock:
                self._last_report = report
        return report

    def _run_cycle(self, report: CycleReport) -> None:
        if self.resolver.enabled:
            try:
                report.height = self.daemon.get_block_height()
            except HeightQueryError as exc:
                logger.error("Error getting block count for migration check: %s", exc)
                report.error = str(exc)
                return
            report.phase = self.resolver.resolve_phase(report.height)
            if report.phase.blocks_payouts:
                logger.info(
                    "Payout blackout active at height %s. Skipping payment processing.",
                    report.height,
                )
                report.skipped_reason = report.phase.value
                return

        try:
            balances = self.balances.fetch()
        except StoreReadError as exc:
            logger.error("Error trying to get worker balances from store: %s", exc)
            report.error = str(exc)
            return

        held = self.pending_store.held_workers() if self.pending_store is not None else set()
        if held:
            report.held_workers = sorted(held)
            logger.error(
                "Holding payouts for %s workers with unreconciled settlements: %s",
                len(held),
                report.held_workers,
            )
            balances = [worker for worker in balances if worker.worker_identity not in held]

        candidate_set = self.calculator.compute_candidates(balances, report.phase)
        if candidate_set.skipped_reason:
            report.skipped_reason = candidate_set.skipped_reason
            return

        batches = self.builder.build(candidate_set.candidates)
        report.outcomes = self.executor.settle(batches)

        for outcome in report.outcomes:
            for notice in outcome.notices:
                self.notifier.send_payment(notice.address, notice.amount)

        logger.info(
            "Payments splintered and %d successfully sent, %d failed",
            report.success_count,
            report.failure_count,
        )
        if report.critical_count:
            logger.critical(
                "%d batches were sent but not recorded; operator reconciliation required",
                report.critical_count,
            )

    def run_forever(self) -> None:
        """Blocking loop; the next cycle starts a fixed interval after the previous one ends."""
        interval = self.settings.payments.interval_seconds
        logger.info("Starting payment loop with interval %s seconds", interval)
        try:
            while True:
                try:
                    self.run_cycle()
                except Exception as exc:  # pragma: no cover
                    logger.exception("Unexpected error in payment cycle: %s", exc)
                time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Payment loop stopped via keyboard interrupt")
