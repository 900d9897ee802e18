"""Submit-then-commit settlement of transfer batches."""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .batching import TransferBatch
from .chain_state import AssetOverrides, ChainStateResolver
from .config import PayoutSettings
from .ledger import PaymentLedger, SettlementRecord
from .payout_store import (
    STATUS_PENDING,
    STATUS_RECONCILE_REQUIRED,
    STATUS_SUBMITTED,
    PendingSettlementStore,
)
from .rpc import RpcError, SubmissionError, UnconfirmedSubmissionError, WalletAdapter
from .store import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


class CriticalPostSubmissionStoreError(RuntimeError):
    """Funds left the wallet but balances and history were not updated."""

    def __init__(self, tx_hash: str, cause: Exception) -> None:
        super().__init__(f"Store update failed after sending tx {tx_hash}: {cause}")
        self.tx_hash = tx_hash
        self.cause = cause


class BatchState(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    COMMITTED = "committed"
    SUBMIT_FAILED = "submit_failed"
    STORE_FAILED = "store_failed"


@dataclass(frozen=True)
class PaymentNotice:
    address: str
    amount: int


@dataclass
class BatchOutcome:
    batch: TransferBatch
    state: BatchState = BatchState.PENDING
    tx_hash: Optional[str] = None
    error: Optional[Exception] = None
    notices: List[PaymentNotice] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state is BatchState.COMMITTED

    @property
    def critical(self) -> bool:
        return self.state is BatchState.STORE_FAILED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "tx_hash": self.tx_hash,
            "error": str(self.error) if self.error else None,
            "destinations": self.batch.destination_count,
            "amount": self.batch.total_amount,
            "fee": self.batch.fee,
        }


class SettlementExecutor:
    def __init__(
        self,
        settings: PayoutSettings,
        wallet: WalletAdapter,
        store: KeyValueStore,
        ledger: PaymentLedger,
        resolver: ChainStateResolver,
        height_source: Optional[Callable[[], int]] = None,
        pending_store: Optional[PendingSettlementStore] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.wallet = wallet
        self.store = store
        self.ledger = ledger
        self.resolver = resolver
        self.height_source = height_source
        self.pending_store = pending_store
        self.clock = clock
        self._time_offset = 0

    def settle(self, batches: Sequence[TransferBatch]) -> List[BatchOutcome]:
        self._time_offset = 0
        return [self._settle_batch(batch) for batch in batches]

    def _current_overrides(self) -> Optional[AssetOverrides]:
        """Asset fields for the phase in force right now, not at build time."""
        if not self.resolver.enabled:
            return None
        if self.height_source is None:
            raise SubmissionError("No height source available to resolve transfer assets")
        height = self.height_source()
        phase = self.resolver.resolve_phase(height)
        if phase.blocks_payouts:
            raise SubmissionError(f"Payout blackout active at height {height}")
        return self.resolver.asset_overrides(height)

    def _settle_batch(self, batch: TransferBatch) -> BatchOutcome:
        outcome = BatchOutcome(batch=batch)
        addresses = [destination.address for destination in batch.destinations]

        try:
            batch.apply_asset_overrides(self._current_overrides())
        except RpcError as exc:
            logger.error("Not submitting batch to %s: %s", addresses, exc)
            outcome.state = BatchState.SUBMIT_FAILED
            outcome.error = exc
            return outcome

        batch_id = uuid.uuid4().hex
        try:
            self._record_intent(batch_id, batch, status=STATUS_PENDING)
        except OSError as exc:
            logger.error("Unable to record settlement intent; not submitting batch to %s: %s", addresses, exc)
            outcome.state = BatchState.SUBMIT_FAILED
            outcome.error = exc
            return outcome

        outcome.state = BatchState.SUBMITTED
        try:
            tx_hash = self.wallet.submit_transfer(batch)
        except UnconfirmedSubmissionError as exc:
            logger.error("Wallet accepted transfer without tx hash; holding workers for reconciliation: %s", exc)
            self._mark_intent(batch_id, {"status": STATUS_RECONCILE_REQUIRED, "error": str(exc)})
            outcome.state = BatchState.SUBMIT_FAILED
            outcome.error = exc
            return outcome
        except SubmissionError as exc:
            logger.error("Error with %s RPC request to wallet daemon: %s", self.wallet.command, exc)
            logger.error("Payments failed to send to %s", addresses)
            self._drop_intent(batch_id)
            outcome.state = BatchState.SUBMIT_FAILED
            outcome.error = exc
            return outcome

        outcome.tx_hash = tx_hash
        self._mark_intent(batch_id, {"status": STATUS_SUBMITTED, "tx_hash": tx_hash})

        record = SettlementRecord(
            tx_hash=tx_hash,
            total_amount=batch.total_amount,
            fee=batch.fee,
            ring_size=batch.ring_size,
            destination_count=batch.destination_count,
            timestamp=self._timestamp(),
        )
        ops = list(batch.debit_ops) + self.ledger.record_ops(record, batch)
        try:
            self.store.execute(ops)
        except StoreError as exc:
            error = CriticalPostSubmissionStoreError(tx_hash, exc)
            logger.critical(
                "Payments sent yet failing to update balances in store, double payouts likely (tx=%s): %s",
                tx_hash,
                exc,
            )
            logger.critical("Double payments likely to be sent to %s", addresses)
            self._mark_intent(batch_id, {"status": STATUS_RECONCILE_REQUIRED, "error": str(exc)})
            outcome.state = BatchState.STORE_FAILED
            outcome.error = error
            return outcome

        self._drop_intent(batch_id)
        outcome.state = BatchState.COMMITTED
        outcome.notices = [
            PaymentNotice(
                address=self.ledger.ledger_address(destination.address, batch.payment_id),
                amount=destination.amount,
            )
            for destination in batch.destinations
        ]
        return outcome

    def _timestamp(self) -> int:
        now = int(self.clock()) + self._time_offset
        self._time_offset += 1
        return now

    def _record_intent(self, batch_id: str, batch: TransferBatch, *, status: str) -> None:
        if self.pending_store is None:
            return
        self.pending_store.upsert(
            batch_id,
            {
                "status": status,
                "workers": list(batch.worker_identities),
                "destinations": [destination.as_rpc() for destination in batch.destinations],
                "payment_id": batch.payment_id,
                "total_amount": batch.total_amount,
                "fee": batch.fee,
                "debit_ops": [[op.command, op.key, list(op.args)] for op in batch.debit_ops],
            },
        )

    def _mark_intent(self, batch_id: str, updates: Dict[str, Any]) -> None:
        if self.pending_store is None:
            return
        try:
            self.pending_store.upsert(batch_id, updates)
        except OSError as exc:
            logger.critical("Failed to update settlement intent %s with %s: %s", batch_id, updates, exc)

    def _drop_intent(self, batch_id: str) -> None:
        if self.pending_store is None:
            return
        try:
            self.pending_store.delete(batch_id)
        except OSError as exc:
            logger.warning("Failed to clear settlement intent %s: %s", batch_id, exc)
