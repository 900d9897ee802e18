"""Greedy packing of payout candidates into wallet transfers."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .balances import worker_key
from .calculator import PayoutCandidate
from .chain_state import AssetOverrides
from .config import PayoutSettings
from .store import StoreOp

logger = logging.getLogger(__name__)


@dataclass
class Destination:
    address: str
    amount: int
    asset_type: Optional[str] = None

    def as_rpc(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"amount": self.amount, "address": self.address}
        if self.asset_type:
            payload["asset_type"] = self.asset_type
        return payload


@dataclass
class TransferBatch:
    fee: int
    ring_size: int
    use_ring_size: bool = False
    priority: int = 0
    unlock_time: int = 0
    destinations: List[Destination] = field(default_factory=list)
    payment_id: Optional[str] = None
    asset_overrides: Optional[AssetOverrides] = None
    debit_ops: List[StoreOp] = field(default_factory=list)
    worker_identities: List[str] = field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return sum(destination.amount for destination in self.destinations)

    @property
    def destination_count(self) -> int:
        return len(self.destinations)

    def apply_asset_overrides(self, overrides: Optional[AssetOverrides]) -> None:
        self.asset_overrides = overrides
        for destination in self.destinations:
            destination.asset_type = overrides.dest_asset if overrides else None


class BatchBuilder:
    """Single deterministic pass; a heuristic, not an optimal bin packer."""

    def __init__(self, settings: PayoutSettings) -> None:
        self.settings = settings
        self.payments = settings.payments

    def _new_batch(self) -> TransferBatch:
        return TransferBatch(
            fee=self.payments.transfer_fee,
            ring_size=self.payments.effective_ring_size,
            use_ring_size=self.payments.ring_size is not None,
            priority=self.payments.priority,
            unlock_time=self.payments.unlock_time,
        )

    def build(self, candidates: Iterable[PayoutCandidate]) -> List[TransferBatch]:
        batches: List[TransferBatch] = []
        current: Optional[TransferBatch] = None
        max_amount = self.payments.max_transaction_amount

        for candidate in candidates:
            # Payment ids are transaction scoped: such a destination travels alone.
            if candidate.with_payment_id and current is not None and current.destinations:
                batches.append(current)
                current = None
            if current is None:
                current = self._new_batch()

            amount = candidate.amount
            if max_amount and amount + current.total_amount > max_amount:
                amount = max_amount - current.total_amount
                logger.info(
                    "[%s] Capping payout from %s to %s to fit max transaction amount",
                    candidate.worker_identity,
                    candidate.amount,
                    amount,
                )
            if amount <= 0:
                continue

            current.destinations.append(Destination(address=candidate.resolved_address, amount=amount))
            if candidate.payment_id:
                current.payment_id = candidate.payment_id
            current.worker_identities.append(candidate.worker_identity)
            current.debit_ops.extend(self._debit_ops(candidate.worker_identity, amount))

            if self.payments.dynamic_transfer_fee:
                current.fee = self.payments.transfer_fee * current.destination_count

            if (
                current.destination_count >= self.payments.max_addresses
                or (max_amount and current.total_amount >= max_amount)
                or candidate.with_payment_id
            ):
                batches.append(current)
                current = None

        if current is not None and current.destinations:
            batches.append(current)
        return batches

    def _debit_ops(self, worker_identity: str, amount: int) -> List[StoreOp]:
        key = worker_key(self.settings.coin, worker_identity)
        ops = [StoreOp.hincrby(key, "balance", -amount)]
        if self.payments.miner_pays_fee:
            ops.append(StoreOp.hincrby(key, "balance", -self.payments.transfer_fee))
        ops.append(StoreOp.hincrby(key, "paid", amount))
        return ops
