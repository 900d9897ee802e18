"""Append-only payment history kept in store sorted sets."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .batching import TransferBatch
from .store import KeyValueStore, StoreOp


@dataclass(frozen=True)
class SettlementRecord:
    tx_hash: str
    total_amount: int
    fee: int
    ring_size: int
    destination_count: int
    timestamp: int

    def member(self) -> str:
        return ":".join(
            str(part)
            for part in (self.tx_hash, self.total_amount, self.fee, self.ring_size, self.destination_count)
        )

    def destination_member(self, amount: int) -> str:
        return ":".join(str(part) for part in (self.tx_hash, amount, self.fee, self.ring_size))


class PaymentLedger:
    def __init__(self, store: KeyValueStore, coin: str, payment_id_separator: str = "+") -> None:
        self.store = store
        self.coin = coin
        self.payment_id_separator = payment_id_separator

    @property
    def all_key(self) -> str:
        return f"{self.coin}:payments:all"

    def address_key(self, address: str) -> str:
        return f"{self.coin}:payments:{address}"

    def ledger_address(self, address: str, payment_id: Optional[str]) -> str:
        if payment_id:
            return f"{address}{self.payment_id_separator}{payment_id}"
        return address

    def record_ops(self, record: SettlementRecord, batch: TransferBatch) -> List[StoreOp]:
        ops = [StoreOp.zadd(self.all_key, record.timestamp, record.member())]
        for destination in batch.destinations:
            address = self.ledger_address(destination.address, batch.payment_id)
            ops.append(
                StoreOp.zadd(
                    self.address_key(address),
                    record.timestamp,
                    record.destination_member(destination.amount),
                )
            )
        return ops

    def history(self, address: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        key = self.address_key(address) if address else self.all_key
        entries: List[Dict[str, Any]] = []
        for member, score in self.store.zrevrange(key, 0, max(limit, 1) - 1):
            parts = member.split(":")
            if len(parts) < 4:
                continue
            try:
                entry: Dict[str, Any] = {
                    "tx_hash": parts[0],
                    "amount": int(parts[1]),
                    "fee": int(parts[2]),
                    "ring_size": int(parts[3]),
                    "timestamp": int(score),
                }
                if len(parts) > 4:
                    entry["destination_count"] = int(parts[4])
            except ValueError:
                continue
            entries.append(entry)
        return entries
