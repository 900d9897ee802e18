"""Reads worker balances and payout levels from the store."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .store import KeyValueStore, StoreError, StoreReadError


@dataclass(frozen=True)
class WorkerBalance:
    worker_identity: str
    balance: int
    min_payout_level: Optional[int] = None


def worker_key(coin: str, worker_identity: str) -> str:
    return f"{coin}:workers:{worker_identity}"


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class BalanceSource:
    def __init__(self, store: KeyValueStore, coin: str) -> None:
        self.store = store
        self.coin = coin

    def fetch(self) -> List[WorkerBalance]:
        prefix = worker_key(self.coin, "")
        try:
            keys = sorted(self.store.keys(prefix + "*"))
            records = self.store.hgetall_many(keys)
        except StoreError as exc:
            raise StoreReadError(f"Error getting worker balances: {exc}") from exc

        balances: List[WorkerBalance] = []
        for key, record in zip(keys, records):
            worker_identity = key[len(prefix) :]
            if not worker_identity:
                continue
            balances.append(
                WorkerBalance(
                    worker_identity=worker_identity,
                    balance=_parse_int(record.get("balance")) or 0,
                    min_payout_level=_parse_int(record.get("minPayoutLevel")) or None,
                )
            )
        return balances
