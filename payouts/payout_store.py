"""Persistence helpers for settlement intents.

An intent is written before a batch goes to the wallet and removed once the
debit and history write has landed (or the wallet rejected the batch). Any
intent still present afterwards means the outcome of a send is unknown or its
bookkeeping failed; workers named in it are held out of later cycles until an
operator reconciles and deletes the record.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Set, Tuple

STATUS_PENDING = "pending"
STATUS_SUBMITTED = "submitted"
STATUS_RECONCILE_REQUIRED = "reconcile_required"


class SettlementIntentError(RuntimeError):
    pass


class PendingSettlementStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return
        # An unreadable file may hide reconcile holds; refuse to start empty.
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise SettlementIntentError(f"Unable to read settlement intents {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise SettlementIntentError(f"Settlement intents {self.path} is not a JSON object")
        self._records = {str(key): dict(value) for key, value in data.items() if isinstance(value, dict)}

    def _persist(self, records: Dict[str, Dict[str, Any]]) -> None:
        tmp = self.path.with_suffix(".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(records, handle, indent=2, sort_keys=True)
        tmp.replace(self.path)

    def get(self, batch_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(batch_id)
            return dict(record) if isinstance(record, dict) else None

    def upsert(self, batch_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Merge `payload` into the intent; memory only changes once the file write lands."""
        with self._lock:
            record = dict(self._records.get(batch_id) or {})
            record.update(payload)
            record.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            record["updated_at"] = datetime.now(timezone.utc).isoformat()
            records = dict(self._records)
            records[batch_id] = record
            self._persist(records)
            self._records = records
        return dict(record)

    def delete(self, batch_id: str) -> None:
        with self._lock:
            if batch_id not in self._records:
                return
            records = {key: value for key, value in self._records.items() if key != batch_id}
            self._persist(records)
            self._records = records

    def iter_with_ids(self) -> Iterable[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            return [(key, dict(value)) for key, value in self._records.items()]

    def held_workers(self) -> Set[str]:
        held: Set[str] = set()
        with self._lock:
            for record in self._records.values():
                workers = record.get("workers")
                if isinstance(workers, list):
                    held.update(str(worker) for worker in workers)
        return held
