"""JSON-backed key-value store with hash and sorted-set records.

The file is re-read on every access so balances credited by other pool
processes are visible, and every write replaces the file atomically.
"""
from __future__ import annotations

import fnmatch
import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple


class StoreError(RuntimeError):
    pass


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


@dataclass(frozen=True)
class StoreOp:
    command: str
    key: str
    args: Tuple[Any, ...]

    @classmethod
    def hincrby(cls, key: str, field: str, amount: int) -> "StoreOp":
        return cls("hincrby", key, (field, int(amount)))

    @classmethod
    def hset(cls, key: str, field: str, value: Any) -> "StoreOp":
        return cls("hset", key, (field, value))

    @classmethod
    def zadd(cls, key: str, score: float, member: str) -> "StoreOp":
        return cls("zadd", key, (score, member))


class KeyValueStore(Protocol):
    def keys(self, pattern: str) -> List[str]: ...

    def hgetall(self, key: str) -> Dict[str, str]: ...

    def hgetall_many(self, keys: Sequence[str]) -> List[Dict[str, str]]: ...

    def zrevrange(self, key: str, start: int, stop: int) -> List[Tuple[str, float]]: ...

    def execute(self, ops: Sequence[StoreOp]) -> None: ...


def _empty_state() -> Dict[str, Dict[str, Any]]:
    return {"hashes": {}, "zsets": {}}


class JsonKeyValueStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.RLock()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return _empty_state()
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreReadError(f"Unable to read store {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise StoreReadError(f"Store {self.path} is not a JSON object")
        state = _empty_state()
        hashes = raw.get("hashes")
        zsets = raw.get("zsets")
        if isinstance(hashes, dict):
            state["hashes"] = {key: dict(value) for key, value in hashes.items() if isinstance(value, dict)}
        if isinstance(zsets, dict):
            state["zsets"] = {key: dict(value) for key, value in zsets.items() if isinstance(value, dict)}
        return state

    def _persist(self, state: Dict[str, Dict[str, Any]]) -> None:
        tmp_path = self.path.with_suffix(".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(state, handle, indent=2, sort_keys=True)
        tmp_path.replace(self.path)

    def keys(self, pattern: str) -> List[str]:
        with self._lock:
            state = self._load()
        names = set(state["hashes"]) | set(state["zsets"])
        return sorted(name for name in names if fnmatch.fnmatchcase(name, pattern))

    def hget(self, key: str, field: str) -> Optional[str]:
        return self.hgetall(key).get(field)

    def hgetall(self, key: str) -> Dict[str, str]:
        with self._lock:
            state = self._load()
        return dict(state["hashes"].get(key, {}))

    def hgetall_many(self, keys: Sequence[str]) -> List[Dict[str, str]]:
        """Read several hashes from a single snapshot of the file."""
        with self._lock:
            state = self._load()
        return [dict(state["hashes"].get(key, {})) for key in keys]

    def zrevrange(self, key: str, start: int, stop: int) -> List[Tuple[str, float]]:
        """Members by descending score; `stop` is inclusive, -1 means the end."""
        with self._lock:
            state = self._load()
        members = sorted(state["zsets"].get(key, {}).items(), key=lambda item: (item[1], item[0]), reverse=True)
        end = None if stop == -1 else stop + 1
        return [(member, float(score)) for member, score in members[start:end]]

    def zcard(self, key: str) -> int:
        with self._lock:
            state = self._load()
        return len(state["zsets"].get(key, {}))

    def execute(self, ops: Sequence[StoreOp]) -> None:
        """Apply all operations or none of them."""
        with self._lock:
            try:
                state = self._load()
                for op in ops:
                    _apply(state, op)
                self._persist(state)
            except StoreError as exc:
                raise StoreWriteError(str(exc)) from exc
            except (OSError, TypeError, ValueError) as exc:
                raise StoreWriteError(f"Store write failed: {exc}") from exc


def _apply(state: Dict[str, Dict[str, Any]], op: StoreOp) -> None:
    if op.command == "hincrby":
        field, amount = op.args
        record = state["hashes"].setdefault(op.key, {})
        current = int(record.get(field) or 0)
        record[field] = str(current + int(amount))
    elif op.command == "hset":
        field, value = op.args
        state["hashes"].setdefault(op.key, {})[field] = str(value)
    elif op.command == "zadd":
        score, member = op.args
        state["zsets"].setdefault(op.key, {})[str(member)] = float(score)
    else:
        raise StoreWriteError(f"Unsupported store command {op.command}")


__all__ = [
    "JsonKeyValueStore",
    "KeyValueStore",
    "StoreError",
    "StoreOp",
    "StoreReadError",
    "StoreWriteError",
]
