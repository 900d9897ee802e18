"""HTTP API exposing payment history and payout cycle status."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from .balances import worker_key
from .chain_state import ChainStateResolver
from .config import PayoutSettings
from .ledger import PaymentLedger
from .processor import PayoutProcessor
from .store import KeyValueStore, StoreError

logger = logging.getLogger(__name__)


class PaymentEntry(BaseModel):
    tx_hash: str
    amount: int
    fee: int
    ring_size: int
    timestamp: int
    destination_count: Optional[int] = None


class WorkerStats(BaseModel):
    worker_id: str
    balance: int
    paid: int
    min_payout_level: Optional[int]


def _as_int(value: Optional[str]) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0


def create_app(
    store: KeyValueStore,
    settings: PayoutSettings,
    processor: Optional[PayoutProcessor] = None,
) -> FastAPI:
    app = FastAPI(title="Pool Payouts", version="1.0.0", root_path=settings.api_root_path)
    ledger = PaymentLedger(store, settings.coin, settings.payment_id.address_separator)
    resolver = ChainStateResolver(settings)

    @app.get("/health")
    def read_health() -> Dict[str, str]:
        return {"status": "ok", "coin": settings.coin}

    @app.get("/status")
    def read_status() -> Dict[str, Any]:
        report = processor.last_report if processor is not None else None
        height = report.height if report is not None else None
        return {
            "interval_seconds": settings.payments.interval_seconds,
            "pool_address": resolver.pool_address(height),
            "last_cycle": report.as_dict() if report is not None else None,
        }

    @app.get("/payments", response_model=List[PaymentEntry])
    def list_payments(limit: int = Query(default=50, ge=1, le=500)) -> List[Dict[str, Any]]:
        try:
            return ledger.history(limit=limit)
        except StoreError as exc:
            logger.warning("Payment history unavailable: %s", exc)
            raise HTTPException(status_code=503, detail="store unavailable")

    @app.get("/payments/{address}", response_model=List[PaymentEntry])
    def list_address_payments(address: str, limit: int = Query(default=50, ge=1, le=500)) -> List[Dict[str, Any]]:
        try:
            return ledger.history(address=address, limit=limit)
        except StoreError as exc:
            logger.warning("Payment history unavailable for %s: %s", address, exc)
            raise HTTPException(status_code=503, detail="store unavailable")

    @app.get("/workers/{worker_id}", response_model=WorkerStats)
    def read_worker(worker_id: str) -> WorkerStats:
        try:
            record = store.hgetall(worker_key(settings.coin, worker_id))
        except StoreError as exc:
            logger.warning("Worker lookup failed for %s: %s", worker_id, exc)
            raise HTTPException(status_code=503, detail="store unavailable")
        if not record:
            raise HTTPException(status_code=404, detail="worker not found")
        level = _as_int(record.get("minPayoutLevel"))
        return WorkerStats(
            worker_id=worker_id,
            balance=_as_int(record.get("balance")),
            paid=_as_int(record.get("paid")),
            min_payout_level=level or None,
        )

    return app


def run_api(app: FastAPI, settings: PayoutSettings) -> None:
    """Run the FastAPI app using uvicorn."""
    import uvicorn

    config = uvicorn.Config(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    server.install_signal_handlers = False
    server.run()


__all__ = ["create_app", "run_api"]
