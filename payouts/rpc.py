"""JSON-RPC clients for the coin daemon and the pool wallet."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from .batching import TransferBatch
from .config import PayoutSettings

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    pass


class HeightQueryError(RpcError):
    pass


class SubmissionError(RpcError):
    pass


class UnconfirmedSubmissionError(SubmissionError):
    """The wallet answered without a usable tx hash; funds may have moved."""


def sanitize_tx_hash(raw: str) -> str:
    return raw.replace("<", "").replace(">", "").strip()


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        payload = {"jsonrpc": "2.0", "id": "0", "method": method, "params": params or {}}
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout_seconds)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as exc:
            raise RpcError(f"{method} request to {self.url} failed: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"{method} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise RpcError(f"{method} returned invalid response")
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise RpcError(f"{method} failed: {message or error}")
        result = body.get("result")
        if not isinstance(result, dict):
            raise RpcError(f"{method} returned invalid result")
        return result


class DaemonClient:
    def __init__(self, rpc: JsonRpcClient) -> None:
        self.rpc = rpc

    def get_block_height(self) -> int:
        """Canonical chain height; `getblockcount` reports height + 1."""
        try:
            result = self.rpc.call("getblockcount")
        except RpcError as exc:
            raise HeightQueryError(str(exc)) from exc
        try:
            count = int(result["count"])
        except (KeyError, TypeError, ValueError) as exc:
            raise HeightQueryError(f"getblockcount returned no usable count: {result}") from exc
        return count - 1


class WalletAdapter:
    """Uniform `submit_transfer(batch) -> tx_hash` over a wallet RPC family."""

    command = "transfer"
    hash_field = "tx_hash"

    def __init__(self, rpc: JsonRpcClient) -> None:
        self.rpc = rpc

    def build_request(self, batch: TransferBatch) -> Dict[str, Any]:
        raise NotImplementedError

    def submit_transfer(self, batch: TransferBatch) -> str:
        request = self.build_request(batch)
        try:
            result = self.rpc.call(self.command, request)
        except RpcError as exc:
            raise SubmissionError(str(exc)) from exc
        raw_hash = result.get(self.hash_field)
        tx_hash = sanitize_tx_hash(raw_hash) if isinstance(raw_hash, str) else ""
        if not tx_hash:
            raise UnconfirmedSubmissionError(f"{self.command} response missing {self.hash_field}: {result}")
        logger.info("Payments sent via wallet daemon %s", result)
        return tx_hash


class DefaultWalletAdapter(WalletAdapter):
    def build_request(self, batch: TransferBatch) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "destinations": [destination.as_rpc() for destination in batch.destinations],
            "fee": batch.fee,
            "priority": batch.priority,
            "unlock_time": batch.unlock_time,
        }
        if batch.use_ring_size:
            request["ring_size"] = batch.ring_size
        else:
            request["mixin"] = batch.ring_size
        if batch.payment_id:
            request["payment_id"] = batch.payment_id
        if batch.asset_overrides is not None:
            request["source_asset"] = batch.asset_overrides.source_asset
            request["dest_asset"] = batch.asset_overrides.dest_asset
            request["tx_type"] = batch.asset_overrides.tx_type
        return request


class BytecoinWalletAdapter(WalletAdapter):
    command = "sendTransaction"
    hash_field = "transactionHash"

    def build_request(self, batch: TransferBatch) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "transfers": [{"amount": d.amount, "address": d.address} for d in batch.destinations],
            "fee": batch.fee,
            "anonymity": batch.ring_size,
            "unlockTime": batch.unlock_time,
        }
        if batch.payment_id:
            request["paymentId"] = batch.payment_id
        return request


def build_daemon_client(settings: PayoutSettings, session: Optional[requests.Session] = None) -> DaemonClient:
    return DaemonClient(JsonRpcClient(settings.daemon_rpc_url, settings.rpc_timeout_seconds, session))


def build_wallet_adapter(settings: PayoutSettings, session: Optional[requests.Session] = None) -> WalletAdapter:
    rpc = JsonRpcClient(settings.wallet_rpc_url, settings.rpc_timeout_seconds, session)
    if settings.daemon_type == "bytecoin":
        return BytecoinWalletAdapter(rpc)
    return DefaultWalletAdapter(rpc)
