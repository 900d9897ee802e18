"""Miner payment notifications (best-effort, never affects settlement)."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

from .coins import readable_coins
from .config import PayoutSettings
from .identities import shorten_address

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def send_payment(self, address: str, amount: int) -> None: ...


class LoggingNotifier:
    def __init__(self, settings: PayoutSettings) -> None:
        self.settings = settings

    def send_payment(self, address: str, amount: int) -> None:
        logger.info("Payment of %s to %s", readable_coins(self.settings, amount), address)


class WebhookNotifier(LoggingNotifier):
    def __init__(
        self,
        settings: PayoutSettings,
        url: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(settings)
        self.url = url
        self._http = session or requests.Session()

    def send_payment(self, address: str, amount: int) -> None:
        super().send_payment(address, amount)
        payload = {
            "event": "payment",
            "address": address,
            "ADDRESS": shorten_address(address),
            "AMOUNT": readable_coins(self.settings, amount),
            "amount": amount,
        }
        try:
            response = self._http.post(self.url, json=payload, timeout=self.settings.notify_timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Payment notification for %s failed: %s", shorten_address(address), exc)


def build_notifier(settings: PayoutSettings) -> Notifier:
    if settings.notify_webhook_url:
        return WebhookNotifier(settings, settings.notify_webhook_url)
    return LoggingNotifier(settings)
