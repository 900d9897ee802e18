"""CLI entrypoint for the pool payout processor."""
from __future__ import annotations

import logging
import sys
import threading

from pydantic import ValidationError

from .api import create_app, run_api
from .chain_state import ChainStateResolver
from .config import load_settings
from .notifications import build_notifier
from .payout_store import PendingSettlementStore, SettlementIntentError
from .processor import PayoutProcessor
from .rpc import build_daemon_client, build_wallet_adapter
from .store import JsonKeyValueStore


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
        stream=sys.stdout,
    )


def main() -> None:
    configure_logging()
    logger = logging.getLogger(__name__)

    try:
        settings = load_settings()
    except ValidationError as exc:
        logger.error("Invalid payout configuration: %s", exc)
        raise SystemExit(2) from exc

    logger.info("Starting payout processor for %s (daemon type %s)", settings.coin, settings.daemon_type)

    store = JsonKeyValueStore(settings.store_path)
    try:
        pending_store = PendingSettlementStore(settings.intents_path)
    except SettlementIntentError as exc:
        logger.error("Refusing to start with unreadable settlement intents: %s", exc)
        raise SystemExit(2) from exc
    resolver = ChainStateResolver(settings)
    if resolver.enabled:
        logger.info("Chain migration handling enabled with thresholds %s", settings.migration.heights)

    processor = PayoutProcessor(
        settings,
        store,
        build_daemon_client(settings),
        build_wallet_adapter(settings),
        notifier=build_notifier(settings),
        pending_store=pending_store,
        resolver=resolver,
    )

    if settings.api_enabled:
        app = create_app(store, settings, processor)
        api_thread = threading.Thread(
            target=run_api,
            name="payouts-api",
            args=(app, settings),
            daemon=True,
        )
        api_thread.start()
        logger.info("HTTP API available at http://%s:%s", settings.api_host, settings.api_port)

    processor.run_forever()


if __name__ == "__main__":
    main()
