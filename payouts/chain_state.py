"""Height-gated migration state: payout phase, recipient address and asset symbol.

Every other component consumes the phase/recipient/asset computed here and
never compares raw heights against the migration thresholds itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .addresses import AddressCodec
from .config import PayoutSettings
from .identities import parse_identity

logger = logging.getLogger(__name__)


class ChainPhase(str, Enum):
    DISABLED = "disabled"
    NORMAL = "normal"
    PAYOUT_BLACKOUT = "payout_blackout"
    PAYOUT_RESUME = "payout_resume"
    DUAL_REQUIRED = "dual_required"
    CARROT_PAYOUTS = "carrot_payouts"

    @property
    def rank(self) -> int:
        return list(ChainPhase).index(self)

    @property
    def blocks_payouts(self) -> bool:
        return self is ChainPhase.PAYOUT_BLACKOUT


# Highest threshold first; the first one reached wins.
_THRESHOLDS = (
    ("carrot", ChainPhase.CARROT_PAYOUTS),
    ("require_dual_login", ChainPhase.DUAL_REQUIRED),
    ("audit_complete", ChainPhase.PAYOUT_RESUME),
    ("audit_phase1", ChainPhase.PAYOUT_BLACKOUT),
)


@dataclass(frozen=True)
class AssetOverrides:
    source_asset: str
    dest_asset: str
    tx_type: int


@dataclass(frozen=True)
class DualAddress:
    cryptonote: str
    carrot: str
    original: str


@dataclass(frozen=True)
class Recipient:
    address: str
    payment_id: Optional[str] = None
    asset: Optional[str] = None


class ChainStateResolver:
    def __init__(self, settings: PayoutSettings, codec: Optional[AddressCodec] = None) -> None:
        self.settings = settings
        self.migration = settings.migration
        self.codec = codec or AddressCodec.from_settings(settings)
        self.enabled = self._migration_usable()

    def _migration_usable(self) -> bool:
        if not self.migration.enabled:
            return False
        heights = self.migration.heights
        configured = [
            (name, getattr(heights, name))
            for name in ("audit_phase1", "audit_complete", "require_dual_login", "carrot")
            if getattr(heights, name) is not None
        ]
        if not configured:
            logger.warning("Migration enabled without any height thresholds; treating migration as disabled")
            return False
        for (prev_name, prev_height), (name, height) in zip(configured, configured[1:]):
            if height < prev_height:
                logger.warning(
                    "Migration threshold %s=%s is below %s=%s; treating migration as disabled",
                    name,
                    height,
                    prev_name,
                    prev_height,
                )
                return False
        return True

    def resolve_phase(self, height: Optional[int]) -> ChainPhase:
        if not self.enabled or not height:
            return ChainPhase.DISABLED
        heights = self.migration.heights
        for name, phase in _THRESHOLDS:
            threshold = getattr(heights, name)
            if threshold is not None and height >= threshold:
                return phase
        return ChainPhase.NORMAL

    def resolve_asset(self, height: Optional[int]) -> Optional[str]:
        """Asset symbol by height alone; None when the migration is off."""
        if not self.enabled:
            return None
        transition = self.migration.asset_transition_height
        if transition is None:
            transition = self.migration.heights.audit_phase1
        if transition is None or height is None or height < transition:
            return self.migration.legacy_symbol
        return self.migration.successor_symbol

    def asset_overrides(self, height: Optional[int]) -> Optional[AssetOverrides]:
        symbol = self.resolve_asset(height)
        if symbol is None:
            return None
        return AssetOverrides(source_asset=symbol, dest_asset=symbol, tx_type=self.migration.tx_type)

    def parse_dual_address(self, worker_identity: str) -> Optional[DualAddress]:
        if not self.enabled:
            return None
        parts = worker_identity.split(self.settings.dual_address_separator)
        if len(parts) < 2:
            return None
        cryptonote, carrot = parts[0], parts[1]
        if not self.codec.matches(cryptonote, self.migration.cryptonote_prefixes):
            return None
        if not self.codec.matches(carrot, self.migration.carrot_prefixes):
            return None
        return DualAddress(cryptonote=cryptonote, carrot=carrot, original=worker_identity)

    def resolve_recipient(
        self,
        phase: ChainPhase,
        worker_identity: str,
        height: Optional[int] = None,
    ) -> Recipient:
        asset = self.resolve_asset(height) if height is not None else None
        if phase in (ChainPhase.DUAL_REQUIRED, ChainPhase.CARROT_PAYOUTS):
            dual = self.parse_dual_address(worker_identity)
            if dual is not None:
                if phase is ChainPhase.CARROT_PAYOUTS:
                    logger.info("Sending payment to carrot address %s", dual.carrot)
                    return Recipient(address=dual.carrot, asset=asset)
                return Recipient(address=dual.cryptonote, asset=asset)
        address, payment_id = parse_identity(worker_identity, self.settings.payment_id.address_separator)
        return Recipient(address=address, payment_id=payment_id, asset=asset)

    def pool_address(self, height: Optional[int]) -> Optional[str]:
        if self.resolve_phase(height) is ChainPhase.CARROT_PAYOUTS and self.migration.carrot_pool_address:
            return self.migration.carrot_pool_address
        return self.settings.pool_address

    def is_integrated(self, address: str) -> bool:
        """Integrated in the pool's own family or in either migration family."""
        if self.codec.is_integrated(address):
            return True
        if not self.enabled:
            return False
        prefix = self.codec.prefix(address)
        if prefix is None:
            return False
        return any(
            prefixes is not None and prefixes.integrated == prefix
            for prefixes in (self.migration.cryptonote_prefixes, self.migration.carrot_prefixes)
        )

    @property
    def validates_addresses(self) -> bool:
        return self.enabled or self.codec.public is not None

    def validate_worker_address(self, address: str) -> bool:
        if self.enabled:
            return self.codec.matches(address, self.migration.cryptonote_prefixes) or self.codec.matches(
                address, self.migration.carrot_prefixes
            )
        return self.codec.is_valid(address)
