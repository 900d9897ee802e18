"""Decides which workers are due a payout and for how much."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .balances import WorkerBalance
from .chain_state import ChainPhase, ChainStateResolver
from .coins import readable_coins
from .config import PayoutSettings
from .identities import strip_fixed_diff

logger = logging.getLogger(__name__)

NO_ELIGIBLE_WORKERS = "no_eligible_workers"
PAYOUT_BLACKOUT = "payout_blackout"


@dataclass(frozen=True)
class PayoutCandidate:
    worker_identity: str
    amount: int
    resolved_address: str
    payment_id: Optional[str] = None
    with_payment_id: bool = False


@dataclass(frozen=True)
class CandidateSet:
    candidates: Tuple[PayoutCandidate, ...]
    skipped_reason: Optional[str] = None


class PayoutCalculator:
    def __init__(self, settings: PayoutSettings, resolver: ChainStateResolver) -> None:
        self.settings = settings
        self.payments = settings.payments
        self.resolver = resolver

    def effective_min_payout(self, level: Optional[int]) -> int:
        minimum = self.payments.min_payment
        payout_level = level or minimum
        if payout_level < minimum:
            payout_level = minimum
        if self.payments.max_payment and payout_level > self.payments.max_payment:
            payout_level = self.payments.max_payment
        return payout_level

    def payout_amount(self, balance: int) -> int:
        denomination = self.payments.denomination
        amount = balance - (balance % denomination)
        cap = self.payments.max_payout_amount
        if cap:
            amount = min(amount, cap - (cap % denomination))
        if self.payments.miner_pays_fee:
            amount -= self.payments.transfer_fee
        return amount

    def compute_candidates(
        self,
        balances: Iterable[WorkerBalance],
        phase: ChainPhase = ChainPhase.DISABLED,
    ) -> CandidateSet:
        if phase.blocks_payouts:
            logger.info("Payout blackout active; no payout candidates produced")
            return CandidateSet(candidates=(), skipped_reason=PAYOUT_BLACKOUT)

        default_level = self.payments.min_payment
        candidates: List[PayoutCandidate] = []
        for worker in balances:
            minimum = self.effective_min_payout(worker.min_payout_level)
            if minimum != default_level:
                logger.info(
                    "Using payout level of %s for %s (default: %s)",
                    readable_coins(self.settings, minimum),
                    worker.worker_identity,
                    readable_coins(self.settings, default_level),
                )
            if worker.balance < minimum:
                continue
            amount = self.payout_amount(worker.balance)
            if amount <= 0:
                logger.debug("[%s] Payout amount %s not positive after fees; skipping", worker.worker_identity, amount)
                continue
            candidate = self._build_candidate(worker.worker_identity, amount, phase)
            if self.resolver.validates_addresses and not self.resolver.validate_worker_address(
                candidate.resolved_address
            ):
                logger.warning(
                    "[%s] Payout address %s has an unknown prefix; skipping",
                    worker.worker_identity,
                    candidate.resolved_address,
                )
                continue
            candidates.append(candidate)

        if not candidates:
            logger.info("No workers' balances reached the minimum payment threshold")
            return CandidateSet(candidates=(), skipped_reason=NO_ELIGIBLE_WORKERS)
        return CandidateSet(candidates=tuple(candidates))

    def _build_candidate(self, worker_identity: str, amount: int, phase: ChainPhase) -> PayoutCandidate:
        recipient = self.resolver.resolve_recipient(phase, worker_identity)
        address = recipient.address
        if self.settings.fixed_diff.enabled:
            address = strip_fixed_diff(address, self.settings.fixed_diff.address_separator)
        with_payment_id = bool(recipient.payment_id) or self.resolver.is_integrated(address)
        return PayoutCandidate(
            worker_identity=worker_identity,
            amount=amount,
            resolved_address=address,
            payment_id=recipient.payment_id,
            with_payment_id=with_payment_id,
        )
