"""
Config -> kernel and engine bridges.

Functions that turn BookkeepingSettings into the runtime objects the
kernel and the reconciliation engine take.  They live in bookkeeping_config
(the producer) because the kernel must NEVER import bookkeeping_config.

Usage:
    from bookkeeping_config import load_settings
    from bookkeeping_config.bridges import build_ledger, matching_thresholds

    settings = load_settings()
    ledger = build_ledger(settings)
    thresholds = matching_thresholds(settings)
"""

from __future__ import annotations

from bookkeeping_config.settings import BookkeepingSettings
from bookkeeping_engines.reconciliation.matching import MatchingThresholds
from bookkeeping_kernel.domain.clock import Clock, SystemClock
from bookkeeping_kernel.services.ledger import Ledger


def build_ledger(settings: BookkeepingSettings, clock: Clock | None = None) -> Ledger:
    """One Ledger per set of books, shared by every service that touches them."""
    return Ledger(
        name=settings.ledger_name,
        clock=clock or SystemClock(),
        tolerance=settings.balance_tolerance,
        currency_symbol=settings.currency_symbol,
        lock_timeout=settings.lock_timeout_seconds,
        numbering_max_retries=settings.numbering_max_retries,
    )


def matching_thresholds(settings: BookkeepingSettings) -> MatchingThresholds:
    recon = settings.reconciliation
    return MatchingThresholds(
        fuzzy_amount_pct=recon.fuzzy_amount_pct,
        fuzzy_days=recon.fuzzy_days,
        fuzzy_min_confidence=recon.fuzzy_min_confidence,
        reference_confidence=recon.reference_confidence,
        pattern_window_days=recon.pattern_window_days,
        pattern_min_score=recon.pattern_min_score,
    )
