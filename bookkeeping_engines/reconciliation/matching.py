"""
Module: bookkeeping_engines.reconciliation.matching
Responsibility:
    Pure tier cascade that pairs one bank transaction with at most one
    pending ledger movement: EXACT -> FUZZY -> REFERENCE -> PATTERN, and a
    NONE result (needs review) when every tier declines.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ReconciliationService
    supplies the candidates and persists the outcome.

Invariants enforced:
    - Tiers run in strict priority order; the first accepted tier wins.
    - A bank amount >= 0 (money in) is compared with debit movements on
      cash/bank accounts, a negative amount with credit movements.
      Absolute values are compared.
    - Only ACTIVE, PENDING movements are candidates.
    - Ties are broken by the ledger order (entry_date, voucher_type,
      voucher_sequence, line_index), so the result is deterministic.
    - Confidence lies in [0, 1] and is stored to 4 decimal places; the
      acceptance thresholds are compared against the unrounded value.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from bookkeeping_engines.reconciliation.keywords import extract_keywords, keyword_overlap
from bookkeeping_engines.tracer import traced_engine
from bookkeeping_kernel.domain.dtos import (
    BankTransactionInput,
    LedgerRowStatus,
    MatchType,
    MovementStatus,
)
from bookkeeping_kernel.selectors.ledger_selector import LedgerRow

ZERO = Decimal("0")
ONE = Decimal("1")

NO_CANDIDATES_REASON = "No pending cash or bank movement on the matching side"
NO_MATCH_REASON = "No ledger movement matched by amount, date, reference or description"


@dataclass(frozen=True)
class MatchingThresholds:
    """Tunable limits of the cascade; defaults follow the reconciliation rules."""

    fuzzy_amount_pct: Decimal = Decimal("0.01")
    fuzzy_days: int = 3
    fuzzy_min_confidence: Decimal = Decimal("0.85")
    reference_confidence: Decimal = Decimal("0.95")
    pattern_window_days: int = 7
    pattern_min_score: Decimal = Decimal("0.80")
    pattern_keyword_weight: Decimal = Decimal("0.6")
    pattern_amount_weight: Decimal = Decimal("0.4")


DEFAULT_THRESHOLDS = MatchingThresholds()


@dataclass(frozen=True)
class MatchResult:
    """Outcome of the cascade for one bank transaction."""

    match_type: MatchType
    row: LedgerRow | None
    confidence: Decimal
    amount_difference: Decimal
    reason: str | None = None

    @property
    def matched(self) -> bool:
        return self.row is not None

    @classmethod
    def accept(
        cls, match_type: MatchType, row: LedgerRow, confidence: Decimal, amount_difference: Decimal
    ) -> MatchResult:
        return cls(
            match_type=match_type,
            row=row,
            confidence=_clamp(confidence).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
            amount_difference=amount_difference,
        )

    @classmethod
    def needs_review(cls, reason: str) -> MatchResult:
        return cls(
            match_type=MatchType.NONE,
            row=None,
            confidence=ZERO,
            amount_difference=ZERO,
            reason=reason,
        )


def _clamp(value: Decimal) -> Decimal:
    return max(ZERO, min(ONE, value))


def _date_diff(txn: BankTransactionInput, row: LedgerRow) -> int:
    return abs((row.entry_date - txn.txn_date).days)


def _amount_diff(txn: BankTransactionInput, row: LedgerRow) -> Decimal:
    return abs(row.amount - abs(txn.amount))


def eligible_candidates(
    transaction: BankTransactionInput, rows: Iterable[LedgerRow]
) -> list[LedgerRow]:
    """Pending, active movements on the side the bank amount's sign selects."""
    money_in = transaction.amount >= 0
    eligible = [
        r
        for r in rows
        if r.status == LedgerRowStatus.ACTIVE
        and r.reconciliation_status == MovementStatus.PENDING
        and (r.debit > 0 if money_in else r.credit > 0)
    ]
    return sorted(eligible, key=lambda r: (r.sort_key, r.account_code))


def find_exact(
    transaction: BankTransactionInput, candidates: Sequence[LedgerRow]
) -> MatchResult | None:
    target = abs(transaction.amount)
    for row in candidates:
        if row.amount == target and row.entry_date == transaction.txn_date:
            return MatchResult.accept(MatchType.EXACT, row, ONE, ZERO)
    return None


def find_fuzzy(
    transaction: BankTransactionInput,
    candidates: Sequence[LedgerRow],
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> MatchResult | None:
    target = abs(transaction.amount)
    if target == 0:
        return None
    window = target * thresholds.fuzzy_amount_pct
    best: tuple[Decimal, int, LedgerRow] | None = None
    for row in candidates:
        amount_diff = _amount_diff(transaction, row)
        date_diff = _date_diff(transaction, row)
        if amount_diff > window or date_diff > thresholds.fuzzy_days:
            continue
        # Candidates arrive in ledger order, so strict < keeps the earliest tie.
        if best is None or (amount_diff, date_diff) < (best[0], best[1]):
            best = (amount_diff, date_diff, row)
    if best is None:
        return None
    amount_diff, _, row = best
    confidence = ONE - amount_diff / target
    if confidence <= thresholds.fuzzy_min_confidence:
        return None
    return MatchResult.accept(MatchType.FUZZY, row, confidence, amount_diff)


def _normalize_reference(value: str | None) -> str:
    return (value or "").strip().casefold()


def find_reference(
    transaction: BankTransactionInput,
    candidates: Sequence[LedgerRow],
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> MatchResult | None:
    reference = _normalize_reference(transaction.reference_number)
    if not reference:
        return None
    matching = [r for r in candidates if _normalize_reference(r.reference) == reference]
    if not matching:
        return None
    row = min(matching, key=lambda r: (_date_diff(transaction, r), r.sort_key))
    return MatchResult.accept(
        MatchType.REFERENCE, row, thresholds.reference_confidence, _amount_diff(transaction, row)
    )


def pattern_score(
    keywords: tuple[str, ...],
    transaction: BankTransactionInput,
    row: LedgerRow,
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> Decimal:
    """0.6 x keyword share found in the narration + 0.4 x amount closeness."""
    if not keywords:
        return ZERO
    text_score = Decimal(keyword_overlap(keywords, row.narration)) / Decimal(len(keywords))
    target = abs(transaction.amount)
    amount_score = (
        max(ZERO, ONE - _amount_diff(transaction, row) / target) if target != 0 else ZERO
    )
    return (
        thresholds.pattern_keyword_weight * text_score
        + thresholds.pattern_amount_weight * amount_score
    )


def find_pattern(
    transaction: BankTransactionInput,
    candidates: Sequence[LedgerRow],
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> MatchResult | None:
    keywords = extract_keywords(transaction.description)
    if not keywords:
        return None
    best_score = ZERO
    best_row: LedgerRow | None = None
    for row in candidates:
        if _date_diff(transaction, row) > thresholds.pattern_window_days:
            continue
        score = pattern_score(keywords, transaction, row, thresholds)
        if score > best_score:
            best_score, best_row = score, row
    if best_row is None or best_score <= thresholds.pattern_min_score:
        return None
    return MatchResult.accept(
        MatchType.PATTERN, best_row, best_score, _amount_diff(transaction, best_row)
    )


@traced_engine(
    "reconciliation_matching", "1.0", fingerprint_fields=("transaction", "thresholds")
)
def match_transaction(
    *,
    transaction: BankTransactionInput,
    rows: Sequence[LedgerRow],
    thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
) -> MatchResult:
    """
    Run the cascade for one bank transaction.

    Args:
        transaction: The bank statement line.
        rows: Ledger movements on cash/bank accounts; ineligible ones are
            filtered out here.
        thresholds: Tier limits.

    Returns:
        The first accepted tier's MatchResult, or a NONE result with a
        reason for the review queue.
    """
    candidates = eligible_candidates(transaction, rows)
    if not candidates:
        return MatchResult.needs_review(NO_CANDIDATES_REASON)

    for tier in (
        lambda: find_exact(transaction, candidates),
        lambda: find_fuzzy(transaction, candidates, thresholds),
        lambda: find_reference(transaction, candidates, thresholds),
        lambda: find_pattern(transaction, candidates, thresholds),
    ):
        result = tier()
        if result is not None:
            return result
    return MatchResult.needs_review(NO_MATCH_REASON)
