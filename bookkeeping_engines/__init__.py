"""
Module: bookkeeping_engines
Responsibility:
    Pure calculation layer: derived-book builders and bank reconciliation
    matchers.

Architecture position:
    Engines -- zero I/O.  May import kernel domain values and selector
    DTOs; MUST NOT import kernel services or bookkeeping_services.

Invariants enforced:
    - Engines never read the clock; dates are passed in.
    - Money is Decimal throughout.
    - Identical inputs produce identical outputs.

Audit relevance:
    Every public builder is wrapped by ``@traced_engine`` and emits a
    BOOKKEEPING_ENGINE_TRACE record.
"""

from bookkeeping_engines.books import (
    BalanceSheet,
    CashBook,
    DayBook,
    LedgerView,
    ProfitAndLoss,
    TrialBalance,
    build_balance_sheet,
    build_cash_book,
    build_day_book,
    build_ledger_view,
    build_profit_and_loss,
    build_trial_balance,
)
from bookkeeping_engines.reconciliation import (
    Anomaly,
    MatchingThresholds,
    MatchResult,
    detect_anomalies,
    match_transaction,
)
from bookkeeping_engines.tracer import traced_engine

__all__ = [
    "Anomaly",
    "BalanceSheet",
    "CashBook",
    "DayBook",
    "LedgerView",
    "MatchResult",
    "MatchingThresholds",
    "ProfitAndLoss",
    "TrialBalance",
    "build_balance_sheet",
    "build_cash_book",
    "build_day_book",
    "build_ledger_view",
    "build_profit_and_loss",
    "build_trial_balance",
    "detect_anomalies",
    "match_transaction",
    "traced_engine",
]
