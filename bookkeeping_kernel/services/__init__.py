"""Kernel services: the write path into the books."""

from bookkeeping_kernel.services.account_registry import AccountRegistry
from bookkeeping_kernel.services.ledger import KeyedLocks, Ledger, LedgerGuard
from bookkeeping_kernel.services.posting_engine import LedgerPostingEngine
from bookkeeping_kernel.services.reversal_service import (
    CorrectionResult,
    ReversalResult,
    ReversalService,
)
from bookkeeping_kernel.services.voucher_numbering import (
    VoucherNumber,
    VoucherNumbering,
    format_voucher_number,
    parse_voucher_number,
)
from bookkeeping_kernel.services.year_close_service import (
    YearCloseService,
    YearCloseSummary,
    closed_financial_years,
)

__all__ = [
    "AccountRegistry",
    "CorrectionResult",
    "KeyedLocks",
    "Ledger",
    "LedgerGuard",
    "LedgerPostingEngine",
    "ReversalResult",
    "ReversalService",
    "VoucherNumber",
    "VoucherNumbering",
    "YearCloseService",
    "YearCloseSummary",
    "closed_financial_years",
    "format_voucher_number",
    "parse_voucher_number",
]
