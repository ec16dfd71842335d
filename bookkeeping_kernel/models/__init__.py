"""ORM models for the bookkeeping kernel."""

from bookkeeping_kernel.models.account import Account, name_key_for
from bookkeeping_kernel.models.financial_year import FinancialYearClose
from bookkeeping_kernel.models.journal import JournalEntry, JournalLine
from bookkeeping_kernel.models.ledger import LedgerEntry
from bookkeeping_kernel.models.reconciliation import (
    BankTransaction,
    MatchType,
    ReconciliationRecord,
    RecordStatus,
)
from bookkeeping_kernel.models.voucher_counter import VoucherCounter

__all__ = [
    "Account",
    "BankTransaction",
    "FinancialYearClose",
    "JournalEntry",
    "JournalLine",
    "LedgerEntry",
    "MatchType",
    "ReconciliationRecord",
    "RecordStatus",
    "VoucherCounter",
    "name_key_for",
]
