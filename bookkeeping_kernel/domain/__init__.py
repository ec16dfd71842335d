"""
Pure domain layer.

Values and rules with NO dependencies on the ORM, the database or the
system clock (SystemClock aside):

- voucher types and payment modes
- financial year arithmetic
- account classification rules
- posting DTOs
- the journal validator
"""

from bookkeeping_kernel.domain.accounts import (
    AccountClass,
    GoldenRuleKind,
    NormalBalance,
    classification_for_code,
    classification_from_hint,
    normal_balance_for,
)
from bookkeeping_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bookkeeping_kernel.domain.dtos import (
    BankTransactionInput,
    JournalStatus,
    LedgerRowStatus,
    LineSide,
    MatchType,
    MovementStatus,
    PostedEntry,
    PostedLine,
    PostingRequest,
    RecordStatus,
    RequestLine,
    ValidatedEntry,
    ValidatedLine,
    ValidationFailure,
    ValidationResult,
)
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.journal_validator import (
    DEFAULT_TOLERANCE,
    JournalValidator,
    ValidationReason,
)
from bookkeeping_kernel.domain.voucher_types import PaymentMode, VoucherType

__all__ = [
    "AccountClass",
    "BankTransactionInput",
    "Clock",
    "DEFAULT_TOLERANCE",
    "DeterministicClock",
    "FinancialYear",
    "GoldenRuleKind",
    "JournalStatus",
    "JournalValidator",
    "LedgerRowStatus",
    "LineSide",
    "MatchType",
    "MovementStatus",
    "NormalBalance",
    "PaymentMode",
    "PostedEntry",
    "PostedLine",
    "PostingRequest",
    "RecordStatus",
    "RequestLine",
    "SystemClock",
    "ValidatedEntry",
    "ValidatedLine",
    "ValidationFailure",
    "ValidationReason",
    "ValidationResult",
    "VoucherType",
    "classification_for_code",
    "classification_from_hint",
    "normal_balance_for",
]
