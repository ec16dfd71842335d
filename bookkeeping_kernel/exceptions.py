"""
Typed Exception Hierarchy for the Bookkeeping Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers must be able to tell a user mistake (an unbalanced voucher, a date
in a closed year) from a storage failure or a broken invariant without
parsing message text. Every exception therefore:

  1. Has its own class (catch by type, not by message).
  2. Carries a ``code`` class attribute (machine-readable, API-safe).
  3. Stores its context as attributes (survives logging and serialization).

Example:
    try:
        engine.post(validated, actor_id)
    except AccountInactiveError as e:
        notify_user(f"Account {e.account_code} is deactivated")
    except PostingError as e:
        log.error("posting failed", extra={"code": e.code})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BookkeepingError (base)
    |
    +-- ValidationError
    |   +-- JournalValidationError
    |
    +-- AccountError
    |   +-- AccountNotFoundError
    |   +-- AccountInactiveError
    |   +-- InvalidAccountCodeError
    |   +-- DuplicateAccountError
    |
    +-- PostingError
    |   +-- PostingRollbackError
    |
    +-- NumberingError
    |   +-- NumberingConflictError
    |   +-- InvalidVoucherNumberError
    |
    +-- ReversalError
    |   +-- EntryNotFoundError
    |   +-- EntryNotPostedError
    |   +-- EntryAlreadyVoidedError
    |   +-- EntryLockedError
    |
    +-- PeriodError
    |   +-- FinancialYearAlreadyClosedError
    |
    +-- ReconciliationError
    |   +-- BankTransactionNotFoundError
    |   +-- LedgerEntryNotFoundError
    |   +-- MovementAlreadyReconciledError
    |
    +-- ConcurrencyError
    |   +-- LockTimeoutError
    |
    +-- InvariantViolationError
    +-- BooksBlockedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-------------------------------------
Validation      | JOURNAL_VALIDATION_FAILED     | Candidate entry rejected by validator
----------------|-------------------------------|-------------------------------------
Account         | ACCOUNT_NOT_FOUND             | Code does not exist
                | ACCOUNT_INACTIVE              | Account deactivated
                | INVALID_ACCOUNT_CODE          | Leading digit not 1-5
                | DUPLICATE_ACCOUNT             | Code or name already taken
----------------|-------------------------------|-------------------------------------
Posting         | POSTING_ROLLED_BACK           | Storage failure mid-posting
----------------|-------------------------------|-------------------------------------
Numbering       | NUMBERING_CONFLICT            | Counter race not resolved by retries
                | INVALID_VOUCHER_NUMBER        | Voucher number cannot be parsed
----------------|-------------------------------|-------------------------------------
Reversal        | ENTRY_NOT_FOUND               | Journal entry id unknown
                | ENTRY_NOT_POSTED              | Only POSTED entries can be voided
                | ENTRY_ALREADY_VOIDED          | Entry already carries a reversal
                | ENTRY_LOCKED                  | Entry belongs to a closed year
----------------|-------------------------------|-------------------------------------
Period          | FINANCIAL_YEAR_ALREADY_CLOSED | Year closed twice
----------------|-------------------------------|-------------------------------------
Reconciliation  | BANK_TRANSACTION_NOT_FOUND    | Bank transaction id unknown
                | LEDGER_ENTRY_NOT_FOUND        | Ledger movement id unknown
                | MOVEMENT_ALREADY_RECONCILED   | Movement claimed by another txn
----------------|-------------------------------|-------------------------------------
Concurrency     | LOCK_TIMEOUT                  | Keyed lock not acquired in time
----------------|-------------------------------|-------------------------------------
Fatal           | INVARIANT_VIOLATION           | Books do not balance after a write
                | BOOKS_BLOCKED                 | Posting refused after a violation

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Validation errors are the user's to fix; show ``message`` as-is.
2. Posting and numbering errors are retried by the caller.
3. InvariantViolationError is a bug. It is logged at CRITICAL and blocks
   further posting (BooksBlockedError) until an operator resolves it.
4. Reconciliation ambiguity is NOT an error; it is a NEEDS_REVIEW record.
"""


class BookkeepingError(Exception):
    """
    Base exception for all bookkeeping kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BOOKKEEPING_ERROR"


# Validation


class ValidationError(BookkeepingError):
    """Base exception for candidate entries rejected before any state change."""

    code: str = "VALIDATION_ERROR"


class JournalValidationError(ValidationError):
    """
    A candidate journal entry failed one of the ordered validator checks.

    ``reason_code`` names the failed check; ``message`` is written for the
    person who entered the voucher.
    """

    code: str = "JOURNAL_VALIDATION_FAILED"

    def __init__(self, reason_code: str, message: str, line_index: int | None = None):
        self.reason_code = reason_code
        self.message = message
        self.line_index = line_index
        super().__init__(message)


# Accounts


class AccountError(BookkeepingError):
    """Base exception for account registry errors."""

    code: str = "ACCOUNT_ERROR"


class AccountNotFoundError(AccountError):
    """No account exists with the given code."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account not found: {account_code}")


class AccountInactiveError(AccountError):
    """Account is deactivated and cannot receive new postings."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account {account_code} is inactive")


class InvalidAccountCodeError(AccountError):
    """Account code does not start with a known classification digit."""

    code: str = "INVALID_ACCOUNT_CODE"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(
            f"Invalid account code '{account_code}': "
            "leading digit must be 1 (Asset) to 5 (Expense)"
        )


class DuplicateAccountError(AccountError):
    """An account with this code or name already exists."""

    code: str = "DUPLICATE_ACCOUNT"

    def __init__(self, account_code: str, name: str):
        self.account_code = account_code
        self.name = name
        super().__init__(f"Account already exists: {account_code} ({name})")


# Posting


class PostingError(BookkeepingError):
    """Base exception for failures while writing an entry to the ledger."""

    code: str = "POSTING_ERROR"


class PostingRollbackError(PostingError):
    """Storage failed part-way through a posting; every line was rolled back."""

    code: str = "POSTING_ROLLED_BACK"

    def __init__(self, voucher_type: str, reason: str):
        self.voucher_type = voucher_type
        self.reason = reason
        super().__init__(f"Posting of {voucher_type} voucher rolled back: {reason}")


# Numbering


class NumberingError(BookkeepingError):
    """Base exception for voucher numbering errors."""

    code: str = "NUMBERING_ERROR"


class NumberingConflictError(NumberingError):
    """Counter creation kept racing with another writer until retries ran out."""

    code: str = "NUMBERING_CONFLICT"

    def __init__(self, voucher_type: str, financial_year: str, attempts: int):
        self.voucher_type = voucher_type
        self.financial_year = financial_year
        self.attempts = attempts
        super().__init__(
            f"Could not allocate {voucher_type} number for {financial_year} "
            f"after {attempts} attempts"
        )


class InvalidVoucherNumberError(NumberingError):
    """Voucher number does not follow PREFIX-FYCODE-SEQ."""

    code: str = "INVALID_VOUCHER_NUMBER"

    def __init__(self, voucher_number: str):
        self.voucher_number = voucher_number
        super().__init__(f"Invalid voucher number: {voucher_number!r}")


# Reversal / correction


class ReversalError(BookkeepingError):
    """Base exception for void and correction errors."""

    code: str = "REVERSAL_ERROR"


class EntryNotFoundError(ReversalError):
    """Journal entry id does not exist."""

    code: str = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Journal entry not found: {entry_id}")


class EntryNotPostedError(ReversalError):
    """Only POSTED entries can be voided."""

    code: str = "ENTRY_NOT_POSTED"

    def __init__(self, entry_id: str, status: str):
        self.entry_id = entry_id
        self.status = status
        super().__init__(f"Entry {entry_id} is {status}, not POSTED")


class EntryAlreadyVoidedError(ReversalError):
    """Entry already has a reversal."""

    code: str = "ENTRY_ALREADY_VOIDED"

    def __init__(self, voucher_number: str, reversed_by_id: str | None):
        self.voucher_number = voucher_number
        self.reversed_by_id = reversed_by_id
        super().__init__(f"Voucher {voucher_number} is already void")


class EntryLockedError(ReversalError):
    """Entry belongs to a closed financial year."""

    code: str = "ENTRY_LOCKED"

    def __init__(self, voucher_number: str, financial_year: str):
        self.voucher_number = voucher_number
        self.financial_year = financial_year
        super().__init__(
            f"Voucher {voucher_number} is locked: financial year "
            f"{financial_year} is closed"
        )


# Periods


class PeriodError(BookkeepingError):
    """Base exception for financial year errors."""

    code: str = "PERIOD_ERROR"


class FinancialYearAlreadyClosedError(PeriodError):
    """Financial year has already been closed."""

    code: str = "FINANCIAL_YEAR_ALREADY_CLOSED"

    def __init__(self, financial_year: str):
        self.financial_year = financial_year
        super().__init__(f"Financial year {financial_year} is already closed")


# Reconciliation


class ReconciliationError(BookkeepingError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class BankTransactionNotFoundError(ReconciliationError):
    """Bank transaction id is unknown."""

    code: str = "BANK_TRANSACTION_NOT_FOUND"

    def __init__(self, bank_transaction_id: str):
        self.bank_transaction_id = bank_transaction_id
        super().__init__(f"Bank transaction not found: {bank_transaction_id}")


class LedgerEntryNotFoundError(ReconciliationError):
    """Ledger movement id is unknown."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, ledger_entry_id: str):
        self.ledger_entry_id = ledger_entry_id
        super().__init__(f"Ledger entry not found: {ledger_entry_id}")


class MovementAlreadyReconciledError(ReconciliationError):
    """Ledger movement is already claimed by another bank transaction."""

    code: str = "MOVEMENT_ALREADY_RECONCILED"

    def __init__(self, ledger_entry_id: str, bank_transaction_id: str | None):
        self.ledger_entry_id = ledger_entry_id
        self.bank_transaction_id = bank_transaction_id
        super().__init__(
            f"Ledger entry {ledger_entry_id} already reconciled "
            f"with bank transaction {bank_transaction_id}"
        )


# Concurrency


class ConcurrencyError(BookkeepingError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class LockTimeoutError(ConcurrencyError):
    """A keyed lock could not be acquired within the configured timeout."""

    code: str = "LOCK_TIMEOUT"

    def __init__(self, lock_key: str, timeout_seconds: float):
        self.lock_key = lock_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for lock {lock_key}"
        )


# Fatal


class InvariantViolationError(BookkeepingError):
    """
    The books no longer satisfy an accounting invariant.

    This indicates a bug, not a user mistake. The ledger guard is tripped
    and further posting is refused until an operator resolves it.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(self, invariant: str, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant {invariant} violated: {detail}")


class BooksBlockedError(BookkeepingError):
    """Posting refused because an earlier invariant violation is unresolved."""

    code: str = "BOOKS_BLOCKED"

    def __init__(self, ledger_name: str, reason: str):
        self.ledger_name = ledger_name
        self.reason = reason
        super().__init__(f"Ledger '{ledger_name}' is blocked: {reason}")
