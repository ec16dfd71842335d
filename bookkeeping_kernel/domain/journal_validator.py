"""
JournalValidator -- double-entry admission checks for candidate vouchers.

Responsibility:
    Decide whether a PostingRequest may enter the books, and if so return
    the normalized ValidatedEntry the posting engine consumes.

Architecture position:
    Kernel > Domain -- pure, zero I/O, no locks.  Safe to call from any
    number of threads concurrently.  Closed financial years are passed in
    by the caller; the validator never reads storage.

Invariants enforced (checks run in this order; the first failure wins):
    1. voucher type present and one of the closed VoucherType members
    2. narration non-empty
    3. at least two lines
    4. every line names an account, has no negative amount, and has exactly
       one strictly positive side (after rounding to 2 decimals)
    5. |sum(debit) - sum(credit)| <= tolerance
    6. entry date present, inside the financial year window, and that year
       is not closed

Failure modes:
    None raised.  Failures are returned as ValidationResult.error(); call
    ``raise_for_error()`` to turn them into JournalValidationError.
"""

from __future__ import annotations

from collections.abc import Collection
from decimal import Decimal, InvalidOperation

from bookkeeping_kernel.db.types import (
    DEFAULT_CURRENCY_SYMBOL,
    format_money,
    round_money,
    to_decimal,
)
from bookkeeping_kernel.domain.dtos import (
    PostingRequest,
    ValidatedEntry,
    ValidatedLine,
    ValidationResult,
)
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import PaymentMode, VoucherType

DEFAULT_TOLERANCE = Decimal("0.01")
MIN_LINES = 2


class ValidationReason:
    """Reason codes returned by the validator, one per check."""

    UNKNOWN_VOUCHER_TYPE = "UNKNOWN_VOUCHER_TYPE"
    MISSING_NARRATION = "MISSING_NARRATION"
    TOO_FEW_LINES = "TOO_FEW_LINES"
    INVALID_LINE = "INVALID_LINE"
    UNBALANCED_ENTRY = "UNBALANCED_ENTRY"
    MISSING_DATE = "MISSING_DATE"
    OUT_OF_PERIOD = "OUT_OF_PERIOD"
    LOCKED_PERIOD = "LOCKED_PERIOD"


class JournalValidator:
    """
    Pure validator for candidate journal entries.

    Contract:
        validate(request) -> ValidationResult.  Never raises for bad input
        and never mutates anything.

    Guarantees:
        - A balanced request with well-formed lines in an open year is
          always accepted.
        - An imbalance larger than the tolerance is always rejected.
        - Accepted amounts are rounded half-up to 2 decimals.

    Non-goals:
        - Does NOT resolve or create accounts (AccountRegistry).
        - Does NOT know about voucher numbers (VoucherNumbering).
    """

    def __init__(
        self,
        tolerance: Decimal = DEFAULT_TOLERANCE,
        currency_symbol: str = DEFAULT_CURRENCY_SYMBOL,
    ):
        self._tolerance = tolerance
        self._symbol = currency_symbol

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def validate(
        self,
        request: PostingRequest,
        closed_years: Collection[str] = (),
    ) -> ValidationResult:
        """
        Run the ordered checks against ``request``.

        Args:
            request: Candidate entry.
            closed_years: Codes (``2023-24``) of financial years that are
                closed to new postings.

        Returns:
            ValidationResult.ok(ValidatedEntry) or ValidationResult.error().
        """
        # 1. voucher type
        voucher_type = VoucherType.parse(request.voucher_type)
        if voucher_type is None:
            if request.voucher_type is None or not str(request.voucher_type).strip():
                return ValidationResult.error(
                    ValidationReason.UNKNOWN_VOUCHER_TYPE, "Voucher type is required"
                )
            return ValidationResult.error(
                ValidationReason.UNKNOWN_VOUCHER_TYPE,
                f"Unknown voucher type '{request.voucher_type}'. Use one of: "
                + ", ".join(t.label for t in VoucherType),
            )

        # 2. narration
        narration = (request.narration or "").strip()
        if not narration:
            return ValidationResult.error(
                ValidationReason.MISSING_NARRATION,
                "Narration is required: describe what this voucher records",
            )

        # 3. line count
        if len(request.lines) < MIN_LINES:
            return ValidationResult.error(
                ValidationReason.TOO_FEW_LINES,
                f"A journal entry needs at least {MIN_LINES} lines "
                f"(one debit and one credit); got {len(request.lines)}",
            )

        # 4. line shape
        lines: list[ValidatedLine] = []
        for index, line in enumerate(request.lines):
            checked = self._check_line(index, line)
            if isinstance(checked, ValidationResult):
                return checked
            lines.append(checked)

        # 5. balance
        total_debit = sum((ln.debit for ln in lines), Decimal("0.00"))
        total_credit = sum((ln.credit for ln in lines), Decimal("0.00"))
        if abs(total_debit - total_credit) > self._tolerance:
            return ValidationResult.error(
                ValidationReason.UNBALANCED_ENTRY,
                f"Debits ({format_money(total_debit, self._symbol)}) must equal "
                f"Credits ({format_money(total_credit, self._symbol)})",
            )

        # 6. period
        return self._check_period(
            request, voucher_type, narration, lines, total_debit, total_credit, closed_years
        )

    def _check_line(self, index: int, line) -> ValidatedLine | ValidationResult:
        position = index + 1
        account_code = _text(line.account_code)
        account_name = _text(line.account_name)
        if account_code is None and account_name is None:
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: account is required",
                index,
            )
        try:
            debit = to_decimal(line.debit)
            credit = to_decimal(line.credit)
        except (InvalidOperation, ValueError):
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: amounts must be numbers",
                index,
            )
        if not (debit.is_finite() and credit.is_finite()):
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: amounts must be numbers",
                index,
            )
        if debit < 0 or credit < 0:
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: amounts cannot be negative",
                index,
            )
        debit = round_money(debit)
        credit = round_money(credit)
        if debit > 0 and credit > 0:
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: enter either a debit or a credit, not both",
                index,
            )
        if debit == 0 and credit == 0:
            return ValidationResult.error(
                ValidationReason.INVALID_LINE,
                f"Line {position}: enter a debit or a credit amount",
                index,
            )
        return ValidatedLine(
            line_index=index,
            debit=debit,
            credit=credit,
            account_code=account_code,
            account_name=account_name,
            account_type=line.account_type,
        )

    def _check_period(
        self,
        request: PostingRequest,
        voucher_type: VoucherType,
        narration: str,
        lines: list[ValidatedLine],
        total_debit: Decimal,
        total_credit: Decimal,
        closed_years: Collection[str],
    ) -> ValidationResult:
        entry_date = request.entry_date
        if entry_date is None:
            return ValidationResult.error(
                ValidationReason.MISSING_DATE, "Voucher date is required"
            )

        if request.financial_year:
            try:
                financial_year = FinancialYear.parse(request.financial_year)
            except ValueError as exc:
                return ValidationResult.error(ValidationReason.OUT_OF_PERIOD, str(exc))
        else:
            financial_year = FinancialYear.for_date(entry_date)

        if not financial_year.contains(entry_date):
            return ValidationResult.error(
                ValidationReason.OUT_OF_PERIOD,
                f"Date {entry_date.isoformat()} is outside financial year "
                f"{financial_year.code} ({financial_year.start_date.isoformat()} "
                f"to {financial_year.end_date.isoformat()})",
            )

        if financial_year.code in set(closed_years):
            return ValidationResult.error(
                ValidationReason.LOCKED_PERIOD,
                f"Financial year {financial_year.code} is closed; a voucher dated "
                f"{entry_date.isoformat()} cannot be posted",
            )

        return ValidationResult.ok(
            ValidatedEntry(
                voucher_type=voucher_type,
                entry_date=entry_date,
                financial_year=financial_year,
                narration=narration,
                lines=tuple(lines),
                total_debit=total_debit,
                total_credit=total_credit,
                reference=(request.reference or "").strip() or None,
                payment_mode=PaymentMode.parse(request.payment_mode),
                party_details=request.party_details,
            )
        )


def _text(value) -> str | None:
    """Trimmed text of an account reference; 5001 and "5001" are the same code."""
    if value is None:
        return None
    return str(value).strip() or None
