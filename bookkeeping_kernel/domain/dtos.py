"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that flow through the posting pipeline:
    PostingRequest (input from forms, importers and parsers) ->
    ValidatedEntry (validator output) -> PostedEntry (posting output).
    Also the bank feed input consumed by reconciliation.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` converters are
    boundary helpers invoked only by services.

Invariants enforced:
    - Amounts are Decimal, never float.
    - party_details is frozen on construction.
    - ValidatedEntry lines satisfy ``debit > 0 XOR credit > 0`` (guaranteed
      by the validator, asserted on construction).

Data flow:
    PostingRequest -> ValidatedEntry -> PostedEntry
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from uuid import UUID

from bookkeeping_kernel.db.types import to_decimal
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import PaymentMode, VoucherType

if TYPE_CHECKING:
    from bookkeeping_kernel.models.journal import JournalEntry as JournalEntryModel


class JournalStatus(str, Enum):
    """
    Lifecycle of a journal entry.

    DRAFT -> POSTED -> VOID (via reversal) or LOCKED (via year close).
    POSTED, VOID and LOCKED entries never change their lines.
    """

    DRAFT = "DRAFT"
    POSTED = "POSTED"
    VOID = "VOID"
    LOCKED = "LOCKED"


class LedgerRowStatus(str, Enum):
    """A ledger row is ACTIVE until its journal entry is voided."""

    ACTIVE = "ACTIVE"
    REVERSED = "REVERSED"


class MovementStatus(str, Enum):
    """Reconciliation state of a ledger movement."""

    PENDING = "PENDING"
    RECONCILED = "RECONCILED"


class MatchType(str, Enum):
    """Which matcher linked a bank transaction to a ledger movement."""

    EXACT = "EXACT"
    FUZZY = "FUZZY"
    REFERENCE = "REFERENCE"
    PATTERN = "PATTERN"
    MANUAL = "MANUAL"
    NONE = "NONE"


class RecordStatus(str, Enum):
    MATCHED = "MATCHED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class LineSide(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


def parse_date(value: Any) -> date | None:
    """Accept a date or an ISO ``YYYY-MM-DD`` string; None stays None."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _freeze(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestLine:
    """
    One line of a posting request, as entered.

    Either ``account_code`` or ``account_name`` identifies the account.
    ``account_type`` is an optional classification hint used only when the
    account has to be created.
    """

    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    account_code: str | None = None
    account_name: str | None = None
    account_type: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RequestLine:
        return cls(
            debit=to_decimal(_pick(data, "debit", "debitAmount", "debit_amount")),
            credit=to_decimal(_pick(data, "credit", "creditAmount", "credit_amount")),
            account_code=_as_text(_pick(data, "accountCode", "account_code")),
            account_name=_as_text(_pick(data, "accountName", "account_name", "account")),
            account_type=_pick(data, "accountType", "account_type"),
        )


@dataclass(frozen=True)
class PostingRequest:
    """
    A candidate voucher produced by an external collaborator.

    Contract:
        Nothing here is trusted.  The validator decides whether the request
        becomes a ValidatedEntry.
    """

    voucher_type: str | VoucherType | None
    entry_date: date | None
    narration: str | None
    lines: tuple[RequestLine, ...]
    reference: str | None = None
    payment_mode: str | PaymentMode | None = None
    party_details: Mapping[str, Any] = field(default_factory=dict)
    financial_year: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "party_details", _freeze(self.party_details))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PostingRequest:
        """
        Build a request from the wire shape::

            {voucherType, date, narration, reference?, paymentMode?,
             partyDetails?, entries: [{accountCode|accountName,
             accountType, debit, credit}]}

        snake_case keys are accepted as well.
        """
        raw_lines = _pick(data, "entries", "lines") or ()
        return cls(
            voucher_type=_pick(data, "voucherType", "voucher_type"),
            entry_date=parse_date(_pick(data, "date", "entryDate", "entry_date")),
            narration=_pick(data, "narration"),
            lines=tuple(RequestLine.from_mapping(line) for line in raw_lines),
            reference=_pick(data, "reference", "referenceNumber", "reference_number"),
            payment_mode=_pick(data, "paymentMode", "payment_mode"),
            party_details=_pick(data, "partyDetails", "party_details") or {},
            financial_year=_pick(data, "financialYear", "financial_year"),
        )


@dataclass(frozen=True)
class BankTransactionInput:
    """One line of an imported bank statement.  Positive amounts are money in."""

    id: str
    txn_date: date
    amount: Decimal
    description: str = ""
    reference_number: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BankTransactionInput:
        txn_date = parse_date(_pick(data, "date", "txnDate", "txn_date"))
        if txn_date is None:
            raise ValueError(f"Bank transaction {data.get('id')!r} has no date")
        return cls(
            id=str(data["id"]),
            txn_date=txn_date,
            amount=to_decimal(data.get("amount")),
            description=str(_pick(data, "description", "narration") or ""),
            reference_number=_pick(data, "referenceNumber", "reference_number", "reference"),
        )


# ---------------------------------------------------------------------------
# Validator output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidatedLine:
    """A normalized journal line: amounts rounded to 2 places, one side positive."""

    line_index: int
    debit: Decimal
    credit: Decimal
    account_code: str | None = None
    account_name: str | None = None
    account_type: str | None = None

    def __post_init__(self) -> None:
        assert (self.debit > 0) != (self.credit > 0), (
            f"line {self.line_index}: exactly one side must be positive"
        )

    @property
    def side(self) -> LineSide:
        return LineSide.DEBIT if self.debit > 0 else LineSide.CREDIT

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit > 0 else self.credit

    def with_account(self, account_code: str, account_name: str | None = None) -> ValidatedLine:
        return ValidatedLine(
            line_index=self.line_index,
            debit=self.debit,
            credit=self.credit,
            account_code=account_code,
            account_name=account_name,
            account_type=self.account_type,
        )

    def swapped(self) -> ValidatedLine:
        """The reversal of this line: debit and credit exchanged."""
        return ValidatedLine(
            line_index=self.line_index,
            debit=self.credit,
            credit=self.debit,
            account_code=self.account_code,
            account_name=self.account_name,
            account_type=self.account_type,
        )


@dataclass(frozen=True)
class ValidatedEntry:
    """
    A candidate entry that passed every validator check.

    Guarantees:
        - at least two lines
        - |total_debit - total_credit| <= tolerance
        - entry_date lies inside financial_year
    """

    voucher_type: VoucherType
    entry_date: date
    financial_year: FinancialYear
    narration: str
    lines: tuple[ValidatedLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    reference: str | None = None
    payment_mode: PaymentMode | None = None
    party_details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "party_details", _freeze(self.party_details))

    @property
    def party_name(self) -> str | None:
        name = self.party_details.get("name")
        return str(name) if name else None


@dataclass(frozen=True)
class ValidationFailure:
    """
    Why a candidate entry was rejected.

    ``reason_code`` identifies the failed check; ``message`` is actionable
    text for the person who entered the voucher.
    """

    reason_code: str
    message: str
    line_index: int | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of ``JournalValidator.validate``.

    Exactly one of ``entry`` and ``failure`` is set.
    """

    entry: ValidatedEntry | None = None
    failure: ValidationFailure | None = None

    @classmethod
    def ok(cls, entry: ValidatedEntry) -> ValidationResult:
        return cls(entry=entry)

    @classmethod
    def error(
        cls, reason_code: str, message: str, line_index: int | None = None
    ) -> ValidationResult:
        return cls(failure=ValidationFailure(reason_code, message, line_index))

    @property
    def is_valid(self) -> bool:
        return self.entry is not None

    def __bool__(self) -> bool:
        return self.is_valid

    def raise_for_error(self) -> ValidatedEntry:
        """Return the validated entry or raise JournalValidationError."""
        if self.entry is not None:
            return self.entry
        from bookkeeping_kernel.exceptions import JournalValidationError

        assert self.failure is not None
        raise JournalValidationError(
            self.failure.reason_code, self.failure.message, self.failure.line_index
        )


# ---------------------------------------------------------------------------
# Posting output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostedLine:
    line_index: int
    account_code: str
    account_name: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class PostedEntry:
    """
    A voucher as committed to the books, returned synchronously from posting.
    """

    entry_id: UUID
    voucher_number: str
    voucher_type: VoucherType
    entry_date: date
    financial_year: str
    narration: str
    status: JournalStatus
    lines: tuple[PostedLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    reference: str | None = None
    payment_mode: str | None = None
    party_name: str | None = None
    reversal_of_id: UUID | None = None
    reversed_by_id: UUID | None = None

    @classmethod
    def from_model(
        cls,
        model: JournalEntryModel,
        account_names: Mapping[str, str] | None = None,
    ) -> PostedEntry:
        names = account_names or {}
        return cls(
            entry_id=model.id,
            voucher_number=model.voucher_number,
            voucher_type=VoucherType(model.voucher_type),
            entry_date=model.entry_date,
            financial_year=model.financial_year,
            narration=model.narration,
            status=JournalStatus(model.status),
            lines=tuple(
                PostedLine(
                    line_index=line.line_index,
                    account_code=line.account_code,
                    account_name=names.get(line.account_code, line.account_code),
                    debit=line.debit,
                    credit=line.credit,
                )
                for line in sorted(model.lines, key=lambda ln: ln.line_index)
            ),
            total_debit=model.total_debit,
            total_credit=model.total_credit,
            reference=model.reference,
            payment_mode=model.payment_mode,
            party_name=model.party_name,
            reversal_of_id=model.reversal_of_id,
            reversed_by_id=model.reversed_by_id,
        )
