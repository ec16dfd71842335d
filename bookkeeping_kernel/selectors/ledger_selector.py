"""
Module: bookkeeping_kernel.selectors.ledger_selector
Responsibility: Read-only queries over accounts, ledger rows and vouchers,
    returned as DTOs for the derived-book builders and the reconciliation
    engine.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Rows come back in (entry_date, voucher_type, voucher_sequence,
      line_index) order, the tie-break used by every chronological listing.
    - Aggregation is done in Decimal on the Python side, so totals do not
      depend on how a backend sums NUMERIC columns.
    - Voided entries' rows are included.  Their reversal rows cancel them,
      so plain aggregation gives post-correction balances.

Failure modes:
    - Empty lists / zero totals when nothing has been posted.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.accounts import AccountClass, NormalBalance
from bookkeeping_kernel.domain.dtos import (
    JournalStatus,
    LedgerRowStatus,
    MovementStatus,
    PostedLine,
)
from bookkeeping_kernel.domain.voucher_types import VoucherType
from bookkeeping_kernel.models.account import Account
from bookkeeping_kernel.models.journal import JournalEntry
from bookkeeping_kernel.models.ledger import LEDGER_ORDER, LedgerEntry
from bookkeeping_kernel.selectors.base import BaseSelector

_ZERO = Decimal("0")


@dataclass(frozen=True)
class AccountInfo:
    code: str
    name: str
    classification: AccountClass
    normal_balance: NormalBalance
    group_name: str
    is_cash_or_bank: bool
    is_active: bool

    @property
    def is_bank(self) -> bool:
        return self.is_cash_or_bank and "bank" in self.name.lower()

    @classmethod
    def from_model(cls, account: Account) -> AccountInfo:
        return cls(
            code=account.code,
            name=account.name,
            classification=AccountClass(account.classification),
            normal_balance=NormalBalance(account.normal_balance),
            group_name=account.group_name,
            is_cash_or_bank=account.is_cash_or_bank,
            is_active=account.is_active,
        )


@dataclass(frozen=True)
class LedgerRow:
    """One ledger movement as seen by reports and matchers."""

    ledger_entry_id: UUID
    journal_entry_id: UUID
    account_code: str
    account_name: str
    entry_date: date
    voucher_number: str
    voucher_type: VoucherType
    voucher_sequence: int
    line_index: int
    particulars: str
    narration: str
    reference: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    status: LedgerRowStatus
    reconciliation_status: MovementStatus

    @property
    def sort_key(self) -> tuple[date, str, int, int]:
        return (self.entry_date, self.voucher_type.value, self.voucher_sequence, self.line_index)

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit

    @property
    def amount(self) -> Decimal:
        return self.debit if self.debit > 0 else self.credit

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_status == MovementStatus.RECONCILED


@dataclass(frozen=True)
class AccountMovement:
    """Debit and credit totals of one account over a window."""

    account: AccountInfo
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net(self) -> Decimal:
        """Debits minus credits."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class VoucherRecord:
    """A voucher with its lines, for the day book and corrections."""

    entry_id: UUID
    voucher_number: str
    voucher_type: VoucherType
    voucher_sequence: int
    entry_date: date
    financial_year: str
    narration: str
    status: JournalStatus
    total_debit: Decimal
    total_credit: Decimal
    lines: tuple[PostedLine, ...]
    reference: str | None = None
    party_name: str | None = None
    reversal_of_id: UUID | None = None
    reversed_by_id: UUID | None = None


class LedgerSelector(BaseSelector):
    """
    Selector for accounts, ledger rows and vouchers.

    Contract:
        Every method is a pure read.  Callers that need several results to
        agree (one report) call them inside one transaction.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def accounts(
        self,
        codes: Iterable[str] | None = None,
        cash_or_bank_only: bool = False,
    ) -> list[AccountInfo]:
        query = select(Account).order_by(Account.code)
        if codes is not None:
            query = query.where(Account.code.in_(list(codes)))
        if cash_or_bank_only:
            query = query.where(Account.is_cash_or_bank.is_(True))
        return [AccountInfo.from_model(a) for a in self.session.execute(query).scalars()]

    def account(self, code: str) -> AccountInfo | None:
        account = self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
        return AccountInfo.from_model(account) if account is not None else None

    # ------------------------------------------------------------------
    # Ledger rows
    # ------------------------------------------------------------------

    def ledger_rows(
        self,
        account_codes: Iterable[str] | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        before: date | None = None,
    ) -> list[LedgerRow]:
        """
        Ledger rows in chronological order.

        Args:
            account_codes: Restrict to these accounts.
            from_date: Inclusive lower bound on entry_date.
            to_date: Inclusive upper bound on entry_date.
            before: Exclusive upper bound (used for opening balances).
        """
        query = select(LedgerEntry, Account.name).join(
            Account, Account.code == LedgerEntry.account_code
        )
        if account_codes is not None:
            query = query.where(LedgerEntry.account_code.in_(list(account_codes)))
        if from_date is not None:
            query = query.where(LedgerEntry.entry_date >= from_date)
        if to_date is not None:
            query = query.where(LedgerEntry.entry_date <= to_date)
        if before is not None:
            query = query.where(LedgerEntry.entry_date < before)
        query = query.order_by(*LEDGER_ORDER, LedgerEntry.account_code)
        return [_to_row(entry, name) for entry, name in self.session.execute(query).all()]

    def pending_cash_bank_rows(self) -> list[LedgerRow]:
        """
        ACTIVE, unreconciled rows on cash and bank accounts.

        Rows of reversal vouchers are left out: they cancel a voided
        movement in the books and never appear on a bank statement.
        """
        query = (
            select(LedgerEntry, Account.name)
            .join(Account, Account.code == LedgerEntry.account_code)
            .join(JournalEntry, JournalEntry.id == LedgerEntry.journal_entry_id)
            .where(
                Account.is_cash_or_bank.is_(True),
                LedgerEntry.status == LedgerRowStatus.ACTIVE.value,
                LedgerEntry.reconciliation_status == MovementStatus.PENDING.value,
                JournalEntry.reversal_of_id.is_(None),
            )
            .order_by(*LEDGER_ORDER)
        )
        return [_to_row(entry, name) for entry, name in self.session.execute(query).all()]

    def ledger_row(self, ledger_entry_id: UUID) -> LedgerRow | None:
        result = self.session.execute(
            select(LedgerEntry, Account.name)
            .join(Account, Account.code == LedgerEntry.account_code)
            .where(LedgerEntry.id == ledger_entry_id)
        ).one_or_none()
        if result is None:
            return None
        entry, name = result
        return _to_row(entry, name)

    def movements(
        self,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[AccountMovement]:
        """Per-account debit/credit totals over the window, by account code."""
        totals: dict[str, list[Decimal]] = {}
        for row in self.ledger_rows(from_date=from_date, to_date=to_date):
            bucket = totals.setdefault(row.account_code, [_ZERO, _ZERO])
            bucket[0] += row.debit
            bucket[1] += row.credit
        if not totals:
            return []
        infos = {a.code: a for a in self.accounts(codes=totals)}
        return [
            AccountMovement(account=infos[code], debit_total=dr, credit_total=cr)
            for code, (dr, cr) in sorted(totals.items())
        ]

    # ------------------------------------------------------------------
    # Vouchers
    # ------------------------------------------------------------------

    def vouchers(
        self,
        from_date: date | None = None,
        to_date: date | None = None,
        financial_year: str | None = None,
        statuses: Iterable[JournalStatus] | None = None,
    ) -> list[VoucherRecord]:
        """Vouchers in (entry_date, voucher_type, voucher_sequence) order, with their lines."""
        query = select(JournalEntry)
        if from_date is not None:
            query = query.where(JournalEntry.entry_date >= from_date)
        if to_date is not None:
            query = query.where(JournalEntry.entry_date <= to_date)
        if financial_year is not None:
            query = query.where(JournalEntry.financial_year == financial_year)
        if statuses is not None:
            query = query.where(JournalEntry.status.in_([JournalStatus(s).value for s in statuses]))
        query = query.order_by(
            JournalEntry.entry_date, JournalEntry.voucher_type, JournalEntry.voucher_sequence
        )
        entries = list(self.session.execute(query).scalars())
        names = self._account_names(
            line.account_code for entry in entries for line in entry.lines
        )
        return [_to_voucher(entry, names) for entry in entries]

    def voucher(self, entry_id: UUID) -> VoucherRecord | None:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            return None
        return _to_voucher(entry, self._account_names(ln.account_code for ln in entry.lines))

    def _account_names(self, codes: Iterable[str]) -> dict[str, str]:
        codes = set(codes)
        if not codes:
            return {}
        return dict(
            self.session.execute(
                select(Account.code, Account.name).where(Account.code.in_(codes))
            ).all()
        )


def _to_row(entry: LedgerEntry, account_name: str) -> LedgerRow:
    return LedgerRow(
        ledger_entry_id=entry.id,
        journal_entry_id=entry.journal_entry_id,
        account_code=entry.account_code,
        account_name=account_name,
        entry_date=entry.entry_date,
        voucher_number=entry.voucher_number,
        voucher_type=VoucherType(entry.voucher_type),
        voucher_sequence=entry.voucher_sequence,
        line_index=entry.line_index,
        particulars=entry.particulars,
        narration=entry.narration,
        reference=entry.reference,
        debit=entry.debit,
        credit=entry.credit,
        running_balance=entry.running_balance,
        status=LedgerRowStatus(entry.status),
        reconciliation_status=MovementStatus(entry.reconciliation_status),
    )


def _to_voucher(entry: JournalEntry, names: dict[str, str]) -> VoucherRecord:
    return VoucherRecord(
        entry_id=entry.id,
        voucher_number=entry.voucher_number,
        voucher_type=VoucherType(entry.voucher_type),
        voucher_sequence=entry.voucher_sequence,
        entry_date=entry.entry_date,
        financial_year=entry.financial_year,
        narration=entry.narration,
        status=JournalStatus(entry.status),
        total_debit=entry.total_debit,
        total_credit=entry.total_credit,
        lines=tuple(
            PostedLine(
                line_index=line.line_index,
                account_code=line.account_code,
                account_name=names.get(line.account_code, line.account_code),
                debit=line.debit,
                credit=line.credit,
            )
            for line in entry.lines
        ),
        reference=entry.reference,
        party_name=entry.party_name,
        reversal_of_id=entry.reversal_of_id,
        reversed_by_id=entry.reversed_by_id,
    )
