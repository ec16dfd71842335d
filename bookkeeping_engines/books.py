"""
Module: bookkeeping_engines.books
Responsibility:
    Pure builders for every derived book: ledger view, trial balance
    (flat and grouped by classification), cash book and bank book, profit
    and loss, balance sheet and day book.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Inputs are the DTOs
    returned by LedgerSelector; callers (BooksService) fetch them inside a
    single transaction.

Invariants enforced:
    - Every book is a function of ledger rows alone; re-running a builder
      on the same rows yields an equal result.
    - Balances are debit-minus-credit.  Positive nets are debit balances.
    - Rows are walked in ledger order: (entry_date, voucher_type,
      voucher_sequence, line_index).
    - Voided vouchers need no special casing: their rows and their
      reversal's rows cancel on aggregation.

Failure modes:
    - ValueError if a date range is inverted.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from bookkeeping_engines.tracer import traced_engine
from bookkeeping_kernel.db.types import format_balance
from bookkeeping_kernel.domain.accounts import AccountClass
from bookkeeping_kernel.domain.dtos import JournalStatus, LedgerRowStatus
from bookkeeping_kernel.domain.journal_validator import DEFAULT_TOLERANCE
from bookkeeping_kernel.selectors.ledger_selector import AccountInfo, LedgerRow, VoucherRecord

ZERO = Decimal("0")

CLASSIFICATION_ORDER: tuple[AccountClass, ...] = (
    AccountClass.ASSET,
    AccountClass.LIABILITY,
    AccountClass.EQUITY,
    AccountClass.INCOME,
    AccountClass.EXPENSE,
)


def _check_range(from_date: date | None, to_date: date | None) -> None:
    if from_date is not None and to_date is not None and from_date > to_date:
        raise ValueError(f"from_date {from_date} is after to_date {to_date}")


def _in_range(row: LedgerRow, from_date: date | None, to_date: date | None) -> bool:
    if from_date is not None and row.entry_date < from_date:
        return False
    if to_date is not None and row.entry_date > to_date:
        return False
    return True


def _ordered(rows: Iterable[LedgerRow]) -> list[LedgerRow]:
    return sorted(rows, key=lambda r: (r.sort_key, r.account_code))


def _net_by_account(rows: Iterable[LedgerRow]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for row in rows:
        totals[row.account_code] = totals.get(row.account_code, ZERO) + row.net
    return totals


def side_of(balance: Decimal) -> str:
    """Side label of a debit-minus-credit balance: Dr, Cr or empty for zero."""
    if balance > 0:
        return "Dr"
    if balance < 0:
        return "Cr"
    return ""


# ---------------------------------------------------------------------------
# Ledger view
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerViewLine:
    entry_date: date
    voucher_number: str
    voucher_type: str
    particulars: str
    narration: str
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    is_reversed: bool

    @property
    def balance_display(self) -> str:
        return format_balance(self.running_balance)


@dataclass(frozen=True)
class LedgerView:
    """One account's ledger over a date range."""

    account_code: str
    account_name: str
    from_date: date | None
    to_date: date | None
    opening_balance: Decimal
    lines: tuple[LedgerViewLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    closing_balance: Decimal

    @property
    def closing_side(self) -> str:
        return side_of(self.closing_balance)

    @property
    def opening_display(self) -> str:
        return format_balance(self.opening_balance)

    @property
    def closing_display(self) -> str:
        return format_balance(self.closing_balance)


@traced_engine("ledger_view", "1.0", fingerprint_fields=("account", "from_date", "to_date"))
def build_ledger_view(
    *,
    account: AccountInfo,
    rows: Sequence[LedgerRow],
    from_date: date | None = None,
    to_date: date | None = None,
) -> LedgerView:
    """
    Opening = net of rows dated before ``from_date``; each listed row
    carries opening + cumulative net; closing = opening + net of range.
    """
    _check_range(from_date, to_date)
    own = _ordered(r for r in rows if r.account_code == account.code)

    opening = sum(
        (r.net for r in own if from_date is not None and r.entry_date < from_date), ZERO
    )
    running = opening
    lines = []
    total_debit = total_credit = ZERO
    for row in own:
        if not _in_range(row, from_date, to_date):
            continue
        running += row.net
        total_debit += row.debit
        total_credit += row.credit
        lines.append(
            LedgerViewLine(
                entry_date=row.entry_date,
                voucher_number=row.voucher_number,
                voucher_type=row.voucher_type.value,
                particulars=row.particulars,
                narration=row.narration,
                debit=row.debit,
                credit=row.credit,
                running_balance=running,
                is_reversed=row.status == LedgerRowStatus.REVERSED,
            )
        )

    return LedgerView(
        account_code=account.code,
        account_name=account.name,
        from_date=from_date,
        to_date=to_date,
        opening_balance=opening,
        lines=tuple(lines),
        total_debit=total_debit,
        total_credit=total_credit,
        closing_balance=opening + total_debit - total_credit,
    )


# ---------------------------------------------------------------------------
# Trial balance
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrialBalanceLine:
    account_code: str
    account_name: str
    classification: AccountClass
    group_name: str
    debit: Decimal
    credit: Decimal


@dataclass(frozen=True)
class TrialBalanceGroup:
    classification: AccountClass
    lines: tuple[TrialBalanceLine, ...]
    total_debit: Decimal
    total_credit: Decimal


@dataclass(frozen=True)
class TrialBalance:
    """
    Net balance of every account with a non-zero balance as of a date.

    ``difference`` is total_debit - total_credit; ``is_balanced`` when its
    absolute value is within tolerance.
    """

    as_of: date | None
    lines: tuple[TrialBalanceLine, ...]
    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    is_balanced: bool

    @property
    def groups(self) -> tuple[TrialBalanceGroup, ...]:
        grouped = []
        for classification in CLASSIFICATION_ORDER:
            members = tuple(ln for ln in self.lines if ln.classification == classification)
            if members:
                grouped.append(
                    TrialBalanceGroup(
                        classification=classification,
                        lines=members,
                        total_debit=sum((ln.debit for ln in members), ZERO),
                        total_credit=sum((ln.credit for ln in members), ZERO),
                    )
                )
        return tuple(grouped)


@traced_engine("trial_balance", "1.0", fingerprint_fields=("as_of", "tolerance"))
def build_trial_balance(
    *,
    accounts: Sequence[AccountInfo],
    rows: Sequence[LedgerRow],
    as_of: date | None = None,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> TrialBalance:
    nets = _net_by_account(r for r in rows if as_of is None or r.entry_date <= as_of)
    by_code = {a.code: a for a in accounts}

    lines = []
    for code in sorted(nets):
        net = nets[code]
        if net == 0:
            continue
        account = by_code[code]
        lines.append(
            TrialBalanceLine(
                account_code=code,
                account_name=account.name,
                classification=account.classification,
                group_name=account.group_name,
                debit=net if net > 0 else ZERO,
                credit=-net if net < 0 else ZERO,
            )
        )

    total_debit = sum((ln.debit for ln in lines), ZERO)
    total_credit = sum((ln.credit for ln in lines), ZERO)
    difference = total_debit - total_credit
    return TrialBalance(
        as_of=as_of,
        lines=tuple(lines),
        total_debit=total_debit,
        total_credit=total_credit,
        difference=difference,
        is_balanced=abs(difference) <= tolerance,
    )


# ---------------------------------------------------------------------------
# Cash book / bank book
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CashBookLine:
    entry_date: date
    voucher_number: str
    account_code: str
    account_name: str
    particulars: str
    narration: str
    receipt: Decimal
    payment: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class CashBook:
    """Receipts (debits) and payments (credits) of the cash or bank accounts."""

    kind: str
    account_codes: tuple[str, ...]
    from_date: date | None
    to_date: date | None
    opening_balance: Decimal
    lines: tuple[CashBookLine, ...]
    total_receipts: Decimal
    total_payments: Decimal
    closing_balance: Decimal

    @property
    def closing_display(self) -> str:
        return format_balance(self.closing_balance)


@traced_engine("cash_book", "1.0", fingerprint_fields=("kind", "from_date", "to_date"))
def build_cash_book(
    *,
    kind: str,
    accounts: Sequence[AccountInfo],
    rows: Sequence[LedgerRow],
    from_date: date | None = None,
    to_date: date | None = None,
) -> CashBook:
    """
    ``kind`` is "cash" (cash-in-hand accounts) or "bank" (bank accounts).
    Same aggregation rule as the ledger view, over all selected accounts.
    """
    _check_range(from_date, to_date)
    if kind not in ("cash", "bank"):
        raise ValueError(f"kind must be 'cash' or 'bank', not {kind!r}")
    selected = [
        a for a in accounts if a.is_cash_or_bank and (a.is_bank == (kind == "bank"))
    ]
    codes = {a.code for a in selected}
    own = _ordered(r for r in rows if r.account_code in codes)

    opening = sum(
        (r.net for r in own if from_date is not None and r.entry_date < from_date), ZERO
    )
    running = opening
    lines = []
    receipts = payments = ZERO
    for row in own:
        if not _in_range(row, from_date, to_date):
            continue
        running += row.net
        receipts += row.debit
        payments += row.credit
        lines.append(
            CashBookLine(
                entry_date=row.entry_date,
                voucher_number=row.voucher_number,
                account_code=row.account_code,
                account_name=row.account_name,
                particulars=row.particulars,
                narration=row.narration,
                receipt=row.debit,
                payment=row.credit,
                running_balance=running,
            )
        )

    return CashBook(
        kind=kind,
        account_codes=tuple(sorted(codes)),
        from_date=from_date,
        to_date=to_date,
        opening_balance=opening,
        lines=tuple(lines),
        total_receipts=receipts,
        total_payments=payments,
        closing_balance=opening + receipts - payments,
    )


# ---------------------------------------------------------------------------
# Profit and loss
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatementLine:
    account_code: str
    account_name: str
    group_name: str
    amount: Decimal


@dataclass(frozen=True)
class ProfitAndLoss:
    from_date: date | None
    to_date: date | None
    income: tuple[StatementLine, ...]
    expenses: tuple[StatementLine, ...]
    total_income: Decimal
    total_expenses: Decimal
    net_profit: Decimal
    margin: Decimal

    @property
    def is_profit(self) -> bool:
        return self.net_profit >= 0


def _statement_lines(
    nets: dict[str, Decimal],
    accounts: dict[str, AccountInfo],
    classification: AccountClass,
    sign: int,
) -> tuple[StatementLine, ...]:
    lines = []
    for code in sorted(nets):
        account = accounts[code]
        if account.classification != classification:
            continue
        amount = nets[code] * sign
        if amount == 0:
            continue
        lines.append(StatementLine(code, account.name, account.group_name, amount))
    return tuple(lines)


@traced_engine("profit_and_loss", "1.0", fingerprint_fields=("from_date", "to_date"))
def build_profit_and_loss(
    *,
    accounts: Sequence[AccountInfo],
    rows: Sequence[LedgerRow],
    from_date: date | None = None,
    to_date: date | None = None,
) -> ProfitAndLoss:
    """
    Income is credit - debit over income accounts, expenses are debit -
    credit over expense accounts; margin = net / income (0 without income),
    rounded to 4 places.
    """
    _check_range(from_date, to_date)
    nets = _net_by_account(r for r in rows if _in_range(r, from_date, to_date))
    by_code = {a.code: a for a in accounts}

    income = _statement_lines(nets, by_code, AccountClass.INCOME, -1)
    expenses = _statement_lines(nets, by_code, AccountClass.EXPENSE, 1)
    total_income = sum((ln.amount for ln in income), ZERO)
    total_expenses = sum((ln.amount for ln in expenses), ZERO)
    net_profit = total_income - total_expenses
    margin = (
        (net_profit / total_income).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        if total_income != 0
        else ZERO
    )
    return ProfitAndLoss(
        from_date=from_date,
        to_date=to_date,
        income=income,
        expenses=expenses,
        total_income=total_income,
        total_expenses=total_expenses,
        net_profit=net_profit,
        margin=margin,
    )


# ---------------------------------------------------------------------------
# Balance sheet
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BalanceSheet:
    """
    Assets against liabilities plus equity as of a date.

    ``retained_earnings`` (income - expenses to date) is part of
    ``total_equity``; ``difference`` = total_assets - (total_liabilities +
    total_equity).
    """

    as_of: date | None
    assets: tuple[StatementLine, ...]
    liabilities: tuple[StatementLine, ...]
    equity: tuple[StatementLine, ...]
    retained_earnings: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    difference: Decimal
    is_balanced: bool


@traced_engine("balance_sheet", "1.0", fingerprint_fields=("as_of", "tolerance"))
def build_balance_sheet(
    *,
    accounts: Sequence[AccountInfo],
    rows: Sequence[LedgerRow],
    as_of: date | None = None,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> BalanceSheet:
    nets = _net_by_account(r for r in rows if as_of is None or r.entry_date <= as_of)
    by_code = {a.code: a for a in accounts}

    assets = _statement_lines(nets, by_code, AccountClass.ASSET, 1)
    liabilities = _statement_lines(nets, by_code, AccountClass.LIABILITY, -1)
    equity = _statement_lines(nets, by_code, AccountClass.EQUITY, -1)
    retained = -sum(
        (
            net
            for code, net in nets.items()
            if by_code[code].classification in (AccountClass.INCOME, AccountClass.EXPENSE)
        ),
        ZERO,
    )

    total_assets = sum((ln.amount for ln in assets), ZERO)
    total_liabilities = sum((ln.amount for ln in liabilities), ZERO)
    total_equity = sum((ln.amount for ln in equity), ZERO) + retained
    difference = total_assets - (total_liabilities + total_equity)
    return BalanceSheet(
        as_of=as_of,
        assets=assets,
        liabilities=liabilities,
        equity=equity,
        retained_earnings=retained,
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        total_equity=total_equity,
        difference=difference,
        is_balanced=abs(difference) <= tolerance,
    )


# ---------------------------------------------------------------------------
# Day book
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DayBook:
    """Chronological register of vouchers with their lines."""

    from_date: date | None
    to_date: date | None
    entries: tuple[VoucherRecord, ...]
    total_debit: Decimal
    total_credit: Decimal

    @property
    def voucher_count(self) -> int:
        return len(self.entries)

    @property
    def void_count(self) -> int:
        return sum(1 for e in self.entries if e.status == JournalStatus.VOID)


@traced_engine("day_book", "1.0", fingerprint_fields=("from_date", "to_date"))
def build_day_book(
    *,
    vouchers: Sequence[VoucherRecord],
    from_date: date | None = None,
    to_date: date | None = None,
) -> DayBook:
    _check_range(from_date, to_date)
    entries = tuple(
        sorted(
            (
                v
                for v in vouchers
                if (from_date is None or v.entry_date >= from_date)
                and (to_date is None or v.entry_date <= to_date)
            ),
            key=lambda v: (v.entry_date, v.voucher_type.value, v.voucher_sequence),
        )
    )
    return DayBook(
        from_date=from_date,
        to_date=to_date,
        entries=entries,
        total_debit=sum((e.total_debit for e in entries), ZERO),
        total_credit=sum((e.total_credit for e in entries), ZERO),
    )
