"""
bookkeeping_services.books_service -- Derived books over one snapshot.

Responsibility:
    Fetches accounts, ledger rows and vouchers through LedgerSelector and
    hands them to the pure builders in ``bookkeeping_engines.books``.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Reads only;
    never flushes.

Invariants enforced:
    - Each book is built from reads issued inside the caller's single
      transaction, so every figure in it comes from the same snapshot.
    - Books are derived, never stored: calling a method twice with the
      same arguments on unchanged books returns equal results.

Failure modes:
    - AccountNotFoundError: ledger view of an unknown account code.
    - ValueError: inverted date range.

Usage:
    books = BooksService(session, ledger)
    tb = books.trial_balance(as_of=date(2025, 3, 31))
    assert tb.is_balanced
"""

from __future__ import annotations

import time
from datetime import date

from sqlalchemy.orm import Session

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
from bookkeeping_kernel.exceptions import AccountNotFoundError
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.selectors.ledger_selector import LedgerSelector
from bookkeeping_kernel.services.ledger import Ledger

logger = get_logger("services.books")


class BooksService:
    """
    Read-side facade for the derived books.

    Contract:
        Every method is a pure read of the ledger.  Date bounds are
        inclusive; ``None`` means unbounded.

    Non-goals:
        - Does NOT format reports for print or PDF.
    """

    def __init__(self, session: Session, ledger: Ledger):
        self._session = session
        self._ledger = ledger
        self._selector = LedgerSelector(session)

    def ledger_view(
        self,
        account_code: str,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> LedgerView:
        account = self._selector.account(account_code)
        if account is None:
            raise AccountNotFoundError(account_code)
        t0 = time.monotonic()
        view = build_ledger_view(
            account=account,
            rows=self._selector.ledger_rows(account_codes=[account_code], to_date=to_date),
            from_date=from_date,
            to_date=to_date,
        )
        logger.debug(
            "ledger_view_built",
            extra={
                "account_code": account_code,
                "row_count": len(view.lines),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return view

    def trial_balance(self, as_of: date | None = None) -> TrialBalance:
        """Net balance per account up to ``as_of``; flags a debit/credit gap."""
        tb = build_trial_balance(
            accounts=self._selector.accounts(),
            rows=self._selector.ledger_rows(to_date=as_of),
            as_of=as_of,
            tolerance=self._ledger.tolerance,
        )
        if not tb.is_balanced:
            logger.error(
                "trial_balance_out_of_balance",
                extra={
                    "as_of": as_of.isoformat() if as_of else None,
                    "difference": str(tb.difference),
                },
            )
        return tb

    def cash_book(self, from_date: date | None = None, to_date: date | None = None) -> CashBook:
        return self._cash_or_bank_book("cash", from_date, to_date)

    def bank_book(self, from_date: date | None = None, to_date: date | None = None) -> CashBook:
        return self._cash_or_bank_book("bank", from_date, to_date)

    def _cash_or_bank_book(
        self, kind: str, from_date: date | None, to_date: date | None
    ) -> CashBook:
        accounts = self._selector.accounts(cash_or_bank_only=True)
        return build_cash_book(
            kind=kind,
            accounts=accounts,
            rows=self._selector.ledger_rows(
                account_codes=[a.code for a in accounts], to_date=to_date
            ),
            from_date=from_date,
            to_date=to_date,
        )

    def profit_and_loss(
        self, from_date: date | None = None, to_date: date | None = None
    ) -> ProfitAndLoss:
        return build_profit_and_loss(
            accounts=self._selector.accounts(),
            rows=self._selector.ledger_rows(from_date=from_date, to_date=to_date),
            from_date=from_date,
            to_date=to_date,
        )

    def balance_sheet(self, as_of: date | None = None) -> BalanceSheet:
        sheet = build_balance_sheet(
            accounts=self._selector.accounts(),
            rows=self._selector.ledger_rows(to_date=as_of),
            as_of=as_of,
            tolerance=self._ledger.tolerance,
        )
        if not sheet.is_balanced:
            logger.error(
                "balance_sheet_out_of_balance",
                extra={
                    "as_of": as_of.isoformat() if as_of else None,
                    "difference": str(sheet.difference),
                },
            )
        return sheet

    def day_book(self, from_date: date | None = None, to_date: date | None = None) -> DayBook:
        return build_day_book(
            vouchers=self._selector.vouchers(from_date=from_date, to_date=to_date),
            from_date=from_date,
            to_date=to_date,
        )
