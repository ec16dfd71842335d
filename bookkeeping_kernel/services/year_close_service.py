"""
YearCloseService -- closes a financial year to further posting.

Responsibility:
    Records the close of a financial year (Apr 1 - Mar 31), locks every
    POSTED voucher of that year and stores the year's net profit.

Architecture position:
    Kernel > Services -- imperative shell.  ``closed_financial_years()`` is
    read by LedgerPostingEngine before validation so the validator can
    refuse dates in closed years.

Invariants enforced:
    - A year is closed at most once.
    - After close, no voucher of that year is POSTED: each is LOCKED (or
      was already VOID), and ReversalService refuses to correct them.

Failure modes:
    - FinancialYearAlreadyClosedError on a second close.
    - ValueError for malformed financial year text.

Audit relevance:
    ``financial_year_closed`` carries the actor, the locked entry count and
    the net profit that was frozen.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.accounts import AccountClass
from bookkeeping_kernel.domain.dtos import JournalStatus
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.exceptions import FinancialYearAlreadyClosedError
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.financial_year import FinancialYearClose
from bookkeeping_kernel.models.journal import JournalEntry
from bookkeeping_kernel.selectors.ledger_selector import LedgerSelector
from bookkeeping_kernel.services.ledger import Ledger

logger = get_logger("services.year_close")


def closed_financial_years(session: Session) -> frozenset[str]:
    """Codes of every closed financial year, e.g. ``{"2023-24"}``."""
    return frozenset(session.execute(select(FinancialYearClose.financial_year)).scalars())


@dataclass(frozen=True)
class YearCloseSummary:
    financial_year: str
    closed_at: datetime
    entries_locked: int
    net_profit: Decimal


class YearCloseService:
    """
    Closes financial years.

    Non-goals:
        - Does NOT post closing or carry-forward vouchers; balance sheet
          accounts carry forward because ledger balances are cumulative.
        - Does NOT reopen a year.
    """

    def __init__(self, session: Session, ledger: Ledger):
        self._session = session
        self._ledger = ledger

    def is_closed(self, financial_year: FinancialYear | str) -> bool:
        return FinancialYear.parse(financial_year).code in closed_financial_years(self._session)

    def close(self, financial_year: FinancialYear | str, actor_id: UUID) -> YearCloseSummary:
        """
        Close ``financial_year``.

        Postconditions:
            A FinancialYearClose row exists and every POSTED entry of the
            year is LOCKED.

        Raises:
            FinancialYearAlreadyClosedError: the year was closed before.
        """
        fy = FinancialYear.parse(financial_year)
        self._ledger.locks.hold(self._session, [f"close:{fy.code}"])
        if fy.code in closed_financial_years(self._session):
            raise FinancialYearAlreadyClosedError(fy.code)

        net_profit = self._net_profit(fy)
        result = self._session.execute(
            update(JournalEntry)
            .where(
                JournalEntry.financial_year == fy.code,
                JournalEntry.status == JournalStatus.POSTED.value,
            )
            .values(status=JournalStatus.LOCKED.value, updated_by_id=actor_id)
            .execution_options(synchronize_session="evaluate")
        )
        closed_at = self._ledger.clock.now()
        record = FinancialYearClose(
            financial_year=fy.code,
            closed_at=closed_at,
            entries_locked=result.rowcount,
            net_profit=net_profit,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()

        logger.info(
            "financial_year_closed",
            extra={
                "financial_year": fy.code,
                "entries_locked": result.rowcount,
                "net_profit": net_profit,
                "actor_id": str(actor_id),
            },
        )
        return YearCloseSummary(fy.code, closed_at, result.rowcount, net_profit)

    def _net_profit(self, fy: FinancialYear) -> Decimal:
        income = expense = Decimal("0")
        for movement in LedgerSelector(self._session).movements(fy.start_date, fy.end_date):
            if movement.account.classification == AccountClass.INCOME:
                income -= movement.net
            elif movement.account.classification == AccountClass.EXPENSE:
                expense += movement.net
        return income - expense
