"""Closing a financial year locks its vouchers and refuses new postings."""

from datetime import date
from decimal import Decimal

import pytest

from bookkeeping_kernel.domain.dtos import JournalStatus
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.exceptions import FinancialYearAlreadyClosedError
from bookkeeping_kernel.services.year_close_service import closed_financial_years


class TestYearClose:

    def test_close_locks_posted_vouchers(
        self, year_close_service, post_entry, standard_accounts, test_actor_id, ledger_selector
    ):
        post_entry(("1001", 20000, 0), ("4001", 0, 20000), voucher_type="SALES")
        post_entry(("5001", 5000, 0), ("1001", 0, 5000), voucher_type="PAYMENT")
        post_entry(
            ("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT", entry_date=date(2025, 4, 2)
        )

        summary = year_close_service.close(FinancialYear(2024), test_actor_id)

        assert summary.financial_year == "2024-25"
        assert summary.entries_locked == 2
        assert summary.net_profit == Decimal("15000")
        statuses = {v.voucher_number: v.status for v in ledger_selector.vouchers()}
        assert statuses == {
            "SAL-2024-25-0001": JournalStatus.LOCKED,
            "PAY-2024-25-0001": JournalStatus.LOCKED,
            "PAY-2025-26-0001": JournalStatus.POSTED,
        }

    def test_closed_years_are_recorded(self, year_close_service, test_actor_id, session):
        year_close_service.close("2023-24", test_actor_id)

        assert year_close_service.is_closed("FY2023-24")
        assert not year_close_service.is_closed("2024-25")
        assert closed_financial_years(session) == frozenset({"2023-24"})

    def test_closing_twice_is_refused(self, year_close_service, test_actor_id):
        year_close_service.close("2024-25", test_actor_id)

        with pytest.raises(FinancialYearAlreadyClosedError):
            year_close_service.close("2024-2025", test_actor_id)

    def test_next_year_stays_open(
        self, year_close_service, post_entry, standard_accounts, test_actor_id
    ):
        year_close_service.close("2024-25", test_actor_id)

        posted = post_entry(
            ("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT", entry_date=date(2025, 4, 1)
        )

        assert posted.voucher_number == "PAY-2025-26-0001"

    def test_balances_carry_forward(
        self, year_close_service, post_entry, standard_accounts, test_actor_id, books
    ):
        post_entry(("1001", 20000, 0), ("3001", 0, 20000))
        year_close_service.close("2024-25", test_actor_id)
        post_entry(("5001", 500, 0), ("1001", 0, 500), entry_date=date(2025, 5, 1))

        view = books.ledger_view("1001", from_date=date(2025, 4, 1))
        assert view.opening_balance == Decimal("20000")
        assert view.closing_balance == Decimal("19500")

    def test_close_is_logged(self, year_close_service, test_actor_id, captured_logs):
        year_close_service.close("2024-25", test_actor_id)

        records = [r for r in captured_logs() if r["message"] == "financial_year_closed"]
        assert records[-1]["financial_year"] == "2024-25"
        assert records[-1]["entries_locked"] == 0
