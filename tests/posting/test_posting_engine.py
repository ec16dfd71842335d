"""
LedgerPostingEngine: vouchers, ledger rows, running balances and the
post-write balance check.
"""

import dataclasses
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from bookkeeping_kernel.domain.dtos import (
    JournalStatus,
    LedgerRowStatus,
    MovementStatus,
    PostingRequest,
    RequestLine,
)
from bookkeeping_kernel.domain.journal_validator import ValidationReason
from bookkeeping_kernel.domain.voucher_types import VoucherType
from bookkeeping_kernel.exceptions import (
    AccountInactiveError,
    BooksBlockedError,
    InvariantViolationError,
    JournalValidationError,
)
from bookkeeping_kernel.models.journal import JournalEntry
from bookkeeping_kernel.models.ledger import LedgerEntry
from bookkeeping_kernel.models.voucher_counter import VoucherCounter
from bookkeeping_kernel.services.posting_engine import (
    ENTRY_BALANCE_INVARIANT,
    LEDGER_BALANCE_INVARIANT,
    LedgerPostingEngine,
)


class TestPostingAVoucher:

    def test_rent_payment(self, post_entry, standard_accounts, ledger_selector, books):
        posted = post_entry(
            ("5001", 10000, 0),
            ("1001", 0, 10000),
            voucher_type="PAYMENT",
            narration="Office rent for June",
        )

        assert posted.voucher_number == "PAY-2024-25-0001"
        assert posted.voucher_type is VoucherType.PAYMENT
        assert posted.status is JournalStatus.POSTED
        assert posted.total_debit == posted.total_credit == Decimal("10000")
        assert [ln.account_name for ln in posted.lines] == ["Rent Expense", "Cash"]

        (cash_row,) = ledger_selector.ledger_rows(account_codes=["1001"])
        assert cash_row.credit == Decimal("10000")
        assert cash_row.running_balance == Decimal("-10000")
        assert cash_row.particulars == "By Rent Expense A/c"
        assert cash_row.status is LedgerRowStatus.ACTIVE
        assert cash_row.reconciliation_status is MovementStatus.PENDING

        tb = books.trial_balance()
        rent_line = next(ln for ln in tb.lines if ln.account_code == "5001")
        assert rent_line.debit == Decimal("10000")
        assert tb.is_balanced

    def test_one_ledger_row_per_line(self, post_entry, standard_accounts, session):
        posted = post_entry(
            ("5001", 6000, 0),
            ("5002", 4000, 0),
            ("1002", 0, 10000),
            voucher_type="PAYMENT",
        )

        rows = session.execute(
            select(LedgerEntry).where(LedgerEntry.journal_entry_id == posted.entry_id)
        ).scalars().all()
        assert sorted(r.line_index for r in rows) == [0, 1, 2]
        assert all(r.voucher_number == posted.voucher_number for r in rows)

    def test_account_balances_follow_postings(self, post_entry, standard_accounts):
        post_entry(("1001", 50000, 0), ("3001", 0, 50000), narration="Capital introduced")
        post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")

        assert standard_accounts["cash"].balance == Decimal("40000")
        assert standard_accounts["capital"].balance == Decimal("-50000")
        assert standard_accounts["rent"].balance == Decimal("10000")

    def test_voucher_types_number_independently(self, post_entry, standard_accounts):
        first_payment = post_entry(("5001", 1, 0), ("1001", 0, 1), voucher_type="PAYMENT")
        receipt = post_entry(("1001", 1, 0), ("4001", 0, 1), voucher_type="RECEIPT")
        second_payment = post_entry(("5001", 1, 0), ("1001", 0, 1), voucher_type="PAYMENT")

        assert first_payment.voucher_number == "PAY-2024-25-0001"
        assert receipt.voucher_number == "REC-2024-25-0001"
        assert second_payment.voucher_number == "PAY-2024-25-0002"

    def test_financial_year_comes_from_the_date(self, post_entry, standard_accounts):
        posted = post_entry(
            ("5001", 1, 0), ("1001", 0, 1), voucher_type="PAYMENT", entry_date=date(2025, 4, 1)
        )

        assert posted.financial_year == "2025-26"
        assert posted.voucher_number == "PAY-2025-26-0001"

    def test_optional_fields_are_stored(self, post_entry, standard_accounts, session):
        posted = post_entry(
            ("1001", 500, 0),
            ("4001", 0, 500),
            voucher_type="RECEIPT",
            reference="INV-101",
            payment_mode="UPI",
            party_details={"name": "ABC Traders", "gstin": "29ABCDE1234F1Z5"},
        )

        journal = session.get(JournalEntry, posted.entry_id)
        assert journal.reference == "INV-101"
        assert journal.payment_mode == "UPI"
        assert journal.party_name == "ABC Traders"
        assert journal.party_details["gstin"] == "29ABCDE1234F1Z5"

    def test_posting_is_logged(self, post_entry, standard_accounts, captured_logs):
        post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")

        records = [r for r in captured_logs() if r["message"] == "journal_entry_posted"]
        assert records[-1]["voucher_number"] == "PAY-2024-25-0001"
        assert records[-1]["line_count"] == 2


class TestParticulars:

    def test_single_counterpart_names_it(self, post_entry, standard_accounts, ledger_selector):
        post_entry(("1001", 500, 0), ("4001", 0, 500), voucher_type="RECEIPT")

        rows = {r.account_code: r for r in ledger_selector.ledger_rows()}
        assert rows["1001"].particulars == "To Sales A/c"
        assert rows["4001"].particulars == "By Cash A/c"

    def test_several_counterparts_are_various(
        self, post_entry, standard_accounts, ledger_selector
    ):
        post_entry(("5001", 600, 0), ("5002", 400, 0), ("1001", 0, 1000), voucher_type="PAYMENT")

        rows = {r.account_code: r for r in ledger_selector.ledger_rows()}
        assert rows["1001"].particulars == "Various"
        assert rows["5001"].particulars == "To Cash A/c"


class TestRunningBalances:

    def test_balances_accumulate_in_date_order(
        self, post_entry, standard_accounts, ledger_selector
    ):
        post_entry(("1001", 5000, 0), ("4001", 0, 5000), entry_date=date(2024, 6, 1))
        post_entry(("5001", 2000, 0), ("1001", 0, 2000), entry_date=date(2024, 6, 2))
        post_entry(("1001", 1000, 0), ("4001", 0, 1000), entry_date=date(2024, 6, 3))

        balances = [r.running_balance for r in ledger_selector.ledger_rows(account_codes=["1001"])]
        assert balances == [Decimal("5000"), Decimal("3000"), Decimal("4000")]

    def test_back_dated_voucher_resequences_later_rows(
        self, post_entry, standard_accounts, ledger_selector
    ):
        post_entry(("1001", 5000, 0), ("4001", 0, 5000), entry_date=date(2024, 6, 10))
        post_entry(("1001", 1000, 0), ("4001", 0, 1000), entry_date=date(2024, 6, 20))
        post_entry(
            ("5001", 1000, 0),
            ("1001", 0, 1000),
            voucher_type="PAYMENT",
            entry_date=date(2024, 6, 5),
        )

        rows = ledger_selector.ledger_rows(account_codes=["1001"])
        assert [r.entry_date.day for r in rows] == [5, 10, 20]
        assert [r.running_balance for r in rows] == [
            Decimal("-1000"),
            Decimal("4000"),
            Decimal("5000"),
        ]

    def test_five_digit_voucher_sorts_after_9999(
        self, session, post_entry, standard_accounts, ledger_selector
    ):
        session.add(
            VoucherCounter(voucher_type="JOURNAL", financial_year="2024-25", last_number=9998)
        )
        session.flush()

        first = post_entry(("1001", 100, 0), ("4001", 0, 100), entry_date=date(2024, 6, 5))
        second = post_entry(("5001", 30, 0), ("1001", 0, 30), entry_date=date(2024, 6, 5))

        assert first.voucher_number == "JNL-2024-25-9999"
        assert second.voucher_number == "JNL-2024-25-10000"
        rows = ledger_selector.ledger_rows(account_codes=["1001"])
        assert [(r.voucher_number, r.running_balance) for r in rows] == [
            ("JNL-2024-25-9999", Decimal("100")),
            ("JNL-2024-25-10000", Decimal("70")),
        ]
        assert [r.voucher_sequence for r in rows] == [9999, 10000]

    def test_last_running_balance_equals_account_balance(
        self, post_entry, standard_accounts, ledger_selector
    ):
        post_entry(("1002", 9000, 0), ("3001", 0, 9000), entry_date=date(2024, 7, 1))
        post_entry(("5002", 3000, 0), ("1002", 0, 3000), entry_date=date(2024, 5, 1))

        rows = ledger_selector.ledger_rows(account_codes=["1002"])
        assert rows[-1].running_balance == standard_accounts["bank"].balance == Decimal("6000")


class TestAccountResolution:

    def test_account_named_in_a_line_is_created(
        self, posting_engine, standard_accounts, test_actor_id
    ):
        request = PostingRequest(
            voucher_type="PAYMENT",
            entry_date=date(2024, 6, 5),
            narration="Stationery",
            lines=(
                RequestLine(
                    debit=Decimal("300"), account_name="Office Supplies", account_type="Expense"
                ),
                RequestLine(credit=Decimal("300"), account_code="1001"),
            ),
        )

        posted = posting_engine.post_request(request, test_actor_id)

        assert posted.lines[0].account_code == "5003"
        assert posted.lines[0].account_name == "Office Supplies"

    def test_inactive_account_is_refused(
        self, post_entry, registry, standard_accounts, test_actor_id, session
    ):
        registry.deactivate("5001", test_actor_id)

        with pytest.raises(AccountInactiveError) as exc_info:
            post_entry(("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT")

        assert exc_info.value.account_code == "5001"
        assert session.execute(select(JournalEntry)).first() is None


class TestRejections:

    def test_unbalanced_entry(self, post_entry, standard_accounts, session):
        with pytest.raises(JournalValidationError) as exc_info:
            post_entry(("5001", 10000, 0), ("1001", 0, 9000), voucher_type="PAYMENT")

        assert exc_info.value.reason_code == ValidationReason.UNBALANCED_ENTRY
        assert exc_info.value.message == "Debits (₹10,000.00) must equal Credits (₹9,000.00)"
        assert session.execute(select(LedgerEntry)).first() is None

    def test_rejection_is_logged(self, post_entry, standard_accounts, captured_logs):
        with pytest.raises(JournalValidationError):
            post_entry(("5001", 100, 0), ("1001", 0, 100), narration="")

        records = [r for r in captured_logs() if r["message"] == "journal_entry_rejected"]
        assert records[-1]["reason_code"] == ValidationReason.MISSING_NARRATION

    def test_closed_year_is_locked(
        self, post_entry, standard_accounts, year_close_service, test_actor_id
    ):
        year_close_service.close("2024-25", test_actor_id)

        with pytest.raises(JournalValidationError) as exc_info:
            post_entry(("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT")

        assert exc_info.value.reason_code == ValidationReason.LOCKED_PERIOD

    def test_post_checks_closed_years_too(
        self, posting_engine, standard_accounts, make_request, year_close_service, test_actor_id
    ):
        validated = posting_engine.validator.validate(
            make_request(("5001", 100, 0), ("1001", 0, 100))
        ).raise_for_error()
        year_close_service.close("2024-25", test_actor_id)

        with pytest.raises(JournalValidationError) as exc_info:
            posting_engine.post(validated, test_actor_id)

        assert exc_info.value.reason_code == ValidationReason.LOCKED_PERIOD


class TestBalanceInvariant:
    """A read-back mismatch trips the guard and blocks further posting."""

    @pytest.fixture
    def corrupt_debits(self, monkeypatch):
        original = LedgerPostingEngine._append_ledger_row

        def _bumped(self, journal, line, account, particulars, actor_id):
            if line.debit > 0:
                line = dataclasses.replace(line, debit=line.debit + 1)
            return original(self, journal, line, account, particulars, actor_id)

        monkeypatch.setattr(LedgerPostingEngine, "_append_ledger_row", _bumped)
        return monkeypatch

    def test_mismatch_trips_the_guard(
        self, corrupt_debits, post_entry, standard_accounts, ledger, session, captured_logs
    ):
        with pytest.raises(InvariantViolationError) as exc_info:
            post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")

        assert exc_info.value.invariant == ENTRY_BALANCE_INVARIANT
        assert ledger.guard.is_blocked
        assert session.execute(select(JournalEntry)).first() is None
        critical = [r for r in captured_logs() if r["message"] == "invariant_violation"]
        assert critical and critical[-1]["level"] == "CRITICAL"

    def test_drifted_account_balance_trips_the_ledger_check(
        self, post_entry, standard_accounts, ledger, session, captured_logs
    ):
        post_entry(("1001", 5000, 0), ("3001", 0, 5000))
        standard_accounts["cash"].balance += Decimal("7")
        session.flush()

        with pytest.raises(InvariantViolationError) as exc_info:
            post_entry(("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT")

        assert exc_info.value.invariant == LEDGER_BALANCE_INVARIANT
        assert ledger.guard.is_blocked
        assert "account balances" in ledger.guard.reason
        violation = [r for r in captured_logs() if r["message"] == "invariant_violation"][-1]
        assert violation["invariant"] == LEDGER_BALANCE_INVARIANT
        assert session.execute(
            select(JournalEntry).where(JournalEntry.voucher_type == "PAYMENT")
        ).first() is None

    def test_blocked_books_refuse_postings_until_resolved(
        self, corrupt_debits, post_entry, standard_accounts, ledger
    ):
        with pytest.raises(InvariantViolationError):
            post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")
        corrupt_debits.undo()

        with pytest.raises(BooksBlockedError):
            post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")

        ledger.guard.resolve()
        posted = post_entry(("5001", 10000, 0), ("1001", 0, 10000), voucher_type="PAYMENT")
        assert posted.voucher_number == "PAY-2024-25-0001"
        assert standard_accounts["cash"].balance == Decimal("-10000")
