"""VoucherNumbering: per (voucher type, financial year) keyed sequences."""

import pytest
from sqlalchemy import select

from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import VoucherType
from bookkeeping_kernel.models.voucher_counter import VoucherCounter
from bookkeeping_kernel.services.ledger import counter_key


class TestNext:

    def test_first_number_of_a_key(self, numbering):
        assert numbering.next(VoucherType.PAYMENT, "2024-25") == "PAY-2024-25-0001"

    def test_numbers_increase_by_one(self, numbering):
        numbers = [numbering.next("PAYMENT", "2024-25") for _ in range(3)]

        assert numbers == ["PAY-2024-25-0001", "PAY-2024-25-0002", "PAY-2024-25-0003"]
        assert numbering.current("PAYMENT", "2024-25") == 3

    def test_keys_are_independent(self, numbering):
        numbering.next(VoucherType.PAYMENT, "2024-25")
        numbering.next(VoucherType.PAYMENT, "2024-25")

        assert numbering.next(VoucherType.RECEIPT, "2024-25") == "REC-2024-25-0001"
        assert numbering.next(VoucherType.PAYMENT, FinancialYear(2025)) == "PAY-2025-26-0001"

    def test_one_counter_row_per_key(self, numbering, session):
        numbering.next(VoucherType.SALES, "2024-25")
        numbering.next(VoucherType.SALES, "2024-25")

        counters = session.execute(
            select(VoucherCounter).where(VoucherCounter.voucher_type == "SALES")
        ).scalars().all()
        assert len(counters) == 1
        assert counters[0].last_number == 2

    def test_counter_lock_is_held_until_the_transaction_ends(self, numbering, session, ledger):
        numbering.next(VoucherType.JOURNAL, "2024-25")

        assert ledger.locks.is_held(session, counter_key("JOURNAL", "2024-25"))

    def test_rollback_returns_the_number(self, numbering, session):
        savepoint = session.begin_nested()
        numbering.next(VoucherType.MEMO, "2024-25")
        savepoint.rollback()

        assert numbering.current(VoucherType.MEMO, "2024-25") == 0
        assert numbering.next(VoucherType.MEMO, "2024-25") == "MEM-2024-25-0001"

    def test_allocation_is_logged(self, numbering, captured_logs):
        numbering.next(VoucherType.CONTRA, "2024-25")

        records = [r for r in captured_logs() if r["message"] == "voucher_number_allocated"]
        assert records[-1]["voucher_number"] == "CON-2024-25-0001"
        assert records[-1]["sequence"] == 1

    def test_unknown_voucher_type(self, numbering):
        with pytest.raises(ValueError):
            numbering.next("INVOICE", "2024-25")

    def test_bad_financial_year(self, numbering):
        with pytest.raises(ValueError):
            numbering.next(VoucherType.PAYMENT, "2024-26")


class TestCurrent:

    def test_unused_key_is_zero(self, numbering):
        assert numbering.current(VoucherType.PURCHASE, "2024-25") == 0

    def test_current_does_not_increment(self, numbering):
        numbering.next(VoucherType.PURCHASE, "2024-25")
        numbering.current(VoucherType.PURCHASE, "2024-25")

        assert numbering.next(VoucherType.PURCHASE, "2024-25") == "PUR-2024-25-0002"

    def test_parse_round_trips_issued_numbers(self, numbering):
        issued = numbering.next(VoucherType.CREDIT_NOTE, "2024-25")

        parsed = numbering.parse(issued)
        assert (parsed.voucher_type, parsed.sequence) == (VoucherType.CREDIT_NOTE, 1)
