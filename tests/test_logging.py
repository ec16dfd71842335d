"""
What the books write to the log: posting, reconciliation and invariant
events as JSON lines, with the bound book context and exact amounts.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from bookkeeping_kernel.domain.dtos import BankTransactionInput
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import VoucherType
from bookkeeping_kernel.exceptions import EntryLockedError, InvariantViolationError
from bookkeeping_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


def _events(captured_logs, message: str) -> list[dict]:
    return [r for r in captured_logs() if r["message"] == message]


class TestPostingEvents:

    def test_journal_entry_posted(self, post_entry, standard_accounts, test_actor_id, captured_logs):
        posted = post_entry(
            ("5001", "10000.50", 0), ("1001", 0, "10000.50"), voucher_type="PAYMENT"
        )

        (record,) = _events(captured_logs, "journal_entry_posted")
        assert record["level"] == "INFO"
        assert record["logger"] == "bookkeeping_kernel.services.posting_engine"
        assert record["voucher_number"] == posted.voucher_number == "PAY-2024-25-0001"
        assert record["entry_id"] == str(posted.entry_id)
        assert record["voucher_type"] == "PAYMENT"
        assert record["entry_date"] == "2024-06-05"
        assert Decimal(record["total_debit"]) == Decimal("10000.50")
        assert record["line_count"] == 2
        assert record["actor_id"] == str(test_actor_id)

    def test_voucher_context_is_released_after_posting(
        self, post_entry, standard_accounts, captured_logs
    ):
        post_entry(("1001", 100, 0), ("4001", 0, 100))
        get_logger("tests").info("after_posting")

        (after,) = _events(captured_logs, "after_posting")
        assert "voucher_number" not in after
        assert "entry_id" not in after

    def test_invariant_violation(
        self, post_entry, standard_accounts, session, ledger, captured_logs
    ):
        post_entry(("1001", 5000, 0), ("3001", 0, 5000))
        standard_accounts["bank"].balance += Decimal("0.50")
        session.flush()

        with pytest.raises(InvariantViolationError):
            post_entry(("1002", 200, 0), ("4001", 0, 200), voucher_type="RECEIPT")

        (violation,) = _events(captured_logs, "invariant_violation")
        assert violation["level"] == "CRITICAL"
        assert violation["invariant"] == "ledger_balance"
        assert violation["voucher_number"] == "REC-2024-25-0001"
        assert violation["entry_id"]
        assert "account balances" in violation["detail"]
        (blocked,) = _events(captured_logs, "ledger_blocked")
        assert blocked["ledger_name"] == ledger.name


class TestReconciliationEvents:

    def test_reconciliation_matched(
        self, post_entry, standard_accounts, reconciliation_service, test_actor_id, captured_logs
    ):
        receipt = post_entry(
            ("1002", 5000, 0), ("4001", 0, 5000), voucher_type="RECEIPT", narration="Invoice 12"
        )

        reconciliation_service.reconcile(
            BankTransactionInput(
                id="STMT-0042",
                txn_date=date(2024, 6, 5),
                amount=Decimal("5000"),
                description="NEFT ABC TRADERS",
            ),
            test_actor_id,
        )

        (matched,) = _events(captured_logs, "reconciliation_matched")
        assert matched["bank_txn_id"] == "STMT-0042"
        assert matched["match_type"] == "EXACT"
        assert Decimal(matched["confidence"]) == Decimal("1")
        assert matched["voucher_number"] == receipt.voucher_number
        assert LogContext.get_all() == {}


class TestFormatter:

    @pytest.fixture
    def stream(self):
        reset_logging()
        stream = StringIO()
        configure_logging(stream=stream, level=logging.DEBUG)
        yield stream
        reset_logging()
        configure_logging(level=logging.DEBUG)

    @staticmethod
    def _lines(stream: StringIO) -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    def test_book_values_are_written_as_codes(self, stream):
        get_logger("tests").info(
            "closing_figures",
            extra={
                "amount": Decimal("1E+5"),
                "balance": Decimal("2500.500000000"),
                "financial_year": FinancialYear(2024),
                "voucher_type": VoucherType.DEBIT_NOTE,
                "as_of": date(2025, 3, 31),
            },
        )

        (record,) = self._lines(stream)
        assert record["amount"] == "100000"
        assert record["balance"] == "2500.500000000"
        assert record["financial_year"] == "2024-25"
        assert record["voucher_type"] == "DEBIT_NOTE"
        assert record["as_of"] == "2025-03-31"

    def test_kernel_error_carries_code_family_and_context(self, stream):
        try:
            raise EntryLockedError("PAY-2024-25-0007", "2024-25")
        except EntryLockedError:
            get_logger("tests").error("void_refused", exc_info=True)

        (record,) = self._lines(stream)
        assert record["exc_type"] == "EntryLockedError"
        assert record["exc_code"] == "ENTRY_LOCKED"
        assert record["exc_family"] == "ReversalError"
        assert record["exc_voucher_number"] == "PAY-2024-25-0007"
        assert record["exc_financial_year"] == "2024-25"
        assert "traceback" in record

    def test_foreign_error_has_no_kernel_fields(self, stream):
        try:
            raise OSError("disk full")
        except OSError:
            get_logger("tests").error("export_failed", exc_info=True)

        (record,) = self._lines(stream)
        assert record["exc_type"] == "OSError"
        assert record["exc_message"] == "disk full"
        assert "exc_code" not in record
        assert "exc_family" not in record

    def test_second_configuration_is_ignored(self, stream):
        configure_logging(stream=StringIO(), level=logging.ERROR)

        root = logging.getLogger("bookkeeping_kernel")
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG
        assert root.propagate is False


class TestLogContext:

    def test_bind_nests_and_restores(self):
        with LogContext.bind(ledger="shop", correlation_id="outer"):
            with LogContext.voucher("JNL-2024-25-0001", "e-1"):
                assert LogContext.get_all() == {
                    "ledger": "shop",
                    "correlation_id": "outer",
                    "voucher_number": "JNL-2024-25-0001",
                    "entry_id": "e-1",
                }
            assert LogContext.get_all() == {"ledger": "shop", "correlation_id": "outer"}
        assert LogContext.get_all() == {}

    def test_bind_restores_after_an_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(bank_txn_id="T9"):
                raise RuntimeError("matcher crashed")

        assert LogContext.get_all() == {}

    def test_none_values_are_skipped(self):
        with LogContext.bind(actor_id=None, bank_txn_id="T1"):
            assert LogContext.get_all() == {"bank_txn_id": "T1"}

    def test_unknown_field_is_refused(self):
        with pytest.raises(TypeError, match="voucher_no"):
            LogContext.set(voucher_no="PAY-2024-25-0001")
        with pytest.raises(TypeError):
            with LogContext.bind(ledger="shop", account="1001"):
                pass

        assert LogContext.get_all() == {}

    def test_fields_follow_a_fixed_order(self):
        LogContext.set(**{name: name.upper() for name in reversed(CONTEXT_FIELDS)})

        assert list(LogContext.get_all()) == list(CONTEXT_FIELDS)

    def test_formatter_stamps_context(self):
        record = logging.LogRecord("bookkeeping_kernel.tests", logging.INFO, "", 0, "hi", (), None)

        with LogContext.bind(ledger="shop", bank_txn_id="T1"):
            payload = json.loads(StructuredFormatter().format(record))

        assert payload["ledger"] == "shop"
        assert payload["bank_txn_id"] == "T1"
