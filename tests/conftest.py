"""
Pytest fixtures for the bookkeeping test suite.

Provides:
- An in-memory SQLite engine shared by the whole session
- Per-test sessions that roll back everything the test wrote
- Service fixtures wired to one Ledger with a deterministic clock
- Account and posting-request factories

Tests that need real commits (facade, concurrency) build their own
file-backed engine under ``tmp_path``.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from bookkeeping_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from bookkeeping_kernel.domain.clock import DeterministicClock
from bookkeeping_kernel.domain.dtos import PostingRequest, RequestLine
from bookkeeping_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from bookkeeping_kernel.models.account import Account
from bookkeeping_kernel.selectors.ledger_selector import LedgerSelector
from bookkeeping_kernel.services.account_registry import AccountRegistry
from bookkeeping_kernel.services.ledger import Ledger
from bookkeeping_kernel.services.posting_engine import LedgerPostingEngine
from bookkeeping_kernel.services.reversal_service import ReversalService
from bookkeeping_kernel.services.voucher_numbering import VoucherNumbering
from bookkeeping_kernel.services.year_close_service import YearCloseService
from bookkeeping_services.books_service import BooksService
from bookkeeping_services.reconciliation_service import ReconciliationService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

# Default voucher date: inside financial year 2024-25
DEFAULT_DATE = date(2024, 6, 5)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture bookkeeping_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, post_entry):
            post_entry(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_entry_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("bookkeeping_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the entire test session."""
    eng = init_engine_from_url("sqlite://")
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    create_tables(db_engine)
    yield
    drop_tables(db_engine)


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` only releases a savepoint and teardown rolls the
    outer transaction back, so no test sees another test's rows.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Ledger and services
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def ledger(deterministic_clock) -> Ledger:
    return Ledger(name="test-books", clock=deterministic_clock, lock_timeout=5.0)


@pytest.fixture
def registry(session: Session, ledger: Ledger) -> AccountRegistry:
    return AccountRegistry(session, ledger)


@pytest.fixture
def numbering(session: Session, ledger: Ledger) -> VoucherNumbering:
    return VoucherNumbering(session, ledger)


@pytest.fixture
def posting_engine(session: Session, ledger: Ledger) -> LedgerPostingEngine:
    return LedgerPostingEngine(session, ledger)


@pytest.fixture
def reversal_service(session: Session, ledger: Ledger, posting_engine) -> ReversalService:
    return ReversalService(session, ledger, posting_engine)


@pytest.fixture
def year_close_service(session: Session, ledger: Ledger) -> YearCloseService:
    return YearCloseService(session, ledger)


@pytest.fixture
def books(session: Session, ledger: Ledger) -> BooksService:
    return BooksService(session, ledger)


@pytest.fixture
def reconciliation_service(session: Session, ledger: Ledger) -> ReconciliationService:
    return ReconciliationService(session, ledger)


@pytest.fixture
def ledger_selector(session: Session) -> LedgerSelector:
    return LedgerSelector(session)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_account(registry: AccountRegistry, test_actor_id: UUID):
    """Factory fixture to create test accounts with explicit codes."""

    def _create_account(
        code: str,
        name: str,
        group: str | None = None,
        is_cash_or_bank: bool | None = None,
    ) -> Account:
        return registry.create(
            code=code,
            name=name,
            actor_id=test_actor_id,
            group=group,
            is_cash_or_bank=is_cash_or_bank,
        )

    return _create_account


@pytest.fixture
def standard_accounts(create_account) -> dict[str, Account]:
    """A small business chart of accounts, one per common role."""
    return {
        "cash": create_account("1001", "Cash"),
        "bank": create_account("1002", "HDFC Bank"),
        "receivables": create_account("1100", "Accounts Receivable"),
        "payables": create_account("2001", "Accounts Payable"),
        "capital": create_account("3001", "Owner Capital"),
        "sales": create_account("4001", "Sales"),
        "rent": create_account("5001", "Rent Expense"),
        "salary": create_account("5002", "Salary Expense"),
    }


@pytest.fixture
def make_request():
    """
    Factory for PostingRequests.

    Lines are ``(account_code, debit, credit)`` tuples::

        make_request(("5001", 100, 0), ("1001", 0, 100), voucher_type="PAYMENT")
    """

    def _make_request(
        *lines: tuple[str, object, object],
        voucher_type: str = "JOURNAL",
        entry_date: date | None = DEFAULT_DATE,
        narration: str = "Test voucher",
        reference: str | None = None,
        payment_mode: str | None = None,
        party_details: dict | None = None,
    ) -> PostingRequest:
        return PostingRequest(
            voucher_type=voucher_type,
            entry_date=entry_date,
            narration=narration,
            lines=tuple(
                RequestLine(
                    debit=Decimal(str(debit)),
                    credit=Decimal(str(credit)),
                    account_code=code,
                )
                for code, debit, credit in lines
            ),
            reference=reference,
            payment_mode=payment_mode,
            party_details=party_details or {},
        )

    return _make_request


@pytest.fixture
def post_entry(posting_engine: LedgerPostingEngine, make_request, test_actor_id: UUID):
    """Validate and post one voucher built by ``make_request``."""

    def _post_entry(*lines, **kwargs):
        return posting_engine.post_request(make_request(*lines, **kwargs), test_actor_id)

    return _post_entry
