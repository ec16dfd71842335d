"""
Concurrent voucher numbering and posting against a file-backed database.

Each worker thread owns its session and commits for real, so these tests
build their own engine under ``tmp_path`` instead of using the rollback
session fixture.

Skip with: pytest -m "not slow_locks"
"""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from bookkeeping_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from bookkeeping_kernel.domain.clock import DeterministicClock
from bookkeeping_kernel.domain.dtos import PostingRequest, RequestLine
from bookkeeping_kernel.domain.voucher_types import VoucherType
from bookkeeping_kernel.models.ledger import LedgerEntry
from bookkeeping_kernel.services.account_registry import AccountRegistry
from bookkeeping_kernel.services.ledger import Ledger
from bookkeeping_kernel.services.posting_engine import LedgerPostingEngine
from bookkeeping_kernel.services.voucher_numbering import VoucherNumbering, parse_voucher_number

pytestmark = pytest.mark.slow_locks

THREADS = 8
PER_THREAD = 5


@pytest.fixture
def file_session_factory(tmp_path):
    engine = init_engine_from_url(f"sqlite:///{tmp_path / 'books.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def shared_ledger() -> Ledger:
    return Ledger(name="concurrent-books", clock=DeterministicClock(), lock_timeout=30.0)


def _run_threads(target, count: int) -> list[BaseException]:
    errors: list[BaseException] = []
    barrier = threading.Barrier(count)

    def _worker(index: int) -> None:
        try:
            barrier.wait()
            target(index)
        except BaseException as exc:  # noqa: BLE001  (reported to the main thread)
            errors.append(exc)

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=120)
    return errors


class TestConcurrentNumbering:

    def test_no_duplicates_and_no_gaps(self, file_session_factory, shared_ledger):
        issued: list[str] = []
        issued_lock = threading.Lock()

        def _allocate(_index: int) -> None:
            for _ in range(PER_THREAD):
                with session_scope(file_session_factory) as session:
                    number = VoucherNumbering(session, shared_ledger).next(
                        VoucherType.PAYMENT, "2024-25"
                    )
                with issued_lock:
                    issued.append(number)

        errors = _run_threads(_allocate, THREADS)

        assert not errors, errors
        sequences = sorted(parse_voucher_number(n).sequence for n in issued)
        assert sequences == list(range(1, THREADS * PER_THREAD + 1))

    def test_rolled_back_allocations_are_reissued(self, file_session_factory, shared_ledger):
        def _allocate_and_abort(_index: int) -> None:
            with pytest.raises(RuntimeError):
                with session_scope(file_session_factory) as session:
                    VoucherNumbering(session, shared_ledger).next(VoucherType.RECEIPT, "2024-25")
                    raise RuntimeError("abort")

        errors = _run_threads(_allocate_and_abort, 4)

        assert not errors, errors
        with session_scope(file_session_factory) as session:
            numbering = VoucherNumbering(session, shared_ledger)
            assert numbering.current(VoucherType.RECEIPT, "2024-25") == 0
            assert numbering.next(VoucherType.RECEIPT, "2024-25") == "REC-2024-25-0001"


class TestConcurrentPosting:

    def test_running_balance_stays_consistent(self, file_session_factory, shared_ledger):
        actor_id = uuid4()
        with session_scope(file_session_factory) as session:
            registry = AccountRegistry(session, shared_ledger)
            registry.create(code="1001", name="Cash", actor_id=actor_id)
            registry.create(code="4001", name="Sales", actor_id=actor_id)

        def _post(index: int) -> None:
            request = PostingRequest(
                voucher_type="RECEIPT",
                entry_date=date(2024, 6, 1 + index),
                narration=f"Cash sale {index}",
                lines=(
                    RequestLine(debit=Decimal("100"), account_code="1001"),
                    RequestLine(credit=Decimal("100"), account_code="4001"),
                ),
            )
            with session_scope(file_session_factory) as session:
                LedgerPostingEngine(session, shared_ledger).post_request(request, actor_id)

        errors = _run_threads(_post, THREADS)

        assert not errors, errors
        with session_scope(file_session_factory) as session:
            rows = session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.account_code == "1001")
                .order_by(LedgerEntry.entry_date, LedgerEntry.voucher_number)
            ).scalars().all()
            assert len(rows) == THREADS
            assert [r.running_balance for r in rows] == [
                Decimal("100") * (i + 1) for i in range(THREADS)
            ]
            voucher_count = session.execute(
                select(func.count(func.distinct(LedgerEntry.voucher_number)))
            ).scalar_one()
            assert voucher_count == THREADS
