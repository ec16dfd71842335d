"""
bookkeeping_services.bookkeeper -- Stable boundary for external callers.

Responsibility:
    Runs each bookkeeping operation in its own transaction
    (``session_scope``) and turns the outcome into a BookkeepingResult:
    the payload on success, an actionable message when the caller's input
    was refused, or a generic failure carrying an audit reference id.

Architecture position:
    Services -- top of the service layer.  Entry forms, statement
    importers and other collaborators talk to this class only.

Invariants enforced:
    - One operation, one transaction: commit on success, rollback on any
      error.  Nothing is partially applied.
    - Internal error details never reach the caller; they are logged with
      the reference id returned in the result.
    - Invariant violations are logged as ``invariant_violation`` at
      CRITICAL, distinct from every other failure.

Usage:
    bookkeeper = Bookkeeper.from_settings(load_settings())
    result = bookkeeper.post(request_mapping, actor_id)
    if result.is_success:
        print(result.payload.voucher_number)
    elif result.is_rejected:
        show(result.message)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from bookkeeping_config.bridges import build_ledger, matching_thresholds
from bookkeeping_config.settings import BookkeepingSettings
from bookkeeping_engines.reconciliation.matching import DEFAULT_THRESHOLDS, MatchingThresholds
from bookkeeping_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from bookkeeping_kernel.domain.clock import Clock
from bookkeeping_kernel.domain.dtos import BankTransactionInput, PostingRequest
from bookkeeping_kernel.exceptions import (
    AccountError,
    InvariantViolationError,
    PeriodError,
    ReconciliationError,
    ReversalError,
    ValidationError,
)
from bookkeeping_kernel.logging_config import LogContext, configure_logging, get_logger
from bookkeeping_kernel.selectors.ledger_selector import AccountInfo
from bookkeeping_kernel.services.account_registry import AccountRegistry
from bookkeeping_kernel.services.ledger import Ledger
from bookkeeping_kernel.services.posting_engine import LedgerPostingEngine
from bookkeeping_kernel.services.reversal_service import ReversalService
from bookkeeping_kernel.services.year_close_service import YearCloseService
from bookkeeping_services.books_service import BooksService
from bookkeeping_services.reconciliation_service import ReconciliationService

logger = get_logger("services.bookkeeper")

T = TypeVar("T")

# Refusals the caller can act on; everything else is an internal failure.
_CALLER_ERRORS = (ValidationError, AccountError, ReversalError, PeriodError, ReconciliationError)

INVALID_REQUEST = "INVALID_REQUEST"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class BookkeepingResult:
    """
    Outcome of one Bookkeeper call.

    ``error_code`` is the validator reason code (e.g. UNBALANCED_ENTRY) or
    the exception code for other refusals.  Failures carry only
    ``reference_id``; the details are in the log under the same id.
    """

    status: ResultStatus
    payload: Any = None
    error_code: str | None = None
    message: str | None = None
    reference_id: str | None = None

    @classmethod
    def success(cls, payload: Any) -> BookkeepingResult:
        return cls(status=ResultStatus.SUCCESS, payload=payload)

    @classmethod
    def rejected(cls, code: str, message: str) -> BookkeepingResult:
        return cls(status=ResultStatus.REJECTED, error_code=code, message=message)

    @classmethod
    def failure(cls, reference_id: str) -> BookkeepingResult:
        return cls(
            status=ResultStatus.FAILED,
            message=f"Internal error; reference {reference_id}",
            reference_id=reference_id,
        )

    @property
    def is_success(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    @property
    def is_rejected(self) -> bool:
        return self.status == ResultStatus.REJECTED

    @property
    def is_failure(self) -> bool:
        return self.status == ResultStatus.FAILED


class Bookkeeper:
    """
    Facade over posting, corrections, derived books, reconciliation and
    year close for one set of books.

    Contract:
        Every public method returns a BookkeepingResult and never raises
        for a bookkeeping outcome.

    Non-goals:
        - Does NOT authenticate or authorize ``actor_id``.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        ledger: Ledger,
        thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
        unusual_multiplier: Decimal = Decimal("5"),
        stale_days: int = 7,
    ):
        self._session_factory = session_factory
        self._ledger = ledger
        self._thresholds = thresholds
        self._unusual_multiplier = unusual_multiplier
        self._stale_days = stale_days

    @classmethod
    def from_settings(cls, settings: BookkeepingSettings, clock: Clock | None = None) -> Bookkeeper:
        """Initialize the database engine and build a Bookkeeper from settings."""
        configure_logging(level=settings.log_level_number)
        engine = init_engine_from_url(settings.database_url, echo=settings.echo_sql)
        create_tables(engine)
        return cls(
            session_factory=get_session_factory(),
            ledger=build_ledger(settings, clock),
            thresholds=matching_thresholds(settings),
            unusual_multiplier=settings.reconciliation.unusual_amount_multiplier,
            stale_days=settings.reconciliation.stale_unmatched_days,
        )

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    # ------------------------------------------------------------------
    # Chart of accounts
    # ------------------------------------------------------------------

    def create_account(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        group: str | None = None,
        is_cash_or_bank: bool | None = None,
    ) -> BookkeepingResult:
        """Payload is the new account's AccountInfo."""
        return self._run(
            "create_account",
            actor_id,
            lambda session: AccountInfo.from_model(
                AccountRegistry(session, self._ledger).create(
                    code=code,
                    name=name,
                    actor_id=actor_id,
                    group=group,
                    is_cash_or_bank=is_cash_or_bank,
                )
            ),
        )

    def deactivate_account(self, code: str, actor_id: UUID) -> BookkeepingResult:
        return self._run(
            "deactivate_account",
            actor_id,
            lambda session: AccountInfo.from_model(
                AccountRegistry(session, self._ledger).deactivate(code, actor_id)
            ),
        )

    # ------------------------------------------------------------------
    # Posting and corrections
    # ------------------------------------------------------------------

    def post(
        self, request: PostingRequest | Mapping[str, Any], actor_id: UUID
    ) -> BookkeepingResult:
        """Validate and post one voucher; the payload is the PostedEntry."""
        try:
            parsed = _as_posting_request(request)
        except (ValueError, InvalidOperation) as exc:
            return self._reject_input("post", exc)
        return self._run(
            "post",
            actor_id,
            lambda session: LedgerPostingEngine(session, self._ledger).post_request(
                parsed, actor_id
            ),
        )

    def void(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        void_date: date | None = None,
    ) -> BookkeepingResult:
        return self._run(
            "void",
            actor_id,
            lambda session: ReversalService(session, self._ledger).void(
                entry_id, reason, actor_id, void_date
            ),
        )

    def reclassify(
        self,
        entry_id: UUID,
        line_index: int,
        new_account: str,
        reason: str,
        actor_id: UUID,
        account_type: str | None = None,
    ) -> BookkeepingResult:
        return self._run(
            "reclassify",
            actor_id,
            lambda session: ReversalService(session, self._ledger).reclassify(
                entry_id, line_index, new_account, reason, actor_id, account_type
            ),
        )

    def split(
        self,
        entry_id: UUID,
        replacements: Sequence[PostingRequest | Mapping[str, Any]],
        reason: str,
        actor_id: UUID,
    ) -> BookkeepingResult:
        try:
            parsed = [_as_posting_request(r) for r in replacements]
        except (ValueError, InvalidOperation) as exc:
            return self._reject_input("split", exc)
        if not parsed:
            return BookkeepingResult.rejected(
                INVALID_REQUEST, "A split needs at least one replacement voucher"
            )
        return self._run(
            "split",
            actor_id,
            lambda session: ReversalService(session, self._ledger).split(
                entry_id, parsed, reason, actor_id
            ),
        )

    # ------------------------------------------------------------------
    # Derived books
    # ------------------------------------------------------------------

    def ledger_view(
        self, account_code: str, from_date: date | None = None, to_date: date | None = None
    ) -> BookkeepingResult:
        return self._read(
            "ledger_view",
            lambda books: books.ledger_view(account_code, from_date, to_date),
        )

    def trial_balance(self, as_of: date | None = None) -> BookkeepingResult:
        return self._read("trial_balance", lambda books: books.trial_balance(as_of))

    def cash_book(
        self, from_date: date | None = None, to_date: date | None = None
    ) -> BookkeepingResult:
        return self._read("cash_book", lambda books: books.cash_book(from_date, to_date))

    def bank_book(
        self, from_date: date | None = None, to_date: date | None = None
    ) -> BookkeepingResult:
        return self._read("bank_book", lambda books: books.bank_book(from_date, to_date))

    def profit_and_loss(
        self, from_date: date | None = None, to_date: date | None = None
    ) -> BookkeepingResult:
        return self._read(
            "profit_and_loss", lambda books: books.profit_and_loss(from_date, to_date)
        )

    def balance_sheet(self, as_of: date | None = None) -> BookkeepingResult:
        return self._read("balance_sheet", lambda books: books.balance_sheet(as_of))

    def day_book(
        self, from_date: date | None = None, to_date: date | None = None
    ) -> BookkeepingResult:
        return self._read("day_book", lambda books: books.day_book(from_date, to_date))

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def reconcile_statement(
        self,
        transactions: Sequence[BankTransactionInput | Mapping[str, Any]],
        actor_id: UUID,
    ) -> BookkeepingResult:
        """Payload is a StatementReconciliation (records plus summary)."""
        try:
            parsed = [
                t if isinstance(t, BankTransactionInput) else BankTransactionInput.from_mapping(t)
                for t in transactions
            ]
        except (KeyError, ValueError, InvalidOperation) as exc:
            return self._reject_input("reconcile_statement", exc)
        return self._run(
            "reconcile_statement",
            actor_id,
            lambda session: self._reconciliation(session).reconcile_statement(parsed, actor_id),
        )

    def manual_reconcile(
        self,
        bank_transaction_id: str,
        ledger_entry_id: UUID,
        actor_id: UUID,
        note: str | None = None,
    ) -> BookkeepingResult:
        return self._run(
            "manual_reconcile",
            actor_id,
            lambda session: self._reconciliation(session).manual_reconcile(
                bank_transaction_id, ledger_entry_id, actor_id, note
            ),
        )

    def review_queue(self) -> BookkeepingResult:
        return self._run(
            "review_queue", None, lambda session: self._reconciliation(session).review_queue()
        )

    def reconciliation_summary(self) -> BookkeepingResult:
        return self._run(
            "reconciliation_summary", None, lambda session: self._reconciliation(session).summary()
        )

    def detect_anomalies(self, as_of: date | None = None) -> BookkeepingResult:
        return self._run(
            "detect_anomalies",
            None,
            lambda session: self._reconciliation(session).detect_anomalies(as_of),
        )

    # ------------------------------------------------------------------
    # Year close
    # ------------------------------------------------------------------

    def close_year(self, financial_year: str, actor_id: UUID) -> BookkeepingResult:
        return self._run(
            "close_year",
            actor_id,
            lambda session: YearCloseService(session, self._ledger).close(
                financial_year, actor_id
            ),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reconciliation(self, session: Session) -> ReconciliationService:
        return ReconciliationService(
            session,
            self._ledger,
            self._thresholds,
            unusual_multiplier=self._unusual_multiplier,
            stale_days=self._stale_days,
        )

    def _read(self, operation: str, work: Callable[[BooksService], T]) -> BookkeepingResult:
        return self._run(operation, None, lambda session: work(BooksService(session, self._ledger)))

    def _reject_input(self, operation: str, exc: Exception) -> BookkeepingResult:
        logger.info(
            "bookkeeping_rejected",
            extra={"operation": operation, "error_code": INVALID_REQUEST, "detail": str(exc)},
        )
        return BookkeepingResult.rejected(INVALID_REQUEST, f"Invalid request: {exc}")

    def _run(
        self,
        operation: str,
        actor_id: UUID | None,
        work: Callable[[Session], T],
    ) -> BookkeepingResult:
        with LogContext.bind(
            ledger=self._ledger.name, correlation_id=str(uuid4()), actor_id=actor_id
        ):
            try:
                with session_scope(self._session_factory) as session:
                    payload = work(session)
            except _CALLER_ERRORS as exc:
                code = getattr(exc, "reason_code", None) or exc.code
                logger.info(
                    "bookkeeping_rejected",
                    extra={"operation": operation, "error_code": code},
                )
                return BookkeepingResult.rejected(code, str(exc))
            except InvariantViolationError:
                reference_id = _new_reference_id()
                logger.critical(
                    "invariant_violation",
                    exc_info=True,
                    extra={"operation": operation, "reference_id": reference_id},
                )
                return BookkeepingResult.failure(reference_id)
            except Exception:
                reference_id = _new_reference_id()
                logger.error(
                    "bookkeeping_failure",
                    exc_info=True,
                    extra={"operation": operation, "reference_id": reference_id},
                )
                return BookkeepingResult.failure(reference_id)
        return BookkeepingResult.success(payload)


def _as_posting_request(request: PostingRequest | Mapping[str, Any]) -> PostingRequest:
    if isinstance(request, PostingRequest):
        return request
    return PostingRequest.from_mapping(request)


def _new_reference_id() -> str:
    return uuid4().hex[:12].upper()
