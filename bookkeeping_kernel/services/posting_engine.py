"""
LedgerPostingEngine -- the single write path into the books.

Responsibility:
    Turns a ValidatedEntry into a POSTED JournalEntry with its lines and
    materializes one LedgerEntry per line on the owning account, keeping
    every account's running balance correct.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by the Bookkeeper facade and by ReversalService.  Uses
    AccountRegistry for account resolution and VoucherNumbering for the
    voucher number.

Invariants enforced:
    - Atomicity: the whole posting runs in one savepoint.  Either every
      line is written (journal, lines, ledger rows, balances, number) or
      nothing is.
    - Running balance: for each account, rows ordered by (entry_date,
      voucher_type, voucher_sequence, line_index) satisfy running_balance =
      previous + debit - credit.  A back-dated posting re-sequences later rows.
    - Per-account serialization: account locks are held in sorted code
      order until the caller's transaction ends.
    - Balance: after writing, the entry's lines and its ledger rows are
      re-read and must balance within tolerance and agree with each other.
      Across the whole ledger, the net of all rows must equal the net of
      all voucher totals and the sum of account balances.  A mismatch trips
      the LedgerGuard.

Failure modes:
    - BooksBlockedError: the guard was tripped earlier.
    - AccountInactiveError: a line targets a deactivated account.
    - JournalValidationError: the entry's financial year is closed.
    - InvariantViolationError: read-back check failed (posting rolled back).
    - PostingRollbackError: a database error aborted the posting.

Audit relevance:
    ``journal_entry_posted`` is logged with the voucher number, totals,
    actor and duration.  ``invariant_violation`` is logged at CRITICAL.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.dtos import (
    JournalStatus,
    LedgerRowStatus,
    MovementStatus,
    PostedEntry,
    PostingRequest,
    ValidatedEntry,
    ValidatedLine,
)
from bookkeeping_kernel.domain.journal_validator import JournalValidator, ValidationReason
from bookkeeping_kernel.exceptions import (
    AccountInactiveError,
    BookkeepingError,
    InvariantViolationError,
    JournalValidationError,
    PostingRollbackError,
)
from bookkeeping_kernel.logging_config import LogContext, get_logger
from bookkeeping_kernel.models.account import Account
from bookkeeping_kernel.models.journal import JournalEntry, JournalLine
from bookkeeping_kernel.models.ledger import LEDGER_ORDER, LedgerEntry
from bookkeeping_kernel.services.account_registry import AccountRegistry
from bookkeeping_kernel.services.ledger import Ledger, account_key
from bookkeeping_kernel.services.voucher_numbering import VoucherNumbering, parse_voucher_number
from bookkeeping_kernel.services.year_close_service import closed_financial_years

logger = get_logger("services.posting_engine")

ENTRY_BALANCE_INVARIANT = "entry_balance"
LEDGER_BALANCE_INVARIANT = "ledger_balance"


def particulars_for(line: ValidatedLine, names_by_side: dict[bool, list[str]]) -> str:
    """
    "To X A/c" on a debit row, "By X A/c" on a credit row, where X is the
    single account on the opposite side; "Various" when there are several.
    """
    is_debit = line.debit > 0
    opposite = names_by_side[not is_debit]
    if len(opposite) != 1:
        return "Various"
    return f"{'To' if is_debit else 'By'} {opposite[0]} A/c"


class LedgerPostingEngine:
    """
    Posts validated entries to the ledger.

    Contract:
        ``post()`` accepts a ValidatedEntry and returns the PostedEntry with
        its allocated voucher number.  ``post_request()`` validates first.

    Guarantees:
        - Lines, ledger rows, balances and the counter change together.
        - Never posts while the ledger guard is tripped.

    Non-goals:
        - Does NOT call ``session.commit()``; callers own the transaction.
        - Does NOT reverse entries (see ReversalService).
    """

    def __init__(
        self,
        session: Session,
        ledger: Ledger,
        validator: JournalValidator | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._validator = validator or JournalValidator(
            tolerance=ledger.tolerance, currency_symbol=ledger.currency_symbol
        )
        self._registry = AccountRegistry(session, ledger)
        self._numbering = VoucherNumbering(session, ledger)

    @property
    def validator(self) -> JournalValidator:
        return self._validator

    @property
    def registry(self) -> AccountRegistry:
        return self._registry

    def post_request(self, request: PostingRequest, actor_id: UUID) -> PostedEntry:
        """
        Validate ``request`` against the closed years on record, then post.

        Raises:
            JournalValidationError: the request failed a validator check.
        """
        result = self._validator.validate(
            request, closed_years=closed_financial_years(self._session)
        )
        if not result.is_valid:
            assert result.failure is not None
            logger.info(
                "journal_entry_rejected",
                extra={
                    "reason_code": result.failure.reason_code,
                    "line_index": result.failure.line_index,
                },
            )
        return self.post(result.raise_for_error(), actor_id)

    def post(
        self,
        entry: ValidatedEntry,
        actor_id: UUID,
        *,
        reversal_of_id: UUID | None = None,
    ) -> PostedEntry:
        """
        Write ``entry`` to the books.

        Preconditions:
            ``entry`` came from JournalValidator.validate().

        Postconditions:
            A POSTED JournalEntry exists with one JournalLine and one
            LedgerEntry per line; touched accounts' balances include it.

        Raises:
            See module docstring.
        """
        self._ledger.guard.check_open()
        if entry.financial_year.code in closed_financial_years(self._session):
            raise JournalValidationError(
                ValidationReason.LOCKED_PERIOD,
                f"Financial year {entry.financial_year.code} is closed; "
                f"a voucher dated {entry.entry_date.isoformat()} cannot be posted",
            )

        t0 = time.monotonic()
        savepoint = self._session.begin_nested()
        try:
            journal, accounts = self._write(entry, actor_id, reversal_of_id)
            with LogContext.voucher(journal.voucher_number, journal.id):
                self._verify_entry(journal)
                self._verify_ledger(journal)
            savepoint.commit()
        except BookkeepingError:
            if savepoint.is_active:
                savepoint.rollback()
            raise
        except SQLAlchemyError as exc:
            if savepoint.is_active:
                savepoint.rollback()
            logger.error(
                "journal_entry_rolled_back",
                extra={"voucher_type": entry.voucher_type.value, "error": str(exc)},
            )
            raise PostingRollbackError(entry.voucher_type.value, str(exc)) from exc

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(journal.id),
                "voucher_number": journal.voucher_number,
                "voucher_type": journal.voucher_type,
                "entry_date": journal.entry_date,
                "total_debit": journal.total_debit,
                "line_count": len(journal.lines),
                "actor_id": str(actor_id),
                "reversal_of_id": str(reversal_of_id) if reversal_of_id else None,
                "duration_ms": duration_ms,
            },
        )
        return PostedEntry.from_model(journal, {code: a.name for code, a in accounts.items()})

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def _write(
        self,
        entry: ValidatedEntry,
        actor_id: UUID,
        reversal_of_id: UUID | None,
    ) -> tuple[JournalEntry, dict[str, Account]]:
        resolved: list[tuple[ValidatedLine, Account]] = []
        for line in entry.lines:
            account = self._registry.get_or_create(
                actor_id=actor_id,
                code=line.account_code,
                name=line.account_name,
                type_hint=line.account_type,
            )
            if not account.is_active:
                raise AccountInactiveError(account.code)
            resolved.append((line, account))

        accounts = self._lock_accounts(a.code for _, a in resolved)

        voucher_number = self._numbering.next(entry.voucher_type, entry.financial_year)

        journal = JournalEntry(
            voucher_number=voucher_number,
            voucher_type=entry.voucher_type.value,
            voucher_sequence=parse_voucher_number(voucher_number).sequence,
            entry_date=entry.entry_date,
            financial_year=entry.financial_year.code,
            narration=entry.narration,
            reference=entry.reference,
            payment_mode=entry.payment_mode.value if entry.payment_mode else None,
            party_name=entry.party_name,
            party_details=dict(entry.party_details) or None,
            status=JournalStatus.POSTED.value,
            total_debit=entry.total_debit,
            total_credit=entry.total_credit,
            posted_at=self._ledger.clock.now(),
            reversal_of_id=reversal_of_id,
            created_by_id=actor_id,
        )
        journal.lines = [
            JournalLine(
                line_index=line.line_index,
                account_code=account.code,
                debit=line.debit,
                credit=line.credit,
                created_by_id=actor_id,
            )
            for line, account in resolved
        ]
        self._session.add(journal)
        self._session.flush()

        names_by_side: dict[bool, list[str]] = {True: [], False: []}
        for line, account in resolved:
            side = names_by_side[line.debit > 0]
            if account.name not in side:
                side.append(account.name)

        for line, account in resolved:
            self._append_ledger_row(
                journal, line, accounts[account.code], particulars_for(line, names_by_side), actor_id
            )
        return journal, accounts

    def _lock_accounts(self, codes: Iterable[str]) -> dict[str, Account]:
        ordered = sorted(set(codes))
        self._ledger.locks.hold(self._session, [account_key(c) for c in ordered])
        rows = self._session.execute(
            select(Account)
            .where(Account.code.in_(ordered))
            .order_by(Account.code)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return {a.code: a for a in rows}

    def _append_ledger_row(
        self,
        journal: JournalEntry,
        line: ValidatedLine,
        account: Account,
        particulars: str,
        actor_id: UUID,
    ) -> LedgerEntry:
        previous = self._session.execute(
            select(LedgerEntry.running_balance)
            .where(
                LedgerEntry.account_code == account.code,
                _sorts_before(journal, line.line_index),
            )
            .order_by(*(column.desc() for column in LEDGER_ORDER))
            .limit(1)
        ).scalar_one_or_none()
        balance = (previous if previous is not None else Decimal("0")) + line.debit - line.credit

        row = LedgerEntry(
            account_code=account.code,
            entry_date=journal.entry_date,
            voucher_number=journal.voucher_number,
            voucher_type=journal.voucher_type,
            voucher_sequence=journal.voucher_sequence,
            line_index=line.line_index,
            particulars=particulars,
            narration=journal.narration,
            reference=journal.reference,
            debit=line.debit,
            credit=line.credit,
            running_balance=balance,
            journal_entry_id=journal.id,
            status=LedgerRowStatus.ACTIVE.value,
            reconciliation_status=MovementStatus.PENDING.value,
            created_by_id=actor_id,
        )
        self._session.add(row)
        self._session.flush()

        later = self._session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.account_code == account.code,
                LedgerEntry.id != row.id,
                ~_sorts_before(journal, line.line_index),
            )
            .order_by(*LEDGER_ORDER)
        ).scalars().all()
        running = balance
        for later_row in later:
            running = running + later_row.debit - later_row.credit
            later_row.running_balance = running
        if later:
            logger.debug(
                "running_balances_resequenced",
                extra={"account_code": account.code, "rows": len(later)},
            )

        account.balance = (account.balance or Decimal("0")) + line.debit - line.credit
        account.updated_by_id = actor_id
        self._session.flush()
        return row

    # ------------------------------------------------------------------
    # Read-back check
    # ------------------------------------------------------------------

    def _verify_entry(self, journal: JournalEntry) -> None:
        line_debit, line_credit = self._session.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit), 0),
                func.coalesce(func.sum(JournalLine.credit), 0),
            ).where(JournalLine.journal_entry_id == journal.id)
        ).one()
        row_debit, row_credit = self._session.execute(
            select(
                func.coalesce(func.sum(LedgerEntry.debit), 0),
                func.coalesce(func.sum(LedgerEntry.credit), 0),
            ).where(LedgerEntry.journal_entry_id == journal.id)
        ).one()
        line_debit, line_credit = Decimal(str(line_debit)), Decimal(str(line_credit))
        row_debit, row_credit = Decimal(str(row_debit)), Decimal(str(row_credit))

        tolerance = self._ledger.tolerance
        problems = []
        if abs(line_debit - line_credit) > tolerance:
            problems.append(f"lines Dr {line_debit} != Cr {line_credit}")
        if abs(row_debit - row_credit) > tolerance:
            problems.append(f"ledger rows Dr {row_debit} != Cr {row_credit}")
        if row_debit != line_debit or row_credit != line_credit:
            problems.append(
                f"ledger rows (Dr {row_debit}, Cr {row_credit}) disagree with "
                f"lines (Dr {line_debit}, Cr {line_credit})"
            )
        if not problems:
            return

        self._violation(ENTRY_BALANCE_INVARIANT, journal, "; ".join(problems))

    def _verify_ledger(self, journal: JournalEntry) -> None:
        rows_net = self._session.execute(
            select(func.coalesce(func.sum(LedgerEntry.debit - LedgerEntry.credit), 0))
        ).scalar_one()
        vouchers_net = self._session.execute(
            select(
                func.coalesce(func.sum(JournalEntry.total_debit - JournalEntry.total_credit), 0)
            )
        ).scalar_one()
        balances_net = self._session.execute(
            select(func.coalesce(func.sum(Account.balance), 0))
        ).scalar_one()
        rows_net, vouchers_net, balances_net = (
            Decimal(str(v)) for v in (rows_net, vouchers_net, balances_net)
        )

        # SQLite sums NUMERIC as REAL, hence the tolerance.
        tolerance = self._ledger.tolerance
        problems = []
        if abs(rows_net - vouchers_net) > tolerance:
            problems.append(f"ledger net {rows_net} != voucher net {vouchers_net}")
        if abs(rows_net - balances_net) > tolerance:
            problems.append(f"ledger net {rows_net} != account balances {balances_net}")
        if problems:
            self._violation(LEDGER_BALANCE_INVARIANT, journal, "; ".join(problems))

    def _violation(self, invariant: str, journal: JournalEntry, problems: str) -> None:
        detail = f"{journal.voucher_number}: {problems}"
        logger.critical(
            "invariant_violation",
            extra={
                "invariant": invariant,
                "voucher_number": journal.voucher_number,
                "detail": detail,
            },
        )
        self._ledger.guard.trip(detail, self._ledger.clock.now())
        raise InvariantViolationError(invariant, detail)


def _sorts_before(journal: JournalEntry, line_index: int):
    """SQL predicate: row sorts strictly before line *line_index* of *journal*."""
    same_day = LedgerEntry.entry_date == journal.entry_date
    same_type = and_(same_day, LedgerEntry.voucher_type == journal.voucher_type)
    return or_(
        LedgerEntry.entry_date < journal.entry_date,
        and_(same_day, LedgerEntry.voucher_type < journal.voucher_type),
        and_(same_type, LedgerEntry.voucher_sequence < journal.voucher_sequence),
        and_(
            same_type,
            LedgerEntry.voucher_sequence == journal.voucher_sequence,
            LedgerEntry.line_index < line_index,
        ),
    )
