"""
ReversalService -- non-destructive corrections of posted vouchers.

Responsibility:
    Voids a POSTED voucher by posting its exact debit/credit swap, and
    builds the two derived corrections on top of that: reclassify (move
    one line to another account) and split (replace one voucher by
    several).

Architecture position:
    Kernel > Services -- imperative shell.  Posts through
    LedgerPostingEngine; never writes journal lines or ledger rows itself.

Invariants enforced:
    - Posted lines never change.  A void only moves the original's status
      POSTED -> VOID, sets reversed_by_id, and flags its ledger rows
      REVERSED.  Nothing is deleted.
    - The reversal is an ordinary POSTED voucher of the same type with
      reversal_of_id set; its ledger rows stay ACTIVE so aggregating every
      row nets the original to zero.
    - A voucher is voided at most once.  Concurrent voids of the same
      voucher are serialized by an entry lock; the loser sees VOID.
    - Each correction is atomic: void and re-post happen in one savepoint.

Failure modes:
    - EntryNotFoundError, EntryNotPostedError, EntryAlreadyVoidedError,
      EntryLockedError from the precondition check.
    - JournalValidationError when the reversal or a replacement fails
      validation (e.g. the void date lies in a closed year).

Audit relevance:
    ``entry_voided``, ``entry_reclassified`` and ``entry_split`` link the
    original and new voucher numbers together with the reason and actor.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.dtos import (
    JournalStatus,
    LedgerRowStatus,
    PostedEntry,
    PostingRequest,
    RequestLine,
)
from bookkeeping_kernel.domain.journal_validator import ValidationReason
from bookkeeping_kernel.exceptions import (
    EntryAlreadyVoidedError,
    EntryLockedError,
    EntryNotFoundError,
    EntryNotPostedError,
    JournalValidationError,
)
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.journal import JournalEntry
from bookkeeping_kernel.models.ledger import LedgerEntry
from bookkeeping_kernel.services.ledger import Ledger
from bookkeeping_kernel.services.posting_engine import LedgerPostingEngine
from bookkeeping_kernel.services.year_close_service import closed_financial_years

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    """Outcome of a void."""

    original_entry_id: UUID
    original_voucher_number: str
    reversal: PostedEntry


@dataclass(frozen=True)
class CorrectionResult:
    """Outcome of a reclassify or split: the void plus the new vouchers."""

    voided: ReversalResult
    replacements: tuple[PostedEntry, ...]


def entry_key(entry_id: UUID) -> str:
    return f"entry:{entry_id}"


class ReversalService:
    """
    Void, reclassify and split posted vouchers.

    Contract:
        Every correction leaves the original voucher and its ledger rows in
        place and adds new vouchers that cancel or replace it.

    Non-goals:
        - Does NOT call session.commit().
        - Does NOT support partial (per-line) voids.
    """

    def __init__(
        self,
        session: Session,
        ledger: Ledger,
        engine: LedgerPostingEngine | None = None,
    ):
        self._session = session
        self._ledger = ledger
        self._engine = engine or LedgerPostingEngine(session, ledger)

    # ------------------------------------------------------------------
    # Void
    # ------------------------------------------------------------------

    def void(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        void_date: date | None = None,
    ) -> ReversalResult:
        """
        Void a POSTED voucher by posting its reversal.

        Args:
            entry_id: Voucher to void.
            reason: Why; becomes part of the reversal narration.
            actor_id: Who is voiding.
            void_date: Date of the reversal voucher.  Defaults to the
                original voucher's date.

        Raises:
            See module docstring.
        """
        with self._session.begin_nested():
            return self._void(entry_id, reason, actor_id, void_date)

    def _void(
        self,
        entry_id: UUID,
        reason: str,
        actor_id: UUID,
        void_date: date | None,
    ) -> ReversalResult:
        reason = (reason or "").strip()
        if not reason:
            raise JournalValidationError(
                ValidationReason.MISSING_NARRATION, "A reason is required to void a voucher"
            )
        original = self._load_for_correction(entry_id)

        request = PostingRequest(
            voucher_type=original.voucher_type,
            entry_date=void_date or original.entry_date,
            narration=f"Reversal of {original.voucher_number}: {reason}",
            lines=tuple(
                RequestLine(debit=line.credit, credit=line.debit, account_code=line.account_code)
                for line in original.lines
            ),
            reference=original.voucher_number,
            payment_mode=original.payment_mode,
            party_details=original.party_details or {},
        )
        validated = self._engine.validator.validate(
            request, closed_years=closed_financial_years(self._session)
        ).raise_for_error()
        reversal = self._engine.post(validated, actor_id, reversal_of_id=original.id)

        original.status = JournalStatus.VOID.value
        original.reversed_by_id = reversal.entry_id
        original.void_reason = reason
        original.updated_by_id = actor_id
        self._session.execute(
            update(LedgerEntry)
            .where(LedgerEntry.journal_entry_id == original.id)
            .values(status=LedgerRowStatus.REVERSED.value, updated_by_id=actor_id)
            .execution_options(synchronize_session="evaluate")
        )
        self._session.flush()

        logger.info(
            "entry_voided",
            extra={
                "entry_id": str(original.id),
                "voucher_number": original.voucher_number,
                "reversal_voucher_number": reversal.voucher_number,
                "reason": reason,
                "actor_id": str(actor_id),
            },
        )
        return ReversalResult(original.id, original.voucher_number, reversal)

    # ------------------------------------------------------------------
    # Reclassify / split
    # ------------------------------------------------------------------

    def reclassify(
        self,
        entry_id: UUID,
        line_index: int,
        new_account: str,
        reason: str,
        actor_id: UUID,
        account_type: str | None = None,
    ) -> CorrectionResult:
        """
        Move one line of a voucher to another account: void the voucher,
        then re-post it with ``new_account`` (a code or a name) on
        ``line_index``.
        """
        with self._session.begin_nested():
            original = self._load_for_correction(entry_id)
            if line_index not in {line.line_index for line in original.lines}:
                raise JournalValidationError(
                    ValidationReason.INVALID_LINE,
                    f"Voucher {original.voucher_number} has no line {line_index + 1}",
                    line_index,
                )
            target = self._engine.registry.find(new_account)
            lines = []
            for line in original.lines:
                if line.line_index != line_index:
                    lines.append(
                        RequestLine(debit=line.debit, credit=line.credit, account_code=line.account_code)
                    )
                elif target is not None:
                    lines.append(
                        RequestLine(debit=line.debit, credit=line.credit, account_code=target.code)
                    )
                else:
                    lines.append(
                        RequestLine(
                            debit=line.debit,
                            credit=line.credit,
                            account_name=new_account,
                            account_type=account_type,
                        )
                    )
            old_account = next(ln.account_code for ln in original.lines if ln.line_index == line_index)
            replacement_request = PostingRequest(
                voucher_type=original.voucher_type,
                entry_date=original.entry_date,
                narration=original.narration,
                lines=tuple(lines),
                reference=original.reference,
                payment_mode=original.payment_mode,
                party_details=original.party_details or {},
            )

            voided = self._void(entry_id, reason, actor_id, None)
            replacement = self._engine.post_request(replacement_request, actor_id)

        logger.info(
            "entry_reclassified",
            extra={
                "voucher_number": voided.original_voucher_number,
                "replacement_voucher_number": replacement.voucher_number,
                "line_index": line_index,
                "from_account": old_account,
                "to_account": replacement.lines[line_index].account_code,
            },
        )
        return CorrectionResult(voided, (replacement,))

    def split(
        self,
        entry_id: UUID,
        replacements: Sequence[PostingRequest],
        reason: str,
        actor_id: UUID,
    ) -> CorrectionResult:
        """
        Replace one voucher by several: every replacement is validated
        before anything is written, then the original is voided and each
        replacement posted.
        """
        if not replacements:
            raise ValueError("A split needs at least one replacement voucher")
        closed = closed_financial_years(self._session)
        for request in replacements:
            self._engine.validator.validate(request, closed_years=closed).raise_for_error()

        with self._session.begin_nested():
            voided = self._void(entry_id, reason, actor_id, None)
            posted = tuple(self._engine.post_request(r, actor_id) for r in replacements)

        logger.info(
            "entry_split",
            extra={
                "voucher_number": voided.original_voucher_number,
                "replacement_voucher_numbers": [p.voucher_number for p in posted],
            },
        )
        return CorrectionResult(voided, posted)

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _load_for_correction(self, entry_id: UUID) -> JournalEntry:
        self._ledger.locks.hold(self._session, [entry_key(entry_id)])
        original = self._session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if original is None:
            raise EntryNotFoundError(str(entry_id))
        if original.status == JournalStatus.VOID:
            raise EntryAlreadyVoidedError(
                original.voucher_number,
                str(original.reversed_by_id) if original.reversed_by_id else None,
            )
        if original.status == JournalStatus.LOCKED:
            raise EntryLockedError(original.voucher_number, original.financial_year)
        if original.status != JournalStatus.POSTED:
            raise EntryNotPostedError(str(entry_id), str(original.status))
        return original
