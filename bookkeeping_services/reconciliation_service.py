"""
bookkeeping_services.reconciliation_service -- Bank statement reconciliation.

Responsibility:
    Persists imported bank transactions, runs the tier cascade from
    ``bookkeeping_engines.reconciliation`` against pending cash/bank ledger
    movements, claims the matched movement and records the outcome.  Also
    serves the review queue, manual matches, a summary and anomaly flags.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  The matcher
    is pure; this service owns every read and write around it.

Invariants enforced:
    - Idempotent per bank transaction id: a second ``reconcile()`` of the
      same id returns the existing record and changes nothing.
    - A ledger movement is claimed by at most one bank transaction.  The
      claim is a conditional PENDING -> RECONCILED update made under the
      movement's keyed lock; a lost claim re-runs the cascade without the
      contested movement.
    - No match is not an error: it is a NEEDS_REVIEW record with a reason.

Failure modes:
    - BankTransactionNotFoundError: manual match of an unknown bank id.
    - LedgerEntryNotFoundError: manual match to an unknown movement.
    - MovementAlreadyReconciledError: manual match to a claimed movement,
      or of a bank transaction that is already matched.

Audit relevance:
    ``reconciliation_matched`` / ``reconciliation_needs_review`` carry the
    bank id, tier, confidence and the claimed movement.
"""

from __future__ import annotations

import time
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bookkeeping_engines.reconciliation.anomalies import Anomaly, detect_anomalies
from bookkeeping_engines.reconciliation.matching import (
    DEFAULT_THRESHOLDS,
    MatchingThresholds,
    MatchResult,
    match_transaction,
)
from bookkeeping_kernel.domain.dtos import (
    BankTransactionInput,
    LedgerRowStatus,
    MatchType,
    MovementStatus,
    RecordStatus,
)
from bookkeeping_kernel.exceptions import (
    BankTransactionNotFoundError,
    LedgerEntryNotFoundError,
    MovementAlreadyReconciledError,
)
from bookkeeping_kernel.logging_config import LogContext, get_logger
from bookkeeping_kernel.models.ledger import LedgerEntry
from bookkeeping_kernel.models.reconciliation import BankTransaction, ReconciliationRecord
from bookkeeping_kernel.selectors.ledger_selector import LedgerSelector
from bookkeeping_kernel.services.ledger import Ledger, movement_key

logger = get_logger("services.reconciliation")

_AUTO_TYPES = (MatchType.EXACT, MatchType.FUZZY, MatchType.REFERENCE, MatchType.PATTERN)


@dataclass(frozen=True)
class ReconciliationSummary:
    """
    Counts over a set of reconciliation records.

    ``match_rate`` is the share of transactions matched automatically, as
    a percentage with two decimals (0 when there are none).
    """

    total: int
    auto_matched: int
    manually_matched: int
    needs_review: int
    match_rate: Decimal
    by_match_type: Mapping[str, int]

    @classmethod
    def from_records(cls, records: Iterable[ReconciliationRecord]) -> ReconciliationSummary:
        records = list(records)
        by_type = Counter(MatchType(r.match_type).value for r in records)
        auto = sum(by_type[t.value] for t in _AUTO_TYPES)
        total = len(records)
        rate = (
            (Decimal(auto) * 100 / Decimal(total)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
            if total
            else Decimal("0")
        )
        return cls(
            total=total,
            auto_matched=auto,
            manually_matched=by_type[MatchType.MANUAL.value],
            needs_review=sum(1 for r in records if r.status == RecordStatus.NEEDS_REVIEW),
            match_rate=rate,
            by_match_type=dict(sorted(by_type.items())),
        )


@dataclass(frozen=True)
class StatementReconciliation:
    """Outcome of reconciling one imported statement."""

    records: tuple[ReconciliationRecord, ...]
    summary: ReconciliationSummary

    @property
    def discrepancies(self) -> tuple[ReconciliationRecord, ...]:
        return tuple(r for r in self.records if r.status == RecordStatus.NEEDS_REVIEW)


class ReconciliationService:
    """
    Matches bank statement lines to ledger movements.

    Contract:
        Every method flushes and never commits; the caller owns the
        transaction.

    Non-goals:
        - Does NOT parse bank statement files (callers pass
          BankTransactionInput values).
        - Does NOT split one bank line across several movements.
    """

    def __init__(
        self,
        session: Session,
        ledger: Ledger,
        thresholds: MatchingThresholds = DEFAULT_THRESHOLDS,
        unusual_multiplier: Decimal = Decimal("5"),
        stale_days: int = 7,
    ):
        self._session = session
        self._ledger = ledger
        self._thresholds = thresholds
        self._unusual_multiplier = unusual_multiplier
        self._stale_days = stale_days
        self._selector = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Automatic matching
    # ------------------------------------------------------------------

    def reconcile(self, transaction: BankTransactionInput, actor_id: UUID) -> ReconciliationRecord:
        """
        Reconcile one bank transaction.

        Returns:
            The MATCHED or NEEDS_REVIEW record.  An already reconciled id
            returns its existing record unchanged.
        """
        existing = self._record_for(transaction.id)
        if existing is not None:
            logger.debug(
                "reconciliation_already_recorded",
                extra={"bank_txn_id": transaction.id, "status": existing.status},
            )
            return existing

        with LogContext.bind(bank_txn_id=transaction.id):
            t0 = time.monotonic()
            self._upsert_bank_transaction(transaction, actor_id)

            contested: set[UUID] = set()
            while True:
                rows = [
                    r
                    for r in self._selector.pending_cash_bank_rows()
                    if r.ledger_entry_id not in contested
                ]
                result = match_transaction(
                    transaction=transaction, rows=rows, thresholds=self._thresholds
                )
                if not result.matched:
                    record = self._write_record(transaction, result, actor_id)
                    logger.info(
                        "reconciliation_needs_review",
                        extra={
                            "bank_txn_id": transaction.id,
                            "amount": str(transaction.amount),
                            "reason": result.reason,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                    return record

                assert result.row is not None
                if self._claim(result.row.ledger_entry_id, transaction.id, actor_id):
                    record = self._write_record(transaction, result, actor_id)
                    logger.info(
                        "reconciliation_matched",
                        extra={
                            "bank_txn_id": transaction.id,
                            "match_type": result.match_type.value,
                            "confidence": str(result.confidence),
                            "ledger_entry_id": str(result.row.ledger_entry_id),
                            "voucher_number": result.row.voucher_number,
                            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        },
                    )
                    return record

                contested.add(result.row.ledger_entry_id)
                logger.info(
                    "reconciliation_claim_lost",
                    extra={
                        "bank_txn_id": transaction.id,
                        "ledger_entry_id": str(result.row.ledger_entry_id),
                    },
                )

    def reconcile_statement(
        self, transactions: Sequence[BankTransactionInput], actor_id: UUID
    ) -> StatementReconciliation:
        """Reconcile each statement line in order; lines do not share state."""
        records = tuple(self.reconcile(txn, actor_id) for txn in transactions)
        summary = ReconciliationSummary.from_records(records)
        logger.info(
            "bank_statement_reconciled",
            extra={
                "total": summary.total,
                "auto_matched": summary.auto_matched,
                "needs_review": summary.needs_review,
                "match_rate": str(summary.match_rate),
            },
        )
        return StatementReconciliation(records=records, summary=summary)

    # ------------------------------------------------------------------
    # Manual matching and review
    # ------------------------------------------------------------------

    def manual_reconcile(
        self,
        bank_transaction_id: str,
        ledger_entry_id: UUID,
        actor_id: UUID,
        note: str | None = None,
    ) -> ReconciliationRecord:
        """
        Link a bank transaction to a movement chosen by a reviewer.

        A NEEDS_REVIEW record is resolved in place; a bank transaction with
        no record yet gets a new MANUAL record.
        """
        bank_txn = self._session.execute(
            select(BankTransaction).where(BankTransaction.external_id == bank_transaction_id)
        ).scalar_one_or_none()
        if bank_txn is None:
            raise BankTransactionNotFoundError(bank_transaction_id)

        record = self._record_for(bank_transaction_id)
        if record is not None and record.status == RecordStatus.MATCHED:
            raise MovementAlreadyReconciledError(
                str(record.matched_ledger_entry_id), bank_transaction_id
            )

        row = self._selector.ledger_row(ledger_entry_id)
        if row is None:
            raise LedgerEntryNotFoundError(str(ledger_entry_id))
        if not self._claim(ledger_entry_id, bank_transaction_id, actor_id):
            claimed_by = self._session.execute(
                select(LedgerEntry.reconciled_bank_txn_id).where(LedgerEntry.id == ledger_entry_id)
            ).scalar_one()
            raise MovementAlreadyReconciledError(str(ledger_entry_id), claimed_by)

        amount_difference = abs(row.amount - abs(bank_txn.amount))
        if record is None:
            record = ReconciliationRecord(
                bank_transaction_id=bank_transaction_id,
                created_by_id=actor_id,
            )
            self._session.add(record)
        record.matched_journal_id = row.journal_entry_id
        record.matched_ledger_entry_id = row.ledger_entry_id
        record.match_type = MatchType.MANUAL.value
        record.confidence = Decimal("1")
        record.amount_difference = amount_difference
        record.status = RecordStatus.MATCHED.value
        record.reason = note
        record.resolved_at = self._ledger.clock.now()
        record.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "reconciliation_manual_match",
            extra={
                "bank_txn_id": bank_transaction_id,
                "ledger_entry_id": str(ledger_entry_id),
                "voucher_number": row.voucher_number,
                "amount_difference": str(amount_difference),
                "actor_id": str(actor_id),
            },
        )
        return record

    def review_queue(self) -> list[ReconciliationRecord]:
        """NEEDS_REVIEW records, oldest bank transaction first."""
        return list(
            self._session.execute(
                select(ReconciliationRecord)
                .join(
                    BankTransaction,
                    BankTransaction.external_id == ReconciliationRecord.bank_transaction_id,
                )
                .where(ReconciliationRecord.status == RecordStatus.NEEDS_REVIEW.value)
                .order_by(BankTransaction.txn_date, BankTransaction.external_id)
            ).scalars()
        )

    def summary(self) -> ReconciliationSummary:
        return ReconciliationSummary.from_records(
            self._session.execute(select(ReconciliationRecord)).scalars()
        )

    def detect_anomalies(self, as_of: date | None = None) -> tuple[Anomaly, ...]:
        """
        Flag duplicate, unusually large and stale unmatched bank lines.

        ``as_of`` defaults to the ledger clock's today.
        """
        bank_txns = self._session.execute(
            select(BankTransaction).order_by(BankTransaction.txn_date, BankTransaction.external_id)
        ).scalars()
        transactions = [
            BankTransactionInput(
                id=t.external_id,
                txn_date=t.txn_date,
                amount=t.amount,
                description=t.description,
                reference_number=t.reference_number,
            )
            for t in bank_txns
        ]
        matched_ids = set(
            self._session.execute(
                select(ReconciliationRecord.bank_transaction_id).where(
                    ReconciliationRecord.status == RecordStatus.MATCHED.value
                )
            ).scalars()
        )
        anomalies = detect_anomalies(
            transactions=transactions,
            matched_ids=matched_ids,
            as_of=as_of or self._ledger.clock.today(),
            unusual_multiplier=self._unusual_multiplier,
            stale_days=self._stale_days,
        )
        if anomalies:
            logger.warning(
                "reconciliation_anomalies_detected",
                extra={
                    "count": len(anomalies),
                    "kinds": sorted({a.kind.value for a in anomalies}),
                },
            )
        return anomalies

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_for(self, bank_transaction_id: str) -> ReconciliationRecord | None:
        return self._session.execute(
            select(ReconciliationRecord).where(
                ReconciliationRecord.bank_transaction_id == bank_transaction_id
            )
        ).scalar_one_or_none()

    def _upsert_bank_transaction(
        self, transaction: BankTransactionInput, actor_id: UUID
    ) -> BankTransaction:
        bank_txn = self._session.execute(
            select(BankTransaction).where(BankTransaction.external_id == transaction.id)
        ).scalar_one_or_none()
        if bank_txn is None:
            bank_txn = BankTransaction(
                external_id=transaction.id,
                txn_date=transaction.txn_date,
                amount=transaction.amount,
                description=transaction.description,
                reference_number=transaction.reference_number,
                created_by_id=actor_id,
            )
            self._session.add(bank_txn)
            self._session.flush()
        return bank_txn

    def _claim(self, ledger_entry_id: UUID, bank_transaction_id: str, actor_id: UUID) -> bool:
        """PENDING -> RECONCILED for one movement; False if someone got there first."""
        self._ledger.locks.hold(self._session, [movement_key(ledger_entry_id)])
        result = self._session.execute(
            update(LedgerEntry)
            .where(
                LedgerEntry.id == ledger_entry_id,
                LedgerEntry.status == LedgerRowStatus.ACTIVE.value,
                LedgerEntry.reconciliation_status == MovementStatus.PENDING.value,
            )
            .values(
                reconciliation_status=MovementStatus.RECONCILED.value,
                reconciled_bank_txn_id=bank_transaction_id,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1

    def _write_record(
        self, transaction: BankTransactionInput, result: MatchResult, actor_id: UUID
    ) -> ReconciliationRecord:
        record = ReconciliationRecord(
            bank_transaction_id=transaction.id,
            matched_journal_id=result.row.journal_entry_id if result.row else None,
            matched_ledger_entry_id=result.row.ledger_entry_id if result.row else None,
            match_type=result.match_type.value,
            confidence=result.confidence,
            amount_difference=result.amount_difference,
            status=(RecordStatus.MATCHED if result.matched else RecordStatus.NEEDS_REVIEW).value,
            reason=result.reason,
            created_by_id=actor_id,
        )
        self._session.add(record)
        self._session.flush()
        return record
