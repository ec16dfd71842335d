"""
Module: bookkeeping_kernel.models.reconciliation
Responsibility: Imported bank statement lines and the reconciliation
    records that link them to ledger movements.
Architecture position: Kernel > Models.

Invariants enforced:
    - One BankTransaction per external id.
    - One ReconciliationRecord per bank transaction (append-only).  A
      NEEDS_REVIEW record is resolved at most once, by manual
      reconciliation, which fills the resolution columns.
    - confidence lies in [0, 1].

Audit relevance:
    match_type, confidence and amount_difference are stored so a reviewer
    can see why the engine linked a bank line to a voucher.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TrackedBase, UUIDString
from bookkeeping_kernel.domain.dtos import MatchType, RecordStatus


class BankTransaction(TrackedBase):
    """One line of an imported bank statement.  amount >= 0 is money in."""

    __tablename__ = "bank_transactions"

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_bank_txn_external_id"),
        Index("idx_bank_txn_date", "txn_date"),
    )

    external_id: Mapped[str] = mapped_column(String(100), nullable=False)

    txn_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False, default="")

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<BankTransaction {self.external_id} {self.txn_date} {self.amount}>"


class ReconciliationRecord(TrackedBase):
    """
    Outcome of reconciling one bank transaction.

    Contract:
        Written once by ReconciliationService.reconcile().  The only later
        change allowed is the manual resolution of a NEEDS_REVIEW record.
    """

    __tablename__ = "reconciliation_records"

    __table_args__ = (
        UniqueConstraint("bank_transaction_id", name="uq_recon_bank_txn"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_recon_confidence"),
        Index("idx_recon_status", "status"),
    )

    bank_transaction_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("bank_transactions.external_id"), nullable=False
    )

    matched_journal_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    matched_ledger_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=True
    )

    match_type: Mapped[MatchType] = mapped_column(String(10), nullable=False)

    confidence: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)

    amount_difference: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status: Mapped[RecordStatus] = mapped_column(String(12), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ReconciliationRecord {self.bank_transaction_id} "
            f"{self.match_type} {self.status}>"
        )

    @property
    def is_matched(self) -> bool:
        return self.status == RecordStatus.MATCHED
