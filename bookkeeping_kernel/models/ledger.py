"""
Module: bookkeeping_kernel.models.ledger
Responsibility: ORM persistence for per-account ledger rows -- one row per
    journal line, carrying the account's running balance.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Rows are ordered per account by (entry_date, voucher_type,
      voucher_sequence, line_index); running_balance = previous
      running_balance + debit - credit in that order.
    - Rows are never deleted.  Voiding the parent entry marks them
      REVERSED; the reversal entry contributes its own ACTIVE rows.
    - A row is reconciled with at most one bank transaction.

Failure modes:
    - IntegrityError if a journal line is materialized twice.

Audit relevance:
    The ledger is the history every derived book is computed from.
    Keeping voided rows (flagged REVERSED) alongside their reversal rows
    preserves the full trail.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TrackedBase, UUIDString
from bookkeeping_kernel.domain.dtos import LedgerRowStatus, MovementStatus


class LedgerEntry(TrackedBase):
    """
    One movement on one account.

    Contract:
        Written only by LedgerPostingEngine.  After insertion only status,
        running_balance (re-sequenced by back-dated postings) and the
        reconciliation columns change.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_index", name="uq_ledger_journal_line"),
        Index(
            "idx_ledger_account_order",
            "account_code",
            "entry_date",
            "voucher_type",
            "voucher_sequence",
        ),
        Index("idx_ledger_reconciliation", "reconciliation_status"),
    )

    account_code: Mapped[str] = mapped_column(
        String(20), ForeignKey("accounts.code"), nullable=False
    )

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    voucher_number: Mapped[str] = mapped_column(String(40), nullable=False)

    voucher_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Numeric part of voucher_number; orders vouchers past 9999.
    voucher_sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    line_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # "To Sales A/c", "By Cash A/c", "Various"
    particulars: Mapped[str] = mapped_column(String(300), nullable=False)

    narration: Mapped[str] = mapped_column(String(1000), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    running_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=False
    )

    status: Mapped[LedgerRowStatus] = mapped_column(
        String(10), default=LedgerRowStatus.ACTIVE, nullable=False
    )

    reconciliation_status: Mapped[MovementStatus] = mapped_column(
        String(12), default=MovementStatus.PENDING, nullable=False
    )

    reconciled_bank_txn_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.account_code} {self.voucher_number}/{self.line_index} "
            f"Dr {self.debit} Cr {self.credit} bal {self.running_balance}>"
        )

    @property
    def sort_key(self) -> tuple[date, str, int, int]:
        return (self.entry_date, self.voucher_type, self.voucher_sequence, self.line_index)

    @property
    def is_active(self) -> bool:
        return self.status == LedgerRowStatus.ACTIVE

    @property
    def is_reconciled(self) -> bool:
        return self.reconciliation_status == MovementStatus.RECONCILED


# Chronological order of ledger rows on one account.
LEDGER_ORDER = (
    LedgerEntry.entry_date,
    LedgerEntry.voucher_type,
    LedgerEntry.voucher_sequence,
    LedgerEntry.line_index,
)
