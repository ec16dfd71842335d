"""
Module: bookkeeping_kernel.models.journal
Responsibility: ORM persistence for vouchers (JournalEntry) and their
    debit/credit lines (JournalLine).
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - (voucher_type, voucher_number) is unique.
    - A line has debit > 0 XOR credit > 0 (CHECK constraint).
    - Lines never change after the entry is POSTED; corrections are new
      entries linked through reversal_of_id / reversed_by_id.

Failure modes:
    - IntegrityError on duplicate voucher numbers or a malformed line.

Audit relevance:
    Every voucher ever posted stays in this table.  A voided voucher keeps
    its lines and points at the reversal that cancelled it.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookkeeping_kernel.db.base import TrackedBase, UUIDString
from bookkeeping_kernel.domain.dtos import JournalStatus
from bookkeeping_kernel.domain.voucher_types import VoucherType


class JournalEntry(TrackedBase):
    """
    One voucher: a balanced set of journal lines with a sequential number.

    Contract:
        Created only by LedgerPostingEngine.  Status moves POSTED -> VOID
        (ReversalService) or POSTED -> LOCKED (YearCloseService) and
        nothing else changes afterwards.

    Guarantees:
        - voucher_number is unique within voucher_type.
        - total_debit and total_credit equal the sums of the lines.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("voucher_type", "voucher_number", name="uq_journal_voucher"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_financial_year", "financial_year"),
    )

    voucher_number: Mapped[str] = mapped_column(String(40), nullable=False)

    voucher_type: Mapped[VoucherType] = mapped_column(String(20), nullable=False)

    voucher_sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)

    narration: Mapped[str] = mapped_column(String(1000), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payment_mode: Mapped[str | None] = mapped_column(String(10), nullable=True)

    party_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    party_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[JournalStatus] = mapped_column(
        String(10), default=JournalStatus.DRAFT, nullable=False
    )

    total_debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Set on a reversal entry: the voucher it cancels
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    # Set on a voided entry: the reversal that cancelled it
    reversed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=True
    )

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_index",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.voucher_number} status={self.status}>"

    @property
    def is_posted(self) -> bool:
        return self.status == JournalStatus.POSTED

    @property
    def is_void(self) -> bool:
        return self.status == JournalStatus.VOID

    @property
    def is_locked(self) -> bool:
        return self.status == JournalStatus.LOCKED

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None


class JournalLine(TrackedBase):
    """
    A single debit or credit line of a voucher.

    Guarantees:
        - Exactly one of debit / credit is positive; the other is zero.
        - line_index gives the deterministic order inside the voucher.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_index", name="uq_line_position"),
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_line_one_side",
        ),
        Index("idx_line_account", "account_code"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("journal_entries.id"), nullable=False
    )

    line_index: Mapped[int] = mapped_column(Integer, nullable=False)

    account_code: Mapped[str] = mapped_column(
        String(20), ForeignKey("accounts.code"), nullable=False
    )

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_index} {self.account_code} "
            f"Dr {self.debit} Cr {self.credit}>"
        )
