"""
Module: bookkeeping_kernel.models.voucher_counter
Responsibility: One counter row per (voucher type, financial year).
Architecture position: Kernel > Models.

Invariants enforced:
    - (voucher_type, financial_year) is unique.
    - last_number only ever increases; it is never decremented, even when
      a voucher is voided.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import Base


class VoucherCounter(Base):
    """Locked counter row behind VoucherNumbering.next()."""

    __tablename__ = "voucher_counters"

    __table_args__ = (
        UniqueConstraint("voucher_type", "financial_year", name="uq_voucher_counter_key"),
    )

    voucher_type: Mapped[str] = mapped_column(String(20), nullable=False)

    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)

    last_number: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<VoucherCounter {self.voucher_type}/{self.financial_year}={self.last_number}>"
