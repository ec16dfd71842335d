"""
Module: bookkeeping_kernel.models.financial_year
Responsibility: Record of a closed financial year.
Architecture position: Kernel > Models.

Invariants enforced:
    - A financial year is closed at most once (unique financial_year).
    - Once a row exists, the validator refuses dates in that year and
      every entry of that year is LOCKED.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TrackedBase


class FinancialYearClose(TrackedBase):
    """Closing record written by YearCloseService."""

    __tablename__ = "financial_year_closes"

    __table_args__ = (
        UniqueConstraint("financial_year", name="uq_financial_year_close"),
    )

    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)

    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    entries_locked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    net_profit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    def __repr__(self) -> str:
        return f"<FinancialYearClose {self.financial_year}>"
