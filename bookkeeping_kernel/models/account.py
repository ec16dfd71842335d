"""
Module: bookkeeping_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every journal line and ledger row.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - code is unique and its leading digit matches classification.
    - name_key (case-folded name) is unique, so "Cash" and "cash" are the
      same account.
    - Accounts are never deleted, only deactivated.

Failure modes:
    - IntegrityError on a duplicate code or name_key (surfaced by the
      registry as DuplicateAccountError).

Audit relevance:
    Ledger rows reference accounts by code.  Because accounts are never
    deleted, every historical row stays resolvable.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bookkeeping_kernel.db.base import TrackedBase
from bookkeeping_kernel.domain.accounts import AccountClass, GoldenRuleKind, NormalBalance


def name_key_for(name: str) -> str:
    """Case- and whitespace-insensitive lookup key for an account name."""
    return " ".join(name.split()).casefold()


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Contract:
        code and name_key are unique.  classification and normal_balance
        never change once the account has ledger rows.

    Guarantees:
        - balance is debit-minus-credit over every ledger row of the
          account (a voided entry's rows are cancelled by its reversal's
          rows), maintained by the posting engine in the same transaction
          as the rows themselves.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        UniqueConstraint("name_key", name="uq_account_name_key"),
        Index("idx_account_classification", "classification"),
        Index("idx_account_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    name_key: Mapped[str] = mapped_column(String(255), nullable=False)

    classification: Mapped[AccountClass] = mapped_column(String(20), nullable=False)

    golden_rule_kind: Mapped[GoldenRuleKind] = mapped_column(String(10), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    # Reporting group, e.g. "Bank Accounts", "Sundry Debtors"
    group_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Cash-in-hand and bank accounts feed the cash/bank books and reconciliation
    is_cash_or_bank: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_bank(self) -> bool:
        return self.is_cash_or_bank and "bank" in self.name.lower()
