"""
AccountRegistry -- canonical list of accounts with explicit create-if-absent.

Responsibility:
    Resolves the account references on a posting request (a code or a
    display name) to Account rows, creating accounts the first time a name
    is used.  Owns deactivation; accounts are never deleted.

Architecture position:
    Kernel > Services -- imperative shell.  Called by LedgerPostingEngine
    and the Bookkeeper facade.  Flushes, never commits.

Invariants enforced:
    - The leading digit of every code matches the account's classification.
    - Name lookup is case- and whitespace-insensitive (name_key), so one
      business concept maps to one account.
    - New codes are allocated as max + 1 inside the classification's range,
      starting at ``{digit}001``, under the registry lock.

Failure modes:
    - InvalidAccountCodeError: code's leading digit is not 1-5, or the
      classification's code range is exhausted.
    - AccountNotFoundError: get() on an unknown code.
    - DuplicateAccountError: create() with a code or name already in use.

Audit relevance:
    Creation and deactivation are logged with the acting user.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.accounts import (
    AccountClass,
    classification_for_code,
    classification_from_hint,
    code_digit,
    default_group_for,
    golden_rule_kind_for,
    looks_like_cash_or_bank,
    normal_balance_for,
)
from bookkeeping_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateAccountError,
    InvalidAccountCodeError,
)
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.account import Account, name_key_for
from bookkeeping_kernel.services.ledger import Ledger

logger = get_logger("services.account_registry")

_REGISTRY_LOCK_KEY = "registry:accounts"

# Classification used when a new name carries no usable hint.
DEFAULT_CLASSIFICATION = AccountClass.EXPENSE


class AccountRegistry:
    """
    Typed account lookup with an explicit create-if-absent operation.

    Contract:
        ``get_or_create`` returns the same Account (same id, same code) for
        every reference to the same account, however it is spelled.

    Guarantees:
        - Codes are stable; they never change after creation.
        - A deactivated account is still returned by lookups (history must
          resolve) but LedgerPostingEngine refuses to post to it.

    Non-goals:
        - Does NOT post or compute balances.
        - Does NOT call session.commit().
    """

    def __init__(self, session: Session, ledger: Ledger):
        self._session = session
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find(self, code: str) -> Account | None:
        return self._session.execute(
            select(Account).where(Account.code == code.strip())
        ).scalar_one_or_none()

    def find_by_name(self, name: str) -> Account | None:
        return self._session.execute(
            select(Account).where(Account.name_key == name_key_for(name))
        ).scalar_one_or_none()

    def get(self, code: str) -> Account:
        """Account for ``code``; raises AccountNotFoundError if unknown."""
        account = self.find(code)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def list_accounts(
        self,
        classification: AccountClass | None = None,
        include_inactive: bool = False,
    ) -> list[Account]:
        stmt = select(Account).order_by(Account.code)
        if classification is not None:
            stmt = stmt.where(Account.classification == AccountClass(classification).value)
        if not include_inactive:
            stmt = stmt.where(Account.is_active.is_(True))
        return list(self._session.execute(stmt).scalars())

    def cash_and_bank_accounts(self, bank_only: bool = False, cash_only: bool = False) -> list[Account]:
        accounts = list(
            self._session.execute(
                select(Account)
                .where(Account.is_cash_or_bank.is_(True))
                .order_by(Account.code)
            ).scalars()
        )
        if bank_only:
            return [a for a in accounts if a.is_bank]
        if cash_only:
            return [a for a in accounts if not a.is_bank]
        return accounts

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        code: str,
        name: str,
        actor_id: UUID,
        group: str | None = None,
        is_cash_or_bank: bool | None = None,
    ) -> Account:
        """
        Create an account with an explicit code.

        Raises:
            InvalidAccountCodeError: leading digit not 1-5.
            DuplicateAccountError: code or name already exists.
        """
        code = code.strip()
        name = " ".join(name.split())
        classification = classification_for_code(code)
        if classification is None:
            raise InvalidAccountCodeError(code)

        self._ledger.locks.hold(self._session, [_REGISTRY_LOCK_KEY])
        existing = self.find(code) or self.find_by_name(name)
        if existing is not None:
            raise DuplicateAccountError(existing.code, existing.name)
        return self._insert(code, name, classification, actor_id, group, is_cash_or_bank)

    def get_or_create(
        self,
        *,
        actor_id: UUID,
        code: str | None = None,
        name: str | None = None,
        classification: AccountClass | None = None,
        type_hint: str | None = None,
        group: str | None = None,
    ) -> Account:
        """
        Resolve an account reference, creating the account if absent.

        Resolution order: code (when given), then case-insensitive name.
        A new account takes its classification from the code, else from
        ``classification``, else from ``type_hint`` (classification names,
        golden-rule kinds or synonyms), else cash/bank names become assets
        and anything else becomes an expense.

        Preconditions:
            At least one of ``code`` and ``name`` is non-empty.

        Postconditions:
            Returns a flushed Account with a stable id and code.

        Raises:
            InvalidAccountCodeError: ``code`` has an unknown leading digit.
            ValueError: neither code nor name given.
        """
        code = (code or "").strip() or None
        name = " ".join((name or "").split()) or None
        if code is None and name is None:
            raise ValueError("An account code or name is required")

        if code is not None:
            account = self.find(code)
            if account is not None:
                logger.debug("account_resolved", extra={"account_code": account.code})
                return account
            if classification_for_code(code) is None:
                raise InvalidAccountCodeError(code)
        if name is not None:
            account = self.find_by_name(name)
            if account is not None:
                logger.debug("account_resolved", extra={"account_code": account.code})
                return account

        self._ledger.locks.hold(self._session, [_REGISTRY_LOCK_KEY])
        # Re-check under the lock: another writer may have created it.
        account = (self.find(code) if code else None) or (
            self.find_by_name(name) if name else None
        )
        if account is not None:
            return account

        if code is not None:
            resolved_class = classification_for_code(code)
        else:
            resolved_class = classification or classification_from_hint(type_hint)
            if resolved_class is None:
                resolved_class = (
                    AccountClass.ASSET if looks_like_cash_or_bank(name) else DEFAULT_CLASSIFICATION
                )
                logger.info(
                    "account_classification_defaulted",
                    extra={
                        "account_name": name,
                        "type_hint": type_hint,
                        "classification": resolved_class.value,
                    },
                )
            code = self._next_code(resolved_class)

        return self._insert(code, name or f"Account {code}", resolved_class, actor_id, group, None)

    def _insert(
        self,
        code: str,
        name: str,
        classification: AccountClass,
        actor_id: UUID,
        group: str | None,
        is_cash_or_bank: bool | None,
    ) -> Account:
        classification = AccountClass(classification)
        if is_cash_or_bank is None:
            is_cash_or_bank = classification == AccountClass.ASSET and looks_like_cash_or_bank(name)
        if group is None:
            if is_cash_or_bank:
                group = "Bank Accounts" if "bank" in name.lower().split() else "Cash-in-hand"
            else:
                group = default_group_for(classification)

        account = Account(
            code=code,
            name=name,
            name_key=name_key_for(name),
            classification=classification.value,
            golden_rule_kind=golden_rule_kind_for(classification).value,
            normal_balance=normal_balance_for(classification).value,
            group_name=group,
            is_cash_or_bank=is_cash_or_bank,
            is_active=True,
            created_by_id=actor_id,
        )
        self._session.add(account)
        self._session.flush()

        logger.info(
            "account_created",
            extra={
                "account_code": code,
                "account_name": name,
                "classification": classification.value,
                "is_cash_or_bank": is_cash_or_bank,
            },
        )
        return account

    def _next_code(self, classification: AccountClass) -> str:
        digit = code_digit(classification)
        codes = self._session.execute(
            select(Account.code).where(Account.code.like(f"{digit}%"))
        ).scalars()
        floor = int(f"{digit}000")
        highest = max(
            (int(c) for c in codes if c.isdigit() and len(c) == 4),
            default=floor,
        )
        candidate = str(max(highest, floor) + 1)
        if not candidate.startswith(digit):
            raise InvalidAccountCodeError(candidate)
        return candidate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def deactivate(self, code: str, actor_id: UUID) -> Account:
        """Stop new postings to ``code``.  History is untouched."""
        account = self.get(code)
        if account.is_active:
            account.is_active = False
            account.updated_by_id = actor_id
            self._session.flush()
            logger.info("account_deactivated", extra={"account_code": code})
        return account

    def reactivate(self, code: str, actor_id: UUID) -> Account:
        account = self.get(code)
        if not account.is_active:
            account.is_active = True
            account.updated_by_id = actor_id
            self._session.flush()
            logger.info("account_reactivated", extra={"account_code": code})
        return account
