"""
Ledger -- the explicit service object shared by every writer and reader.

Responsibility:
    Bundles the per-book runtime state that must be shared by reference:
    the keyed locks that serialize voucher counters, accounts and ledger
    movements; the guard that blocks posting after an invariant violation;
    the clock; and the balance tolerance.

Architecture position:
    Kernel > Services -- infrastructure.  Passed to AccountRegistry,
    VoucherNumbering, LedgerPostingEngine, ReversalService,
    YearCloseService and (from the services layer) to the books and
    reconciliation services.  No component reaches a global store.

Invariants enforced:
    - Keyed locks taken through ``hold()`` stay held until the session's
      outermost transaction ends (commit or rollback), so a second writer
      never reads a counter or balance that is about to change.
    - Re-acquiring a key already held by the same session is a no-op.
    - Lock acquisition is bounded by ``lock_timeout``; nothing blocks
      indefinitely.

Failure modes:
    - LockTimeoutError when a key is not released in time.
    - BooksBlockedError from ``guard.check_open()`` after a violation.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from bookkeeping_kernel.domain.clock import Clock, SystemClock
from bookkeeping_kernel.domain.journal_validator import DEFAULT_TOLERANCE
from bookkeeping_kernel.exceptions import BooksBlockedError, LockTimeoutError
from bookkeeping_kernel.logging_config import get_logger

logger = get_logger("services.ledger")

_HELD_LOCKS_KEY = "bookkeeping_held_locks"
_HOOK_KEY = "bookkeeping_lock_hook"


class KeyedLocks:
    """
    One ``threading.Lock`` per key, created on first use.

    Contract:
        ``hold(session, keys)`` acquires the locks for ``keys`` in sorted
        order and releases them when the session's outermost transaction
        ends.  Keys are plain strings such as ``counter:PAYMENT:2024-25``,
        ``account:1001`` or ``movement:<uuid>``.  A key is forgotten once no
        session holds or waits for it, so the table only grows with the
        number of keys in use at the same time.

    Non-goals:
        - Does NOT coordinate across processes; on PostgreSQL the
          ``SELECT ... FOR UPDATE`` row locks cover that case.
    """

    def __init__(self, timeout: float = 30.0):
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @property
    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    def _claim(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _unclaim(self, key: str, release: bool) -> None:
        with self._guard:
            if release:
                self._locks[key].release()
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    def hold(self, session: Session, keys: Iterable[str]) -> None:
        """Acquire ``keys`` for the remainder of the session's transaction."""
        # Start the transaction first so the release hook always fires.
        session.connection()
        if not session.info.get(_HOOK_KEY):
            event.listen(session, "after_transaction_end", _release_on_outermost_end)
            session.info[_HOOK_KEY] = True
        held: dict[str, KeyedLocks] = session.info.setdefault(_HELD_LOCKS_KEY, {})

        for key in sorted(set(keys)):
            if key in held:
                continue
            lock = self._claim(key)
            if not lock.acquire(timeout=self._timeout):
                self._unclaim(key, release=False)
                logger.warning(
                    "lock_timeout",
                    extra={"lock_key": key, "timeout_seconds": self._timeout},
                )
                raise LockTimeoutError(key, self._timeout)
            held[key] = self

    def is_held(self, session: Session, key: str) -> bool:
        return key in session.info.get(_HELD_LOCKS_KEY, {})


def _release_on_outermost_end(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    held: dict[str, KeyedLocks] = session.info.pop(_HELD_LOCKS_KEY, {})
    for key, owner in held.items():
        owner._unclaim(key, release=True)


def counter_key(voucher_type: str, financial_year: str) -> str:
    return f"counter:{voucher_type}:{financial_year}"


def account_key(account_code: str) -> str:
    return f"account:{account_code}"


def movement_key(ledger_entry_id: object) -> str:
    return f"movement:{ledger_entry_id}"


class LedgerGuard:
    """
    Latch tripped by an invariant violation.

    Contract:
        Once ``trip()`` is called every ``check_open()`` raises
        BooksBlockedError until ``resolve()``.  Reads are never blocked.
    """

    def __init__(self, ledger_name: str):
        self._ledger_name = ledger_name
        self._lock = threading.Lock()
        self._reason: str | None = None
        self._tripped_at: datetime | None = None

    @property
    def is_blocked(self) -> bool:
        with self._lock:
            return self._reason is not None

    @property
    def reason(self) -> str | None:
        with self._lock:
            return self._reason

    @property
    def tripped_at(self) -> datetime | None:
        with self._lock:
            return self._tripped_at

    def trip(self, reason: str, at: datetime) -> None:
        with self._lock:
            if self._reason is None:
                self._reason = reason
                self._tripped_at = at
        logger.critical(
            "ledger_blocked",
            extra={"ledger_name": self._ledger_name, "reason": reason},
        )

    def resolve(self) -> None:
        with self._lock:
            reason = self._reason
            self._reason = None
            self._tripped_at = None
        if reason is not None:
            logger.warning(
                "ledger_unblocked",
                extra={"ledger_name": self._ledger_name, "previous_reason": reason},
            )

    def check_open(self) -> None:
        with self._lock:
            reason = self._reason
        if reason is not None:
            raise BooksBlockedError(self._ledger_name, reason)


@dataclass
class Ledger:
    """
    Runtime state of one set of books.

    Contract:
        One Ledger instance per business (per book), shared by reference
        between every service that reads or writes those books.
    """

    name: str = "default"
    clock: Clock = field(default_factory=SystemClock)
    tolerance: Decimal = DEFAULT_TOLERANCE
    currency_symbol: str = "₹"
    lock_timeout: float = 30.0
    numbering_max_retries: int = 3
    locks: KeyedLocks = field(init=False)
    guard: LedgerGuard = field(init=False)

    def __post_init__(self) -> None:
        self.locks = KeyedLocks(timeout=self.lock_timeout)
        self.guard = LedgerGuard(self.name)
