"""
VoucherNumbering -- gap-free voucher numbers per (voucher type, financial year).

Responsibility:
    Allocates ``{PREFIX}-{FY}-{seq:04d}`` numbers (``PAY-2024-25-0001``)
    from a locked counter row, one counter per voucher type and financial
    year.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by LedgerPostingEngine inside the posting savepoint, so a
    rolled-back posting also rolls back its number.

Invariants enforced:
    - Within one (type, FY) key, numbers strictly increase and are never
      issued twice.  The counter row is the only source of truth; the
      aggregate max-plus-one query is never used.
    - Allocation for one key is serialized by the ledger's keyed lock
      (in-process) and ``SELECT ... FOR UPDATE`` (across processes).
      Different keys proceed independently.
    - Numbers are never reclaimed, even when the voucher is voided.

Failure modes:
    - NumberingConflictError: the counter row could not be created after
      ``numbering_max_retries`` savepoint retries.
    - LockTimeoutError: another writer held the key too long.
    - InvalidVoucherNumberError: parse() on malformed text.

Audit relevance:
    Every allocation is logged as ``voucher_number_allocated``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import VoucherType, voucher_type_for_prefix
from bookkeeping_kernel.exceptions import InvalidVoucherNumberError, NumberingConflictError
from bookkeeping_kernel.logging_config import get_logger
from bookkeeping_kernel.models.voucher_counter import VoucherCounter
from bookkeeping_kernel.services.ledger import Ledger, counter_key

logger = get_logger("services.voucher_numbering")

_NUMBER_PATTERN = re.compile(r"^([A-Z]+)-(\d{4}-\d{2})-(\d{4,})$")


@dataclass(frozen=True)
class VoucherNumber:
    """Components of a voucher number."""

    voucher_type: VoucherType
    financial_year: FinancialYear
    sequence: int

    def __str__(self) -> str:
        return format_voucher_number(self.voucher_type, self.financial_year, self.sequence)


def format_voucher_number(
    voucher_type: VoucherType, financial_year: FinancialYear, sequence: int
) -> str:
    return f"{voucher_type.prefix}-{financial_year.code}-{sequence:04d}"


def parse_voucher_number(text: str) -> VoucherNumber:
    """
    Split ``PAY-2024-25-0001`` into its components.

    Raises:
        InvalidVoucherNumberError: unknown prefix, bad financial year or
            malformed sequence.
    """
    match = _NUMBER_PATTERN.match((text or "").strip().upper())
    if match is None:
        raise InvalidVoucherNumberError(text)
    voucher_type = voucher_type_for_prefix(match.group(1))
    if voucher_type is None:
        raise InvalidVoucherNumberError(text)
    try:
        financial_year = FinancialYear.parse(match.group(2))
    except ValueError as exc:
        raise InvalidVoucherNumberError(text) from exc
    sequence = int(match.group(3))
    if sequence < 1:
        raise InvalidVoucherNumberError(text)
    return VoucherNumber(voucher_type, financial_year, sequence)


class VoucherNumbering:
    """
    Keyed sequence allocation backed by ``voucher_counters``.

    Contract:
        ``next()`` returns the next number for a (type, FY) key.  The
        increment becomes visible only when the caller's transaction
        commits; a rollback returns the number to the counter.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT know about journal entries.
    """

    def __init__(self, session: Session, ledger: Ledger):
        self._session = session
        self._ledger = ledger

    def next(
        self,
        voucher_type: VoucherType | str,
        financial_year: FinancialYear | str,
    ) -> str:
        """
        Allocate the next voucher number.

        Preconditions:
            ``voucher_type`` names a VoucherType; ``financial_year`` is a
            FinancialYear or its code.

        Postconditions:
            The counter row for the key is incremented by exactly one and
            stays locked until the caller's transaction ends.

        Raises:
            ValueError: unknown voucher type or financial year text.
            NumberingConflictError: counter creation kept colliding.
        """
        vtype = VoucherType.parse(voucher_type)
        if vtype is None:
            raise ValueError(f"Unknown voucher type {voucher_type!r}")
        fy = FinancialYear.parse(financial_year)

        self._ledger.locks.hold(self._session, [counter_key(vtype.value, fy.code)])

        attempts = self._ledger.numbering_max_retries
        for attempt in range(1, attempts + 1):
            counter = self._locked_counter(vtype, fy)
            if counter is None:
                counter = self._create_counter(vtype, fy)
                if counter is None:
                    logger.debug(
                        "voucher_counter_race_retry",
                        extra={
                            "voucher_type": vtype.value,
                            "financial_year": fy.code,
                            "attempt": attempt,
                        },
                    )
                    continue

            counter.last_number += 1
            self._session.flush()
            number = format_voucher_number(vtype, fy, counter.last_number)
            logger.info(
                "voucher_number_allocated",
                extra={
                    "voucher_type": vtype.value,
                    "financial_year": fy.code,
                    "sequence": counter.last_number,
                    "voucher_number": number,
                },
            )
            return number

        logger.error(
            "voucher_numbering_conflict",
            extra={"voucher_type": vtype.value, "financial_year": fy.code, "attempts": attempts},
        )
        raise NumberingConflictError(vtype.value, fy.code, attempts)

    def current(
        self,
        voucher_type: VoucherType | str,
        financial_year: FinancialYear | str,
    ) -> int:
        """Last issued sequence for the key, 0 if none.  Does not increment."""
        vtype = VoucherType.parse(voucher_type)
        if vtype is None:
            raise ValueError(f"Unknown voucher type {voucher_type!r}")
        fy = FinancialYear.parse(financial_year)
        value = self._session.execute(
            select(VoucherCounter.last_number).where(
                VoucherCounter.voucher_type == vtype.value,
                VoucherCounter.financial_year == fy.code,
            )
        ).scalar_one_or_none()
        return value or 0

    @staticmethod
    def parse(voucher_number: str) -> VoucherNumber:
        return parse_voucher_number(voucher_number)

    def _locked_counter(self, vtype: VoucherType, fy: FinancialYear) -> VoucherCounter | None:
        return self._session.execute(
            select(VoucherCounter)
            .where(
                VoucherCounter.voucher_type == vtype.value,
                VoucherCounter.financial_year == fy.code,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create_counter(self, vtype: VoucherType, fy: FinancialYear) -> VoucherCounter | None:
        # Savepoint so a lost creation race does not undo the caller's work.
        savepoint = self._session.begin_nested()
        try:
            counter = VoucherCounter(
                voucher_type=vtype.value, financial_year=fy.code, last_number=0
            )
            self._session.add(counter)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            return None
        return counter
