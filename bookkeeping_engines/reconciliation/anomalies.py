"""
Module: bookkeeping_engines.reconciliation.anomalies
Responsibility:
    Flags suspicious bank statement lines: likely duplicates, unusually
    large amounts and lines still unmatched after a grace period.
Architecture position:
    Engines -- pure, zero I/O.  ``as_of`` is passed in; the engine never
    reads the clock.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from bookkeeping_engines.tracer import traced_engine
from bookkeeping_kernel.db.types import format_money
from bookkeeping_kernel.domain.dtos import BankTransactionInput


class AnomalyKind(str, Enum):
    DUPLICATE = "DUPLICATE"
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    STALE_UNMATCHED = "STALE_UNMATCHED"


class Severity(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


@dataclass(frozen=True)
class Anomaly:
    kind: AnomalyKind
    severity: Severity
    bank_transaction_ids: tuple[str, ...]
    description: str


@traced_engine(
    "reconciliation_anomalies",
    "1.0",
    fingerprint_fields=("as_of", "unusual_multiplier", "stale_days"),
)
def detect_anomalies(
    *,
    transactions: Sequence[BankTransactionInput],
    matched_ids: Collection[str],
    as_of: date,
    unusual_multiplier: Decimal = Decimal("5"),
    stale_days: int = 7,
) -> tuple[Anomaly, ...]:
    """
    Duplicates share date, amount and description.  An amount is unusual
    when its absolute value exceeds ``unusual_multiplier`` times the mean
    absolute amount of the statement.  Unmatched lines dated more than
    ``stale_days`` before ``as_of`` are reported together.
    """
    anomalies: list[Anomaly] = []

    groups: dict[tuple[date, Decimal, str], list[str]] = defaultdict(list)
    for txn in transactions:
        key = (txn.txn_date, txn.amount, " ".join(txn.description.lower().split()))
        groups[key].append(txn.id)
    for (txn_date, amount, description), ids in sorted(groups.items(), key=lambda kv: kv[1][0]):
        if len(ids) > 1:
            anomalies.append(
                Anomaly(
                    kind=AnomalyKind.DUPLICATE,
                    severity=Severity.HIGH,
                    bank_transaction_ids=tuple(ids),
                    description=(
                        f"{len(ids)} bank transactions on {txn_date.isoformat()} for "
                        f"{format_money(amount)} look like duplicates: {description}"
                    ),
                )
            )

    if transactions:
        mean = sum((abs(t.amount) for t in transactions), Decimal("0")) / len(transactions)
        threshold = mean * unusual_multiplier
        for txn in transactions:
            if abs(txn.amount) > threshold:
                anomalies.append(
                    Anomaly(
                        kind=AnomalyKind.UNUSUAL_AMOUNT,
                        severity=Severity.MEDIUM,
                        bank_transaction_ids=(txn.id,),
                        description=(
                            f"Unusually large transaction: {format_money(txn.amount)} "
                            f"- {txn.description}"
                        ),
                    )
                )

    stale = tuple(
        t.id
        for t in transactions
        if t.id not in matched_ids and (as_of - t.txn_date).days > stale_days
    )
    if stale:
        anomalies.append(
            Anomaly(
                kind=AnomalyKind.STALE_UNMATCHED,
                severity=Severity.HIGH,
                bank_transaction_ids=stale,
                description=(
                    f"{len(stale)} bank transactions older than {stale_days} days "
                    "are not reconciled"
                ),
            )
        )
    return tuple(anomalies)
