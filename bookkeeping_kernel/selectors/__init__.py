"""Read-only selectors over ledger state."""

from bookkeeping_kernel.selectors.ledger_selector import (
    AccountInfo,
    AccountMovement,
    LedgerRow,
    LedgerSelector,
    VoucherRecord,
)

__all__ = [
    "AccountInfo",
    "AccountMovement",
    "LedgerRow",
    "LedgerSelector",
    "VoucherRecord",
]
