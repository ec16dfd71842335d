"""
Voucher types and payment modes.

VoucherType is a closed enumeration.  Every member has exactly one number
prefix; the mapping is checked for completeness at import time so a new
voucher type cannot be added without a prefix.
"""

import re
from enum import Enum


class VoucherType(str, Enum):
    """Kinds of double-entry vouchers the books accept."""

    PAYMENT = "PAYMENT"
    RECEIPT = "RECEIPT"
    JOURNAL = "JOURNAL"
    CONTRA = "CONTRA"
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    DEBIT_NOTE = "DEBIT_NOTE"
    CREDIT_NOTE = "CREDIT_NOTE"
    MEMO = "MEMO"

    @property
    def prefix(self) -> str:
        """Voucher number prefix, e.g. ``PAY`` for payments."""
        return VOUCHER_PREFIXES[self]

    @property
    def label(self) -> str:
        """Display name, e.g. ``Debit Note``."""
        return self.value.replace("_", " ").title()

    @classmethod
    def parse(cls, value: "str | VoucherType | None") -> "VoucherType | None":
        """
        Resolve a voucher type from request text.

        Accepts enum members, values ("DEBIT_NOTE"), display names
        ("Debit Note"), camel case ("DebitNote") and prefixes ("DN").
        Returns None when the text names no known type.
        """
        if value is None:
            return None
        if isinstance(value, VoucherType):
            return value
        text = str(value).strip()
        if not text:
            return None
        # DebitNote -> Debit_Note
        text = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", text)
        key = re.sub(r"[\s\-]+", "_", text).upper()
        if key in cls.__members__:
            return cls[key]
        return _BY_PREFIX.get(key)


VOUCHER_PREFIXES: dict[VoucherType, str] = {
    VoucherType.PAYMENT: "PAY",
    VoucherType.RECEIPT: "REC",
    VoucherType.JOURNAL: "JNL",
    VoucherType.CONTRA: "CON",
    VoucherType.SALES: "SAL",
    VoucherType.PURCHASE: "PUR",
    VoucherType.DEBIT_NOTE: "DN",
    VoucherType.CREDIT_NOTE: "CN",
    VoucherType.MEMO: "MEM",
}

assert set(VOUCHER_PREFIXES) == set(VoucherType), "every voucher type needs a prefix"
assert len(set(VOUCHER_PREFIXES.values())) == len(VOUCHER_PREFIXES), "prefixes must be unique"

_BY_PREFIX: dict[str, VoucherType] = {p: t for t, p in VOUCHER_PREFIXES.items()}


def voucher_type_for_prefix(prefix: str) -> VoucherType | None:
    return _BY_PREFIX.get(prefix.upper())


class PaymentMode(str, Enum):
    """How money moved for a payment or receipt voucher."""

    CASH = "CASH"
    BANK = "BANK"
    CREDIT = "CREDIT"
    UPI = "UPI"
    CARD = "CARD"
    CHEQUE = "CHEQUE"
    NEFT = "NEFT"
    RTGS = "RTGS"
    IMPS = "IMPS"

    @classmethod
    def parse(cls, value: "str | PaymentMode | None") -> "PaymentMode | None":
        if value is None or isinstance(value, PaymentMode):
            return value
        key = str(value).strip().upper()
        return cls.__members__.get(key)
