"""
Module: bookkeeping_kernel.db.types
Responsibility: Money helpers shared by models, domain values, services
    and engines.
Architecture position: Kernel > DB.  Importable from every kernel layer and
    from the engines; imports nothing from them.

Invariants enforced:
    - round_money() is the only sanctioned rounding function for money.
      It rounds half-up to 2 decimal places by default.
    - to_decimal() never routes a value through binary float arithmetic
      that the caller did not already perform: floats are converted via
      their shortest repr.
    - No floats anywhere in kernel arithmetic.

Failure modes:
    - decimal.InvalidOperation from to_decimal() on non-numeric input.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")

# Default currency symbol for user-facing messages
DEFAULT_CURRENCY_SYMBOL = "₹"


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an incoming amount (Decimal, int, str or float) to Decimal.

    None and empty strings are treated as zero, matching blank amount
    cells on an entry form.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value).replace(",", "").strip())


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    INVARIANT: the only sanctioned rounding function for money.

    Preconditions: value is a Decimal.
    Postconditions: value quantized with ROUND_HALF_UP unless overridden.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def format_money(value: Decimal, symbol: str = DEFAULT_CURRENCY_SYMBOL) -> str:
    """Format an amount for messages, e.g. ``₹10,000.00``."""
    rounded = round_money(value)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{abs(rounded):,.2f}"


def format_balance(value: Decimal) -> str:
    """
    Format a signed debit-minus-credit balance the way ledgers print it.

    Positive balances are debit balances (``"1,500.00 Dr"``), negative
    balances are credit balances (``"1,500.00 Cr"``), zero is ``"0.00"``.
    """
    rounded = round_money(value)
    if rounded > 0:
        return f"{rounded:,.2f} Dr"
    if rounded < 0:
        return f"{abs(rounded):,.2f} Cr"
    return "0.00"
