"""
Account classification rules.

Pure mapping between account codes, classifications, golden-rule kinds and
normal-balance sides.  Shared by the account registry (which persists
accounts) and the book builders (which need to know which side of the
statements an account belongs to).

The leading digit of an account code carries its classification:

    1xxx  Asset        normal DEBIT
    2xxx  Liability    normal CREDIT
    3xxx  Equity       normal CREDIT
    4xxx  Income       normal CREDIT
    5xxx  Expense      normal DEBIT
"""

import re
from enum import Enum


class AccountClass(str, Enum):
    """Financial statement classification of an account."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class NormalBalance(str, Enum):
    """Side on which an account's balance normally sits."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class GoldenRuleKind(str, Enum):
    """
    Traditional classification used by the golden rules of accounting.

    PERSONAL: debit the receiver, credit the giver (parties, banks, capital).
    REAL:     debit what comes in, credit what goes out (assets).
    NOMINAL:  debit expenses and losses, credit incomes and gains.
    """

    PERSONAL = "PERSONAL"
    REAL = "REAL"
    NOMINAL = "NOMINAL"


_CLASS_BY_DIGIT: dict[str, AccountClass] = {
    "1": AccountClass.ASSET,
    "2": AccountClass.LIABILITY,
    "3": AccountClass.EQUITY,
    "4": AccountClass.INCOME,
    "5": AccountClass.EXPENSE,
}

_DIGIT_BY_CLASS: dict[AccountClass, str] = {v: k for k, v in _CLASS_BY_DIGIT.items()}

_NORMAL_BALANCE: dict[AccountClass, NormalBalance] = {
    AccountClass.ASSET: NormalBalance.DEBIT,
    AccountClass.LIABILITY: NormalBalance.CREDIT,
    AccountClass.EQUITY: NormalBalance.CREDIT,
    AccountClass.INCOME: NormalBalance.CREDIT,
    AccountClass.EXPENSE: NormalBalance.DEBIT,
}

_DEFAULT_GROUP: dict[AccountClass, str] = {
    AccountClass.ASSET: "Current Assets",
    AccountClass.LIABILITY: "Current Liabilities",
    AccountClass.EQUITY: "Capital Account",
    AccountClass.INCOME: "Direct Incomes",
    AccountClass.EXPENSE: "Indirect Expenses",
}

_GOLDEN_RULE_KIND: dict[AccountClass, GoldenRuleKind] = {
    AccountClass.ASSET: GoldenRuleKind.REAL,
    AccountClass.LIABILITY: GoldenRuleKind.PERSONAL,
    AccountClass.EQUITY: GoldenRuleKind.PERSONAL,
    AccountClass.INCOME: GoldenRuleKind.NOMINAL,
    AccountClass.EXPENSE: GoldenRuleKind.NOMINAL,
}

# Free-text hints accepted on posting requests, mapped to a classification.
_TYPE_HINTS: dict[str, AccountClass] = {
    "asset": AccountClass.ASSET,
    "assets": AccountClass.ASSET,
    "real": AccountClass.ASSET,
    "liability": AccountClass.LIABILITY,
    "liabilities": AccountClass.LIABILITY,
    "personal": AccountClass.LIABILITY,
    "equity": AccountClass.EQUITY,
    "capital": AccountClass.EQUITY,
    "income": AccountClass.INCOME,
    "revenue": AccountClass.INCOME,
    "expense": AccountClass.EXPENSE,
    "expenses": AccountClass.EXPENSE,
    "nominal": AccountClass.EXPENSE,
}

# Whole words that mark an account as a cash or bank account.
CASH_BANK_KEYWORDS: frozenset[str] = frozenset({"cash", "bank"})

# Words that make a cash or bank name a charge, income or borrowing instead.
NON_CASH_WORDS: frozenset[str] = frozenset({
    "charge", "charges", "fee", "fees", "commission", "discount", "discounts",
    "interest", "expense", "expenses", "income", "loan", "loans", "overdraft",
    "od", "purchase", "purchases", "sale", "sales",
})


def classification_for_code(code: str) -> AccountClass | None:
    """Classification encoded by the leading digit, or None if unknown."""
    if not code:
        return None
    return _CLASS_BY_DIGIT.get(code.strip()[0])


def code_digit(classification: AccountClass) -> str:
    return _DIGIT_BY_CLASS[AccountClass(classification)]


def normal_balance_for(classification: AccountClass) -> NormalBalance:
    return _NORMAL_BALANCE[AccountClass(classification)]


def default_group_for(classification: AccountClass) -> str:
    return _DEFAULT_GROUP[AccountClass(classification)]


def golden_rule_kind_for(classification: AccountClass) -> GoldenRuleKind:
    return _GOLDEN_RULE_KIND[AccountClass(classification)]


def classification_from_hint(hint: str | None) -> AccountClass | None:
    """
    Map a request's ``accountType`` hint to a classification.

    Accepts classification names ("Asset", "EXPENSE"), golden-rule kinds
    ("Personal", "Real", "Nominal") and common synonyms ("revenue",
    "capital").  Returns None for unknown or missing hints.
    """
    if not hint:
        return None
    return _TYPE_HINTS.get(hint.strip().lower())


def looks_like_cash_or_bank(name: str) -> bool:
    """True for names like "Petty Cash" or "HDFC Bank"; false for "Bank Charges" or "Cashew"."""
    words = set(re.findall(r"[a-z]+", name.lower()))
    return bool(words & CASH_BANK_KEYWORDS) and not words & NON_CASH_WORDS
