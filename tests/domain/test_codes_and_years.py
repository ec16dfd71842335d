"""Financial years, voucher types, voucher numbers and account code digits."""

from datetime import date

import pytest

from bookkeeping_kernel.domain.accounts import (
    AccountClass,
    GoldenRuleKind,
    NormalBalance,
    classification_for_code,
    classification_from_hint,
    golden_rule_kind_for,
    looks_like_cash_or_bank,
    normal_balance_for,
)
from bookkeeping_kernel.domain.financial_year import FinancialYear
from bookkeeping_kernel.domain.voucher_types import VoucherType, voucher_type_for_prefix
from bookkeeping_kernel.exceptions import InvalidVoucherNumberError
from bookkeeping_kernel.services.voucher_numbering import (
    format_voucher_number,
    parse_voucher_number,
)


class TestFinancialYear:

    @pytest.mark.parametrize(
        "d, code",
        [
            (date(2024, 4, 1), "2024-25"),
            (date(2025, 3, 31), "2024-25"),
            (date(2024, 3, 31), "2023-24"),
            (date(1999, 12, 31), "1999-00"),
        ],
    )
    def test_for_date(self, d, code):
        assert FinancialYear.for_date(d).code == code

    def test_window(self):
        fy = FinancialYear(2024)

        assert fy.start_date == date(2024, 4, 1)
        assert fy.end_date == date(2025, 3, 31)
        assert fy.contains(date(2024, 12, 25))
        assert not fy.contains(date(2025, 4, 1))
        assert fy.next().code == "2025-26"
        assert fy.previous().code == "2023-24"

    @pytest.mark.parametrize("text", ["2024-25", "2024-2025", "FY2024-25", "fy 2024/25"])
    def test_parse_accepts_common_spellings(self, text):
        assert FinancialYear.parse(text) == FinancialYear(2024)

    def test_parse_across_a_century(self):
        assert FinancialYear.parse("1999-00") == FinancialYear(1999)

    @pytest.mark.parametrize("text", ["2024", "2024-26", "24-25", "next year"])
    def test_parse_rejects_malformed_codes(self, text):
        with pytest.raises(ValueError):
            FinancialYear.parse(text)


class TestVoucherTypes:

    def test_every_type_has_a_unique_prefix(self):
        prefixes = [t.prefix for t in VoucherType]

        assert len(prefixes) == len(set(prefixes)) == len(VoucherType)

    @pytest.mark.parametrize(
        "prefix, voucher_type",
        [
            ("PAY", VoucherType.PAYMENT),
            ("REC", VoucherType.RECEIPT),
            ("JNL", VoucherType.JOURNAL),
            ("CON", VoucherType.CONTRA),
            ("SAL", VoucherType.SALES),
            ("PUR", VoucherType.PURCHASE),
            ("DN", VoucherType.DEBIT_NOTE),
            ("CN", VoucherType.CREDIT_NOTE),
            ("MEM", VoucherType.MEMO),
        ],
    )
    def test_prefix_lookup(self, prefix, voucher_type):
        assert voucher_type.prefix == prefix
        assert voucher_type_for_prefix(prefix.lower()) is voucher_type

    def test_parse_unknown_returns_none(self):
        assert VoucherType.parse("INVOICE") is None
        assert VoucherType.parse("  ") is None


class TestVoucherNumbers:

    def test_format(self):
        number = format_voucher_number(VoucherType.PAYMENT, FinancialYear(2024), 7)

        assert number == "PAY-2024-25-0007"

    def test_sequence_grows_past_four_digits(self):
        number = format_voucher_number(VoucherType.SALES, FinancialYear(2024), 12345)

        assert number == "SAL-2024-25-12345"

    def test_parse(self):
        parsed = parse_voucher_number("dn-2023-24-0012")

        assert parsed.voucher_type is VoucherType.DEBIT_NOTE
        assert parsed.financial_year == FinancialYear(2023)
        assert parsed.sequence == 12
        assert str(parsed) == "DN-2023-24-0012"

    @pytest.mark.parametrize(
        "text", ["", "PAY-2024-25", "XYZ-2024-25-0001", "PAY-2024-27-0001", "PAY-2024-25-0000"]
    )
    def test_parse_rejects_invalid_numbers(self, text):
        with pytest.raises(InvalidVoucherNumberError):
            parse_voucher_number(text)


class TestAccountClassification:

    @pytest.mark.parametrize(
        "code, classification",
        [
            ("1001", AccountClass.ASSET),
            ("2500", AccountClass.LIABILITY),
            ("3001", AccountClass.EQUITY),
            ("4010", AccountClass.INCOME),
            ("5999", AccountClass.EXPENSE),
            ("6001", None),
            ("", None),
        ],
    )
    def test_leading_digit(self, code, classification):
        assert classification_for_code(code) == classification

    def test_normal_balance_and_golden_rule(self):
        assert normal_balance_for(AccountClass.ASSET) is NormalBalance.DEBIT
        assert normal_balance_for(AccountClass.INCOME) is NormalBalance.CREDIT
        assert golden_rule_kind_for(AccountClass.LIABILITY) is GoldenRuleKind.PERSONAL
        assert golden_rule_kind_for(AccountClass.EXPENSE) is GoldenRuleKind.NOMINAL

    @pytest.mark.parametrize(
        "hint, classification",
        [
            ("Asset", AccountClass.ASSET),
            ("revenue", AccountClass.INCOME),
            ("Capital", AccountClass.EQUITY),
            ("Personal", AccountClass.LIABILITY),
            ("NOMINAL", AccountClass.EXPENSE),
            ("widget", None),
            (None, None),
        ],
    )
    def test_type_hints(self, hint, classification):
        assert classification_from_hint(hint) == classification

    def test_cash_or_bank_names(self):
        assert looks_like_cash_or_bank("Petty Cash")
        assert looks_like_cash_or_bank("ICICI Bank Current A/c")
        assert not looks_like_cash_or_bank("Rent Expense")
        assert not looks_like_cash_or_bank("Bank Charges")
        assert not looks_like_cash_or_bank("Cash Discount Allowed")
        assert not looks_like_cash_or_bank("Cashew Stock")
        assert not looks_like_cash_or_bank("Bank Overdraft")
