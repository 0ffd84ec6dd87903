# PATH: tests/unit/test_format_money.py
"""
Unit tests for format_money module.
"""

import unittest
from decimal import Decimal

from core.format_money import format_money, format_pct, format_usd


class TestFormatMoney(unittest.TestCase):
    """Tests for format_money function."""

    def test_format_string_input(self):
        self.assertEqual(format_money("123.456789"), "123.456789")
        self.assertEqual(format_money("0"), "0.000000")
        self.assertEqual(format_money("1000"), "1000.000000")

    def test_format_decimal_input(self):
        self.assertEqual(format_money(Decimal("123.456789")), "123.456789")

    def test_format_int_input(self):
        self.assertEqual(format_money(100), "100.000000")

    def test_truncates_not_rounds(self):
        self.assertEqual(format_money(Decimal("1.239"), 2), "1.23")
        self.assertEqual(format_money(Decimal("1.9999999"), 6), "1.999999")

    def test_negative_truncates_toward_zero(self):
        self.assertEqual(format_money(Decimal("-15.3289"), 2), "-15.32")

    def test_none_and_empty(self):
        self.assertEqual(format_money(None), "0.000000")
        self.assertEqual(format_money("   "), "0.000000")

    def test_invalid_and_non_finite(self):
        self.assertEqual(format_money("abc", 2), "0.00")
        self.assertEqual(format_money(Decimal("NaN"), 2), "0.00")

    def test_zero_decimals(self):
        self.assertEqual(format_money(Decimal("42.9"), 0), "42")

    def test_large_value(self):
        self.assertEqual(format_money(Decimal("123456789012345.123456789"), 2), "123456789012345.12")


class TestFormatUsdAndPct(unittest.TestCase):

    def test_format_usd(self):
        self.assertEqual(format_usd(Decimal("1.7272")), "$1.72")
        self.assertEqual(format_usd("-25.8"), "$-25.80")

    def test_format_pct(self):
        self.assertEqual(format_pct(Decimal("0.567107750472589")), "0.5671%")


if __name__ == "__main__":
    unittest.main()
