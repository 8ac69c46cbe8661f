"""Tests for rendering/formatting.py."""

import pytest

from rendering.formatting import format_grouped, format_number, is_currency_field


class TestIsCurrencyField:
    @pytest.mark.parametrize("name", ["Total Sales ($)", "Revenue", "unit_price", "Gross Margin"])
    def test_currency(self, name):
        assert is_currency_field(name)

    @pytest.mark.parametrize("name", ["Customer Count", "Year", "Region", "Quantity"])
    def test_not_currency(self, name):
        assert not is_currency_field(name)


class TestFormatNumber:
    def test_millions(self):
        assert format_number(2_500_000, is_currency=True) == "$2.5M"

    def test_millions_round_half_up(self):
        assert format_number(1_250_000) == "1.3M"

    def test_thousands_no_decimals(self):
        assert format_number(1500) == "2K"
        assert format_number(1499) == "1K"

    def test_small_values(self):
        assert format_number(999) == "999"
        assert format_number(0.12345) == "0.123"
        assert format_number(12.0, is_currency=True) == "$12"

    def test_long_form(self):
        assert format_number(1234.5, is_currency=True, short=False) == "$1,234.5"
        assert format_number(2_500_000, short=False) == "2,500,000"

    def test_negative_not_folded(self):
        assert format_number(-5000) == "-5,000"

    def test_non_numeric_passthrough(self):
        assert format_number("n/a") == "n/a"
        assert format_number("n/a", is_currency=True) == "$n/a"
        assert format_number(None) == "None"


class TestFormatGrouped:
    def test_rounding(self):
        assert format_grouped(1234567.8915) == "1,234,567.892"

    def test_trailing_zeros_stripped(self):
        assert format_grouped(2.0) == "2"
        assert format_grouped(1000) == "1,000"

    def test_negative_zero(self):
        assert format_grouped(-0.0001) == "0"

    def test_beyond_default_decimal_precision(self):
        assert format_grouped(1e26) == "100,000,000,000,000,000,000,000,000"
        assert format_grouped(-1e26) == "-100,000,000,000,000,000,000,000,000"


class TestLargeMagnitudes:
    def test_long_form(self):
        assert format_number(5e27, short=False) == "5,000,000,000,000,000,000,000,000,000"

    def test_short_form(self):
        text = format_number(5e27, is_currency=True)
        assert text.startswith("$")
        assert text.endswith(".0M")
