"""金额换算测试"""

from decimal import Decimal

from payclient.core.money import (
    format_major_units,
    major_units_number,
    major_units_text,
    to_major_units,
)


class TestMoney:
    def test_to_major_units_is_exact(self):
        assert to_major_units(10000) == Decimal("100")
        assert to_major_units(1) == Decimal("0.01")
        assert to_major_units(12345) == Decimal("123.45")

    def test_format_major_units_two_decimals(self):
        assert format_major_units(10000) == "100.00"
        assert format_major_units(1) == "0.01"
        assert format_major_units(999) == "9.99"

    def test_major_units_number_keeps_integers(self):
        value = major_units_number(10000)
        assert value == 100
        assert isinstance(value, int)

    def test_major_units_number_fraction(self):
        assert major_units_number(12345) == 123.45

    def test_major_units_text(self):
        assert major_units_text(1500000) == "15000"
        assert major_units_text(10050) == "100.50"
        assert major_units_text(1) == "0.01"
