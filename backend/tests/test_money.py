"""Fixed-point money helpers."""

from decimal import Decimal

import pytest

from backoffice.money import line_total, money_str, to_money


class TestToMoney:
    def test_none_is_zero(self):
        assert to_money(None) == Decimal("0.00")

    def test_truncates_instead_of_rounding(self):
        assert to_money("19.999") == Decimal("19.99")
        assert to_money(Decimal("0.015")) == Decimal("0.01")

    def test_float_goes_through_str(self):
        # Decimal(19.9) would carry binary noise; str() keeps it exact
        assert to_money(19.9) == Decimal("19.90")

    def test_int(self):
        assert to_money(5) == Decimal("5.00")

    @pytest.mark.parametrize("bad", [True, "abc", "NaN", "Infinity", [1]])
    def test_rejects_non_amounts(self, bad):
        with pytest.raises(ValueError):
            to_money(bad)


class TestLineTotal:
    def test_price_times_quantity(self):
        assert line_total(Decimal("19.90"), 2, None) == Decimal("39.80")

    def test_discount_subtracted_after_product(self):
        assert line_total(Decimal("10.00"), 3, Decimal("0.50")) == Decimal("29.50")

    def test_truncates_each_step(self):
        # 0.333 -> 0.33 before multiplying
        assert line_total(Decimal("0.333"), 3, None) == Decimal("0.99")


def test_money_str_keeps_two_decimals():
    assert money_str(Decimal("39.8")) == "39.80"
    assert money_str(None) is None
