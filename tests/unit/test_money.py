"""
Unit tests for monetary helpers in bookkeeping_kernel.db.types.

Verifies:
- Coercion of caller-supplied amounts (str, int, float, None)
- ROUND_HALF_UP rounding to two places
- Integer-cent comparison helpers
"""

from decimal import Decimal

import pytest

from bookkeeping_kernel.db.types import (
    MONEY_DECIMAL_PLACES,
    ZERO,
    money_from_cents,
    round_money,
    to_cents,
    to_decimal,
)


class TestToDecimal:
    def test_string(self):
        assert to_decimal("100.50") == Decimal("100.50")

    def test_whitespace_is_stripped(self):
        assert to_decimal(" 42 ") == Decimal("42")

    def test_int(self):
        assert to_decimal(7) == Decimal("7")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_none_is_zero(self):
        assert to_decimal(None) == ZERO

    def test_decimal_passthrough(self):
        value = Decimal("1.005")
        assert to_decimal(value) is value

    def test_invalid_string_raises(self):
        with pytest.raises(ValueError, match="Not a numeric amount"):
            to_decimal("ten rupees")


class TestRoundMoney:
    def test_default_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("10")) == Decimal("10.00")
        assert str(round_money(Decimal("10"))) == "10.00"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0.005", "0.01"),
            ("0.004", "0.00"),
            ("2.675", "2.68"),
            ("-0.005", "-0.01"),
            ("1180.4999", "1180.50"),
        ],
    )
    def test_half_up(self, value, expected):
        assert round_money(Decimal(value)) == Decimal(expected)

    def test_zero_places(self):
        assert round_money(Decimal("2.5"), decimal_places=0) == Decimal("3")

    def test_deterministic(self):
        results = {round_money(Decimal("33.335")) for _ in range(100)}
        assert results == {Decimal("33.34")}


class TestCents:
    def test_to_cents(self):
        assert to_cents(Decimal("10.50")) == 1050

    def test_to_cents_rounds_first(self):
        assert to_cents(Decimal("0.015")) == 2

    def test_thirds_compare_in_cents(self):
        third = Decimal("100") / Decimal("3")
        assert to_cents(third * 3) == to_cents(Decimal("100.00"))

    def test_money_from_cents(self):
        assert money_from_cents(1050) == Decimal("10.50")
        assert money_from_cents(-1) == Decimal("-0.01")
