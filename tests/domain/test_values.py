"""
Tests for monetary primitives.

Covers:
- Half-away-from-zero rounding
- Tolerant Decimal conversion
- Money arithmetic and comparison
"""

from decimal import Decimal

import pytest

from procurement_kernel.domain.values import (
    Money,
    clamp_non_negative,
    percent_of,
    round_money,
    to_decimal,
)
from procurement_kernel.exceptions import InvalidAmountError


class TestRoundMoney:
    """Two-place rounding, half away from zero."""

    def test_half_rounds_up(self):
        assert round_money(Decimal("2.345")) == Decimal("2.35")

    def test_negative_half_rounds_away_from_zero(self):
        assert round_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_below_half_rounds_down(self):
        assert round_money(Decimal("2.344")) == Decimal("2.34")

    def test_accepts_strings_and_ints(self):
        assert round_money("1.005") == Decimal("1.01")
        assert round_money(3) == Decimal("3.00")


class TestToDecimal:
    def test_none_and_blank_use_default(self):
        assert to_decimal(None) == Decimal("0")
        assert to_decimal("   ", default=Decimal("7")) == Decimal("7")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_strips_whitespace(self):
        assert to_decimal(" 12.50 ") == Decimal("12.50")

    @pytest.mark.parametrize("raw", ["abc", "1.2.3", True, object(), "NaN", "Infinity"])
    def test_rejects_non_numeric(self, raw):
        with pytest.raises(InvalidAmountError) as exc_info:
            to_decimal(raw, "unit_price")
        assert exc_info.value.field == "unit_price"
        assert exc_info.value.code == "INVALID_AMOUNT"


class TestHelpers:
    def test_percent_of_rounds(self):
        # 33.33 * 7.5% = 2.49975
        assert percent_of(Decimal("33.33"), Decimal("7.5")) == Decimal("2.50")

    def test_clamp_non_negative(self):
        assert clamp_non_negative(Decimal("-3")) == Decimal("0")
        assert clamp_non_negative(Decimal("4")) == Decimal("4")


class TestMoney:
    def test_of_parses_strings(self):
        assert Money.of("10.50").amount == Decimal("10.50")

    def test_addition_and_sum(self):
        total = sum([Money.of("1.10"), Money.of("2.20")])
        assert total == Money.of("3.30")

    def test_subtraction_and_negation(self):
        assert Money.of("5") - Money.of("7") == Money.of("-2")
        assert -Money.of("3") == Money.of("-3")

    def test_multiplication_does_not_round(self):
        assert (Money.of("10.00") * Decimal("0.333")).amount == Decimal("3.33000")

    def test_round(self):
        assert Money.of("3.335").round() == Money.of("3.34")

    def test_percent(self):
        assert Money.of("200").percent(Decimal("12.5")) == Money.of("25.00")

    def test_predicates(self):
        assert Money.zero().is_zero
        assert Money.of("1").is_positive
        assert Money.of("-1").is_negative

    def test_comparison(self):
        assert Money.of("1") < Money.of("2")
        assert Money.of("2") >= Money.of("2")

    def test_adding_non_money_fails(self):
        with pytest.raises(TypeError):
            Money.of("1") + Decimal("1")

    def test_is_hashable(self):
        assert len({Money.of("1.00"), Money.of("1.00")}) == 1
