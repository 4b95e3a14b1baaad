"""
Unit tests for money primitives.

Verifies:
- round2 rounds half away from zero, floats go through their repr
- to_decimal parses es-AR and plain numeric text
- Money refuses cross-currency arithmetic
- CurrencyTotals drops noise below the debt tolerance and keeps buckets apart
"""

from decimal import Decimal

import pytest

from travel_kernel.domain.buckets import CurrencyTotals
from travel_kernel.domain.values import (
    DEBT_TOLERANCE,
    Currency,
    Money,
    round2,
    round_ratio,
    to_decimal,
)


class TestRound2:
    """Tests for round2()."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1.005", "1.01"),
            ("2.675", "2.68"),
            ("-1.005", "-1.01"),
            ("10", "10.00"),
            ("0.004", "0.00"),
        ],
    )
    def test_half_up(self, raw, expected):
        assert round2(Decimal(raw)) == Decimal(expected)

    def test_float_uses_repr(self):
        # Decimal(2.675) would be 2.67499999...
        assert round2(2.675) == Decimal("2.68")

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            round2(True)

    def test_round_ratio_eight_places(self):
        assert round_ratio(Decimal(1) / Decimal(3)) == Decimal("0.33333333")


class TestToDecimal:
    """Tests for to_decimal()."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1.234,56", "1234.56"),
            ("$ 1.234,56", "1234.56"),
            ("US$ 10,5", "10.5"),
            ("1,234.56", "1234.56"),
            ("1.500", "1500"),
            ("1.234.567", "1234567"),
            ("1.5", "1.5"),
            ("10.00", "10.00"),
            ("-250,75", "-250.75"),
            ("1000", "1000"),
        ],
    )
    def test_text_formats(self, raw, expected):
        assert to_decimal(raw) == Decimal(expected)

    def test_numbers(self):
        assert to_decimal(7) == Decimal("7")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(Decimal("3.30")) == Decimal("3.30")

    @pytest.mark.parametrize("raw", [None, "", "abc", "-", ",", True, [], "1-2"])
    def test_unparseable_is_none(self, raw):
        assert to_decimal(raw) is None

    @pytest.mark.parametrize("raw", [float("nan"), float("inf"), Decimal("NaN"), Decimal("-Infinity")])
    def test_non_finite_is_none(self, raw):
        assert to_decimal(raw) is None


class TestMoney:
    """Tests for the Money value object."""

    def test_of_and_code(self):
        m = Money.of("100.50", "usd")
        assert m.amount == Decimal("100.50")
        assert m.code == "USD"
        assert m.currency == Currency("USD")

    def test_same_currency_arithmetic(self):
        total = Money.of("10.10", "ARS") + Money.of("5.05", "ARS") - Money.of("0.15", "ARS")
        assert total == Money.of("15.00", "ARS")

    def test_cross_currency_arithmetic_rejected(self):
        with pytest.raises(ValueError):
            Money.of("1", "ARS") + Money.of("1", "USD")

    def test_cross_currency_comparison_rejected(self):
        with pytest.raises(ValueError):
            Money.of("1", "ARS") < Money.of("1", "USD")

    def test_alias_not_accepted_directly(self):
        with pytest.raises(ValueError):
            Money.of("1", "US$")

    def test_within_tolerance(self):
        assert Money.of("0.01", "ARS").within_tolerance()
        assert Money.of("-0.01", "ARS").within_tolerance()
        assert not Money.of("0.02", "ARS").within_tolerance()

    def test_round2(self):
        assert Money.of("3.335", "EUR").round2() == Money.of("3.34", "EUR")

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            Money.of("Infinity", "ARS")


class TestCurrencyTotals:
    """Tests for per-currency buckets."""

    def test_buckets_never_mix(self):
        totals = CurrencyTotals()
        totals.add("ARS", Decimal("100"))
        totals.add("USD", Decimal("50"))
        totals.add("ARS", Decimal("25.50"))
        assert totals.as_dict() == {"ARS": Decimal("125.50"), "USD": Decimal("50.00")}

    def test_aliases_share_a_bucket(self):
        totals = CurrencyTotals()
        totals.add("U$D", Decimal("10"))
        totals.add("usd", Decimal("5"))
        assert totals.get("US$") == Decimal("15.00")
        assert "USD" in totals
        assert len(totals) == 1

    def test_noise_is_dropped(self):
        totals = CurrencyTotals()
        totals.add("ARS", DEBT_TOLERANCE)
        totals.add("ARS", -DEBT_TOLERANCE)
        assert len(totals) == 0
        assert totals.get("ARS") == Decimal("0")

    def test_running_sum_is_rounded(self):
        totals = CurrencyTotals()
        totals.add("ARS", Decimal("0.333"))
        totals.add("ARS", Decimal("0.333"))
        assert totals.get("ARS") == Decimal("0.66")

    def test_as_money_sorted(self):
        totals = CurrencyTotals({"USD": Decimal("1"), "ARS": Decimal("2")})
        assert list(totals.as_money()) == ["ARS", "USD"]
        assert list(totals) == ["ARS", "USD"]
