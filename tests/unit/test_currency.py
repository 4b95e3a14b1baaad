"""
Unit tests for currency canonicalization and the currency registry.

Verifies:
- Alias resolution (US$, U$D, AR$, $) is case-insensitive
- Registered ISO codes pass through normalized
- Empty, missing and unknown input falls back to ARS
- Strict validation rejects aliases
"""

import pytest

from travel_kernel.domain.currency import (
    CURRENCY_ALIASES,
    DEFAULT_CURRENCY,
    CurrencyRegistry,
    canonicalize,
)


class TestCanonicalize:
    """Tests for canonicalize()."""

    @pytest.mark.parametrize("raw", ["US$", "us$", "U$S", "U$D", "u$d", "DOL", " usd "])
    def test_dollar_aliases(self, raw):
        assert canonicalize(raw) == "USD"

    @pytest.mark.parametrize("raw", ["$", "AR$", "ar$", "ARS", "ars"])
    def test_peso_aliases(self, raw):
        assert canonicalize(raw) == "ARS"

    def test_iso_code_passes_through(self):
        assert canonicalize("eur") == "EUR"
        assert canonicalize("BRL") == "BRL"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing_falls_back_to_default(self, raw):
        assert canonicalize(raw) == DEFAULT_CURRENCY == "ARS"

    def test_unknown_code_falls_back_to_default(self):
        assert canonicalize("XYZ") == "ARS"
        assert canonicalize("pesos chilenos") == "ARS"

    def test_every_alias_targets_a_registered_code(self):
        for target in CURRENCY_ALIASES.values():
            assert CurrencyRegistry.is_valid(target)


class TestCurrencyRegistry:
    """Tests for strict ISO validation."""

    def test_validate_normalizes_case(self):
        assert CurrencyRegistry.validate("usd") == "USD"

    def test_validate_rejects_alias(self):
        with pytest.raises(ValueError):
            CurrencyRegistry.validate("US$")

    def test_validate_rejects_empty(self):
        with pytest.raises(ValueError):
            CurrencyRegistry.validate("")

    def test_decimal_places(self):
        assert CurrencyRegistry.get_decimal_places("ARS") == 2
        assert CurrencyRegistry.get_decimal_places("CLP") == 0

    def test_unknown_has_no_info(self):
        assert CurrencyRegistry.get_info("XYZ") is None
        assert not CurrencyRegistry.is_valid("XYZ")
