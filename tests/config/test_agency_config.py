"""
Tests for per-agency engine configuration.

Covers:
- Defaults block for agencies without their own block
- Agency overrides and selection-mode aliases
- Validation of unknown keys, switches, fee percentage and currency
- TRAVEL_CONFIG_TRACE emission
"""

from decimal import Decimal

import pytest
import yaml

from travel_config import get_agency_config
from travel_config.loader import compute_checksum, parse_agency_config, resolve_agency_block
from travel_config.schema import (
    AgencyEngineConfig,
    BillingBreakdownMode,
    ServiceSelectionMode,
    parse_billing_mode,
    parse_selection_mode,
)
from travel_kernel.exceptions import InvalidCurrencyError


def _write(tmp_path, data):
    path = tmp_path / "agencies.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestParsers:

    @pytest.mark.parametrize("raw, expected", [
        ("obligatorio", ServiceSelectionMode.REQUIRED),
        ("Opcional", ServiceSelectionMode.OPTIONAL),
        ("booking-only", ServiceSelectionMode.BOOKING),
        ("reserva", ServiceSelectionMode.BOOKING),
        ("something else", ServiceSelectionMode.REQUIRED),
        (None, ServiceSelectionMode.REQUIRED),
    ])
    def test_selection_mode(self, raw, expected):
        assert parse_selection_mode(raw) is expected

    def test_billing_mode(self):
        assert parse_billing_mode(" MANUAL ") is BillingBreakdownMode.MANUAL
        assert parse_billing_mode("automatic") is BillingBreakdownMode.AUTO
        assert parse_billing_mode(None) is BillingBreakdownMode.AUTO


class TestBundledConfig:
    """The shipped agencies.yaml."""

    def test_defaults_for_unknown_agency(self):
        config = get_agency_config(999)
        assert config == AgencyEngineConfig(agency_id=999)

    def test_optional_selection_agency(self):
        assert get_agency_config(1).receipt_service_selection_mode is ServiceSelectionMode.OPTIONAL

    def test_booking_sale_total_agency(self):
        config = get_agency_config(2)
        assert config.use_booking_sale_total
        assert config.is_manual_billing

    def test_restrictive_agency(self):
        config = get_agency_config(3)
        assert config.receipt_service_selection_mode is ServiceSelectionMode.BOOKING
        assert not config.allow_client_credit_excess
        assert config.transfer_fee_pct == Decimal("0.03")

    def test_config_trace_emitted(self, captured_logs):
        get_agency_config(1)
        traces = [r for r in captured_logs() if r["message"] == "TRAVEL_CONFIG_TRACE"]
        assert traces[-1]["agency_block_found"] is True
        assert len(traces[-1]["checksum"]) == 64


class TestLoader:

    def test_string_agency_keys(self, tmp_path):
        path = _write(tmp_path, {"defaults": {}, "agencies": {"7": {"default_currency": "USD"}}})
        assert get_agency_config(7, path).default_currency == "USD"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_agency_config(1, tmp_path / "nope.yaml")

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError):
            parse_agency_config({"use_sale_total": True})

    def test_non_bool_switch_rejected(self):
        with pytest.raises(ValueError):
            parse_agency_config({"allow_client_credit_excess": "yes"})

    @pytest.mark.parametrize("pct", ["-0.1", "1", "abc"])
    def test_fee_pct_range(self, pct):
        with pytest.raises(ValueError):
            parse_agency_config({"transfer_fee_pct": pct})

    def test_invalid_default_currency(self):
        with pytest.raises(InvalidCurrencyError):
            parse_agency_config({"default_currency": "US$"})

    def test_agency_block_merges_over_defaults(self):
        data = {"defaults": {"billing_breakdown_mode": "manual"}, "agencies": {4: {"transfer_fee_pct": "0.01"}}}
        block, found = resolve_agency_block(data, 4)
        assert found
        assert block == {"billing_breakdown_mode": "manual", "transfer_fee_pct": "0.01"}

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})
