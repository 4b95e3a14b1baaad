"""
YAML loader for agency engine configuration.

File layout::

    defaults:
      use_booking_sale_total: false
      billing_breakdown_mode: auto
      receipt_service_selection_mode: required
      transfer_fee_pct: "0.024"
      allow_client_credit_excess: true
      default_currency: ARS
    agencies:
      7:
        use_booking_sale_total: true

Agency blocks override the defaults field by field.

Failure modes:
    - Malformed YAML  -> ``yaml.YAMLError`` propagates.
    - Unknown keys, non-boolean switches, or a bad transfer fee -> ValueError.
    - Default currency not a registered ISO code -> InvalidCurrencyError.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from travel_config.schema import AgencyEngineConfig, parse_billing_mode, parse_selection_mode
from travel_kernel.domain.currency import CurrencyRegistry
from travel_kernel.domain.values import to_decimal
from travel_kernel.exceptions import InvalidCurrencyError

_KNOWN_KEYS = frozenset({
    "use_booking_sale_total",
    "billing_breakdown_mode",
    "receipt_service_selection_mode",
    "transfer_fee_pct",
    "allow_client_credit_excess",
    "default_currency",
})

_BOOL_KEYS = ("use_booking_sale_total", "allow_client_credit_excess")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _check_block(block: dict[str, Any], where: str) -> None:
    unknown = set(block) - _KNOWN_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys in {where}: {sorted(unknown)}")
    for key in _BOOL_KEYS:
        if key in block and not isinstance(block[key], bool):
            raise ValueError(f"{where}.{key} must be true or false, got {block[key]!r}")


def parse_agency_config(data: dict[str, Any], agency_id: int | None = None) -> AgencyEngineConfig:
    """
    Parse a merged configuration block into an AgencyEngineConfig.

    Raises:
        ValueError: transfer_fee_pct is not a number in [0, 1).
        InvalidCurrencyError: default_currency is not a registered ISO code.
    """
    _check_block(data, f"agency {agency_id}" if agency_id is not None else "defaults")

    fee_pct = to_decimal(data.get("transfer_fee_pct", "0.024"))
    if fee_pct is None or fee_pct < 0 or fee_pct >= 1:
        raise ValueError(f"transfer_fee_pct must be a fraction in [0, 1), got {data.get('transfer_fee_pct')!r}")

    currency = str(data.get("default_currency", "ARS")).strip().upper()
    if not CurrencyRegistry.is_valid(currency):
        raise InvalidCurrencyError(data.get("default_currency"))

    return AgencyEngineConfig(
        agency_id=agency_id,
        use_booking_sale_total=data.get("use_booking_sale_total", False),
        billing_breakdown_mode=parse_billing_mode(data.get("billing_breakdown_mode")),
        receipt_service_selection_mode=parse_selection_mode(data.get("receipt_service_selection_mode")),
        transfer_fee_pct=Decimal(fee_pct),
        allow_client_credit_excess=data.get("allow_client_credit_excess", True),
        default_currency=currency,
    )


def resolve_agency_block(data: dict[str, Any], agency_id: int) -> tuple[dict[str, Any], bool]:
    """
    Merge the agency block over the defaults.

    Returns:
        (merged block, whether an agency-specific block was found)
    """
    defaults = dict(data.get("defaults") or {})
    _check_block(defaults, "defaults")
    agencies = data.get("agencies") or {}
    specific = agencies.get(agency_id)
    if specific is None:
        specific = agencies.get(str(agency_id))
    if specific is None:
        return defaults, False
    return {**defaults, **specific}, True
