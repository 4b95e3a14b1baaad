"""
travel_config -- single public entrypoint for agency engine configuration.

Responsibility:
    ``get_agency_config()`` is the only way engines obtain per-agency
    switches (whole-booking sale mode, manual billing mode, service
    selection mode, transfer fee, excess routing). YAML loading is internal.

Architecture position:
    Configuration sits above ``travel_kernel``; the kernel never imports it.

Audit relevance:
    Every call emits a ``TRAVEL_CONFIG_TRACE`` log entry with the agency,
    whether defaults were used, and a deterministic checksum of the
    effective block, so every reconciliation can be tied to the exact
    configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from travel_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_agency_config,
    resolve_agency_block,
)
from travel_config.schema import (
    AgencyEngineConfig,
    BillingBreakdownMode,
    ServiceSelectionMode,
    parse_billing_mode,
    parse_selection_mode,
)

_logger = logging.getLogger("travel_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "agencies.yaml"


def get_agency_config(agency_id: int, config_path: Path | None = None) -> AgencyEngineConfig:
    """
    The ONLY public configuration entrypoint.

    Agencies without their own block get the ``defaults`` block.

    Args:
        agency_id: Agency identifier.
        config_path: Override path to the YAML file.
            Defaults to travel_config/sets/agencies.yaml.

    Raises:
        FileNotFoundError: The configuration file does not exist.
        ValueError: Invalid configuration values.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    block, found = resolve_agency_block(data, agency_id)
    config = parse_agency_config(block, agency_id)

    _logger.info(
        "TRAVEL_CONFIG_TRACE",
        extra={
            "trace_type": "TRAVEL_CONFIG_TRACE",
            "agency_id": agency_id,
            "agency_block_found": found,
            "checksum": compute_checksum(block),
            "config_path": str(path),
        },
    )
    return config


__all__ = [
    "AgencyEngineConfig",
    "BillingBreakdownMode",
    "ServiceSelectionMode",
    "get_agency_config",
    "parse_billing_mode",
    "parse_selection_mode",
]
