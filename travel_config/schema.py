"""
Agency engine configuration schema.

The YAML loader parses per-agency blocks into these frozen dataclasses.
Engines receive them as explicit parameters; nothing reads configuration
from global state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class BillingBreakdownMode(str, Enum):
    """auto: card interest counts as owed; manual: operators enter it by hand."""

    AUTO = "auto"
    MANUAL = "manual"


class ServiceSelectionMode(str, Enum):
    """How a booking receipt picks the services it pays for."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    BOOKING = "booking"


DEFAULT_SERVICE_SELECTION_MODE = ServiceSelectionMode.REQUIRED

_SELECTION_ALIASES: dict[str, ServiceSelectionMode] = {
    "required": ServiceSelectionMode.REQUIRED,
    "obligatorio": ServiceSelectionMode.REQUIRED,
    "optional": ServiceSelectionMode.OPTIONAL,
    "opcional": ServiceSelectionMode.OPTIONAL,
    "booking": ServiceSelectionMode.BOOKING,
    "booking_only": ServiceSelectionMode.BOOKING,
    "booking-only": ServiceSelectionMode.BOOKING,
    "reserva": ServiceSelectionMode.BOOKING,
}


def parse_selection_mode(value: object) -> ServiceSelectionMode:
    """Accept English/Spanish aliases; anything else means REQUIRED."""
    if isinstance(value, ServiceSelectionMode):
        return value
    if not isinstance(value, str):
        return DEFAULT_SERVICE_SELECTION_MODE
    return _SELECTION_ALIASES.get(value.strip().lower(), DEFAULT_SERVICE_SELECTION_MODE)


def parse_billing_mode(value: object) -> BillingBreakdownMode:
    """Only an explicit "manual" selects manual mode."""
    if isinstance(value, BillingBreakdownMode):
        return value
    text = str(value or "").strip().lower()
    return BillingBreakdownMode.MANUAL if text == "manual" else BillingBreakdownMode.AUTO


@dataclass(frozen=True)
class AgencyEngineConfig:
    """Per-agency switches consumed by the reconciliation engines."""

    agency_id: int | None = None
    use_booking_sale_total: bool = False
    billing_breakdown_mode: BillingBreakdownMode = BillingBreakdownMode.AUTO
    receipt_service_selection_mode: ServiceSelectionMode = DEFAULT_SERVICE_SELECTION_MODE
    transfer_fee_pct: Decimal = Decimal("0.024")
    allow_client_credit_excess: bool = True
    default_currency: str = "ARS"

    @property
    def is_manual_billing(self) -> bool:
        return self.billing_breakdown_mode is BillingBreakdownMode.MANUAL
