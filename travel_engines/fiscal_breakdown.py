"""
Fiscal breakdown apportionment.

Splits a sale's margin into the buckets an invoice needs: non-computable
cost, taxable bases per VAT rate, commission (exempt / 21% / 10.5%), VAT on
commission, card-interest VAT and the banking transfer fee.

Rounding:
    Ratios (exempt share, bucket weights, blended factor) are carried at
    eight decimals; every monetary value is ``round2``.

Rate policy:
    When both VAT components are zero the whole taxable remainder is taxed
    at 21%. Otherwise commission is split between the 21% and 10.5%
    buckets by effective weights, where any taxable cost not explained by
    the declared VAT amounts folds into the 21% bucket.

Usage:
    from travel_engines.fiscal_breakdown import BreakdownInput, compute_fiscal_breakdown

    result = compute_fiscal_breakdown(BreakdownInput(sale_price="1000", cost="700"))
    result.effective.commission_21        # Decimal('247.93')
    result.effective.vat_on_commission_21 # Decimal('52.07')
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from enum import Enum

from travel_config.schema import AgencyEngineConfig
from travel_engines.tracer import traced_engine
from travel_kernel.domain.currency import canonicalize
from travel_kernel.domain.values import round2, round_ratio, to_decimal
from travel_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidInputError,
    InvalidOverrideError,
)
from travel_kernel.logging_config import get_logger

logger = get_logger("engines.fiscal_breakdown")

DEFAULT_TRANSFER_FEE_PCT = Decimal("0.024")

VAT_21 = Decimal("0.21")
VAT_10_5 = Decimal("0.105")

_ZERO = Decimal("0")
_ONE = Decimal("1")


# =============================================================================
# Inputs and outputs
# =============================================================================


@dataclass(frozen=True)
class BreakdownInput:
    """
    Sale, cost and tax figures for one service (or an aggregate).

    ``transfer_fee_pct`` left as None takes the agency setting at compute time.
    """

    sale_price: Decimal
    cost: Decimal
    vat_21: Decimal = _ZERO
    vat_10_5: Decimal = _ZERO
    exempt: Decimal = _ZERO
    other_taxes: Decimal = _ZERO
    card_interest: Decimal = _ZERO
    card_interest_vat: Decimal = _ZERO
    transfer_fee_pct: Decimal | None = None
    currency: str = "ARS"

    def __post_init__(self) -> None:
        for f in fields(self):
            if f.name == "currency":
                continue
            raw = getattr(self, f.name)
            if raw is None and f.name == "transfer_fee_pct":
                continue
            parsed = to_decimal(raw)
            if parsed is None:
                raise InvalidInputError(f"{f.name} must be a finite number, got {raw!r}", f.name)
            object.__setattr__(self, f.name, parsed)
        object.__setattr__(self, "currency", canonicalize(self.currency))

    @property
    def sale_total(self) -> Decimal:
        """Sale price including card interest."""
        return round2(self.sale_price + self.card_interest)


@dataclass(frozen=True)
class FiscalBreakdown:
    """The apportioned buckets. Every amount is round2 except transfer_fee_pct."""

    non_computable: Decimal
    taxable_base_21: Decimal
    taxable_base_10_5: Decimal
    commission_exempt: Decimal
    commission_21: Decimal
    commission_10_5: Decimal
    vat_on_commission_21: Decimal
    vat_on_commission_10_5: Decimal
    total_commission_without_vat: Decimal
    imp_iva: Decimal
    taxable_card_interest: Decimal
    vat_on_card_interest: Decimal
    transfer_fee_amount: Decimal
    transfer_fee_pct: Decimal

    def as_dict(self, camel_case: bool = False) -> dict[str, str]:
        names = _SNAKE_TO_CAMEL if camel_case else {n: n for n in _FIELD_NAMES}
        return {names[n]: str(getattr(self, n)) for n in _FIELD_NAMES}


_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(FiscalBreakdown))

_SNAKE_TO_CAMEL: dict[str, str] = {
    "non_computable": "nonComputable",
    "taxable_base_21": "taxableBase21",
    "taxable_base_10_5": "taxableBase10_5",
    "commission_exempt": "commissionExempt",
    "commission_21": "commission21",
    "commission_10_5": "commission10_5",
    "vat_on_commission_21": "vatOnCommission21",
    "vat_on_commission_10_5": "vatOnCommission10_5",
    "total_commission_without_vat": "totalCommissionWithoutVAT",
    "imp_iva": "impIVA",
    "taxable_card_interest": "taxableCardInterest",
    "vat_on_card_interest": "vatOnCardInterest",
    "transfer_fee_amount": "transferFeeAmount",
    "transfer_fee_pct": "transferFeePct",
}

_OVERRIDE_ALIASES: dict[str, str] = {
    **{name: name for name in _FIELD_NAMES},
    **{camel: snake for snake, camel in _SNAKE_TO_CAMEL.items()},
}


class BreakdownWarning(str, Enum):
    """Non-fatal consistency warnings."""

    SALE_NOT_ABOVE_COST = "sale_not_above_cost"
    TAXABLE_BASES_EXCEED_NET_COST = "taxable_bases_exceed_net_cost"
    NEGATIVE_COMMISSION = "negative_commission"
    NEGATIVE_NON_COMPUTABLE = "negative_non_computable"
    ZERO_NET_COST = "zero_net_cost"

    @property
    def message(self) -> str:
        return _WARNING_MESSAGES[self]


_WARNING_MESSAGES = {
    BreakdownWarning.SALE_NOT_ABOVE_COST: "Sale price is less than or equal to cost.",
    BreakdownWarning.TAXABLE_BASES_EXCEED_NET_COST:
        "Taxable bases plus exempt amount exceed the available net cost.",
    BreakdownWarning.NEGATIVE_COMMISSION:
        "Commission without VAT is negative because the margin is negative.",
    BreakdownWarning.NEGATIVE_NON_COMPUTABLE:
        "Non-computable amount is negative due to excess taxable bases or exempt amount.",
    BreakdownWarning.ZERO_NET_COST:
        "Net cost is zero; review VAT, exempt and other taxes to avoid degenerate ratios.",
}


@dataclass(frozen=True)
class BreakdownResult:
    """
    Computed and effective breakdown.

    ``effective`` is what downstream documents must use: the computed values
    with any manual override applied. ``overridden_fields`` lists the fields
    that came from the override.
    """

    computed: FiscalBreakdown
    effective: FiscalBreakdown
    currency: str
    margin: Decimal
    net_cost: Decimal
    net_commission: Decimal
    warnings: tuple[BreakdownWarning, ...] = ()
    override: dict[str, Decimal] = field(default_factory=dict)
    overridden_fields: tuple[str, ...] = ()

    @property
    def is_manually_adjusted(self) -> bool:
        return bool(self.overridden_fields)

    @property
    def warning_messages(self) -> tuple[str, ...]:
        return tuple(w.message for w in self.warnings)


# =============================================================================
# Computation
# =============================================================================


def _safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    return numerator / denominator if denominator != _ZERO else _ZERO


def _commission_split(
    margin: Decimal,
    net_cost: Decimal,
    exempt: Decimal,
    taxable_base_21: Decimal,
    taxable_base_10_5: Decimal,
    vat_present: bool,
) -> tuple[Decimal, Decimal, Decimal, Decimal, Decimal, Decimal]:
    """Returns (net_commission, exempt, c21, c10_5, vat_c21, vat_c10_5)."""
    exempt_share = round_ratio(_safe_div(exempt, net_cost))
    taxable_share = _ONE - exempt_share

    if not vat_present:
        factor = round_ratio(exempt_share + taxable_share * (_ONE + VAT_21))
        if factor == _ZERO:
            return _ZERO, _ZERO, _ZERO, _ZERO, _ZERO, _ZERO
        net_commission = round2(margin / factor)
        commission_exempt = round2(net_commission * exempt_share)
        commission_21 = round2(net_commission - commission_exempt)
        return (
            net_commission,
            commission_exempt,
            commission_21,
            _ZERO,
            round2(commission_21 * VAT_21),
            _ZERO,
        )

    # Unexplained taxable cost folds into the 21% bucket.
    remainder = round2((net_cost - exempt) - (taxable_base_21 + taxable_base_10_5))
    eff_21 = round2(taxable_base_21 + remainder)
    eff_10_5 = taxable_base_10_5
    total_eff = round2(eff_21 + eff_10_5)
    w21 = round_ratio(_safe_div(eff_21, total_eff))
    w10_5 = round_ratio(_safe_div(eff_10_5, total_eff))

    factor = round_ratio(
        exempt_share + taxable_share * (w21 * (_ONE + VAT_21) + w10_5 * (_ONE + VAT_10_5))
    )
    if factor == _ZERO:
        return _ZERO, _ZERO, _ZERO, _ZERO, _ZERO, _ZERO

    net_commission = round2(margin / factor)
    commission_exempt = round2(net_commission * exempt_share)
    taxed = net_commission - commission_exempt
    commission_21 = round2(_safe_div(taxed * eff_21, total_eff))
    commission_10_5 = round2(_safe_div(taxed * eff_10_5, total_eff))
    return (
        net_commission,
        commission_exempt,
        commission_21,
        commission_10_5,
        round2(commission_21 * VAT_21),
        round2(commission_10_5 * VAT_10_5),
    )


def _warnings(
    inputs: BreakdownInput,
    net_cost: Decimal,
    breakdown: FiscalBreakdown,
) -> tuple[BreakdownWarning, ...]:
    found: list[BreakdownWarning] = []
    taxable_bases = breakdown.taxable_base_21 + breakdown.taxable_base_10_5
    if inputs.sale_price <= inputs.cost:
        found.append(BreakdownWarning.SALE_NOT_ABOVE_COST)
    if net_cost < inputs.exempt + taxable_bases:
        found.append(BreakdownWarning.TAXABLE_BASES_EXCEED_NET_COST)
    if breakdown.total_commission_without_vat < _ZERO:
        found.append(BreakdownWarning.NEGATIVE_COMMISSION)
    if breakdown.non_computable < _ZERO:
        found.append(BreakdownWarning.NEGATIVE_NON_COMPUTABLE)
    if net_cost == _ZERO:
        found.append(BreakdownWarning.ZERO_NET_COST)
    return tuple(found)


def apply_breakdown_override(
    computed: FiscalBreakdown,
    override: Mapping[str, object] | None,
) -> tuple[FiscalBreakdown, dict[str, Decimal]]:
    """
    Merge a (possibly partial) manual override on top of a computed breakdown.

    Keys may be snake_case or camelCase. Values that are not numbers fall
    back to the computed value.

    Returns:
        (effective breakdown, applied override values keyed by snake_case)

    Raises:
        InvalidOverrideError: Unknown field name.
    """
    if not override:
        return computed, {}

    applied: dict[str, Decimal] = {}
    for key, raw in override.items():
        name = _OVERRIDE_ALIASES.get(str(key).strip())
        if name is None:
            raise InvalidOverrideError(str(key))
        value = to_decimal(raw)
        if value is None:
            continue
        applied[name] = round_ratio(value) if name == "transfer_fee_pct" else round2(value)

    if not applied:
        return computed, {}
    return replace(computed, **applied), applied


def resolve_transfer_fee_pct(
    inputs: BreakdownInput,
    config: AgencyEngineConfig | None = None,
) -> Decimal:
    if inputs.transfer_fee_pct is not None:
        return inputs.transfer_fee_pct
    if config is not None:
        configured = to_decimal(config.transfer_fee_pct)
        if configured is None or configured < _ZERO:
            raise InvalidInputError(
                f"transfer_fee_pct must be a non-negative number, got {config.transfer_fee_pct!r}",
                "transfer_fee_pct",
            )
        return configured
    return DEFAULT_TRANSFER_FEE_PCT


@traced_engine(
    "fiscal_breakdown",
    "1.0",
    fingerprint_fields=("inputs", "override", "config"),
)
def compute_fiscal_breakdown(
    inputs: BreakdownInput,
    override: Mapping[str, object] | None = None,
    config: AgencyEngineConfig | None = None,
) -> BreakdownResult:
    """
    Apportion one sale into fiscal buckets and apply any manual override.

    The transfer fee percentage comes from the input when set, else from the
    agency config, else DEFAULT_TRANSFER_FEE_PCT.

    Warnings never raise; they are returned on the result.
    """
    transfer_fee_pct = resolve_transfer_fee_pct(inputs, config)
    vat_21 = inputs.vat_21
    vat_10_5 = inputs.vat_10_5

    net_cost = round2(inputs.cost - (vat_21 + vat_10_5) - inputs.other_taxes)
    transfer_fee_amount = round2(inputs.sale_price * transfer_fee_pct)
    taxable_base_21 = round2(vat_21 / VAT_21) if vat_21 != _ZERO else _ZERO
    taxable_base_10_5 = round2(vat_10_5 / VAT_10_5) if vat_10_5 != _ZERO else _ZERO
    margin = round2(inputs.sale_price - inputs.cost)
    non_computable = round2(net_cost - (inputs.exempt + taxable_base_21 + taxable_base_10_5))

    (
        net_commission,
        commission_exempt,
        commission_21,
        commission_10_5,
        vat_on_commission_21,
        vat_on_commission_10_5,
    ) = _commission_split(
        margin,
        net_cost,
        inputs.exempt,
        taxable_base_21,
        taxable_base_10_5,
        vat_present=vat_21 != _ZERO or vat_10_5 != _ZERO,
    )

    card_vat = inputs.card_interest_vat
    taxable_card_interest = round2(card_vat / VAT_21) if card_vat != _ZERO else _ZERO
    vat_on_card_interest = round2(card_vat)

    computed = FiscalBreakdown(
        non_computable=non_computable,
        taxable_base_21=taxable_base_21,
        taxable_base_10_5=taxable_base_10_5,
        commission_exempt=commission_exempt,
        commission_21=commission_21,
        commission_10_5=commission_10_5,
        vat_on_commission_21=vat_on_commission_21,
        vat_on_commission_10_5=vat_on_commission_10_5,
        total_commission_without_vat=round2(commission_exempt + commission_21 + commission_10_5),
        imp_iva=round2(
            vat_21 + vat_10_5 + vat_on_commission_21 + vat_on_commission_10_5 + vat_on_card_interest
        ),
        taxable_card_interest=taxable_card_interest,
        vat_on_card_interest=vat_on_card_interest,
        transfer_fee_amount=transfer_fee_amount,
        transfer_fee_pct=round_ratio(transfer_fee_pct),
    )

    effective, applied = apply_breakdown_override(computed, override)
    warnings = _warnings(inputs, net_cost, computed)

    if warnings:
        logger.warning("fiscal_breakdown_warnings", extra={
            "currency": inputs.currency,
            "warnings": [w.value for w in warnings],
        })
    if applied:
        logger.info("fiscal_breakdown_overridden", extra={
            "currency": inputs.currency,
            "overridden_fields": sorted(applied),
        })

    return BreakdownResult(
        computed=computed,
        effective=effective,
        currency=inputs.currency,
        margin=margin,
        net_cost=net_cost,
        net_commission=net_commission,
        warnings=warnings,
        override=applied,
        overridden_fields=tuple(sorted(applied)),
    )


def aggregate_breakdown_inputs(inputs: Sequence[BreakdownInput]) -> BreakdownInput:
    """
    Sum per-service figures into one input (same currency only).

    The transfer fee percentage of the first input is kept.

    Raises:
        InvalidInputError: No inputs.
        CurrencyMismatchError: Inputs in different currencies.
    """
    if not inputs:
        raise InvalidInputError("at least one breakdown input is required", "inputs")

    first = inputs[0]
    for item in inputs[1:]:
        if item.currency != first.currency:
            raise CurrencyMismatchError(first.currency, item.currency)

    def total(name: str) -> Decimal:
        return round2(sum((getattr(item, name) for item in inputs), _ZERO))

    return BreakdownInput(
        sale_price=total("sale_price"),
        cost=total("cost"),
        vat_21=total("vat_21"),
        vat_10_5=total("vat_10_5"),
        exempt=total("exempt"),
        other_taxes=total("other_taxes"),
        card_interest=total("card_interest"),
        card_interest_vat=total("card_interest_vat"),
        transfer_fee_pct=first.transfer_fee_pct,
        currency=first.currency,
    )
