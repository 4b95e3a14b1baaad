"""
Module: travel_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    reconciliation and fiscal engines. This is the import surface for the
    persistence and API layers.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import travel_kernel (domain, exceptions, logging) and
    travel_config.schema. Never opens a database session.

Invariants enforced:
    - Decimal-only arithmetic: amounts are ``Decimal`` rounded half-up to two
      places at every aggregation step; floats are parsed through ``str``.
    - Determinism: identical inputs always produce identical outputs.
    - Per-currency isolation: no engine converts between currencies.

Audit relevance:
    Every engine entry point is wrapped by ``@traced_engine`` (see
    ``travel_engines.tracer``), emitting TRAVEL_ENGINE_TRACE log records with
    engine name, version, input fingerprint and duration.

Usage:
    from travel_engines.payment_fees import compute_fee, FeeMode
    from travel_engines.ledger import compute_debt_ledger, LedgerScope
    from travel_engines.reconciliation import ReceiptReconciler, ReceiptRequest
    from travel_engines.fiscal_breakdown import compute_fiscal_breakdown
"""

from travel_kernel.logging_config import get_logger

logger = get_logger("engines")

from travel_engines.allocation import (
    ServiceAllocation,
    ServiceAllocationInput,
    available_by_currency,
    check_allocations_within_available,
    validate_service_allocations,
)
from travel_engines.fiscal_breakdown import (
    BreakdownInput,
    BreakdownResult,
    BreakdownWarning,
    FiscalBreakdown,
    aggregate_breakdown_inputs,
    apply_breakdown_override,
    compute_fiscal_breakdown,
    resolve_transfer_fee_pct,
)
from travel_engines.ledger import (
    DebtLedger,
    LedgerScope,
    PaidLine,
    PaidLineSource,
    PriorAllocation,
    PriorPayment,
    ReceiptForDebt,
    ServiceSale,
    build_paid_by_currency,
    build_sales_by_currency,
    compute_debt_ledger,
    detect_overpayment,
    normalize_receipt,
    receipt_applies_to_scope,
)
from travel_engines.overpayment import (
    ClientCreditExcessDescriptor,
    OverpaymentDecision,
    route_ledger_overpayment,
    route_overpayment,
)
from travel_engines.payment_fees import (
    FeeMode,
    PaymentLine,
    PaymentLineInput,
    ReceiptTotals,
    compute_fee,
    is_operator_credit_method,
    normalize_payment_line,
    normalize_payment_lines,
    parse_fee_mode,
    summarize_receipt,
)
from travel_engines.reconciliation import (
    BookingContext,
    ReceiptReconciler,
    ReceiptRequest,
    ReconciliationResult,
    resolve_service_scope,
)
from travel_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # allocation
    "ServiceAllocation",
    "ServiceAllocationInput",
    "available_by_currency",
    "check_allocations_within_available",
    "validate_service_allocations",
    # fiscal breakdown
    "BreakdownInput",
    "BreakdownResult",
    "BreakdownWarning",
    "FiscalBreakdown",
    "aggregate_breakdown_inputs",
    "apply_breakdown_override",
    "compute_fiscal_breakdown",
    "resolve_transfer_fee_pct",
    # ledger
    "DebtLedger",
    "LedgerScope",
    "PaidLine",
    "PaidLineSource",
    "PriorAllocation",
    "PriorPayment",
    "ReceiptForDebt",
    "ServiceSale",
    "build_paid_by_currency",
    "build_sales_by_currency",
    "compute_debt_ledger",
    "detect_overpayment",
    "normalize_receipt",
    "receipt_applies_to_scope",
    # overpayment
    "ClientCreditExcessDescriptor",
    "OverpaymentDecision",
    "route_ledger_overpayment",
    "route_overpayment",
    # payment fees
    "FeeMode",
    "PaymentLine",
    "PaymentLineInput",
    "ReceiptTotals",
    "compute_fee",
    "is_operator_credit_method",
    "normalize_payment_line",
    "normalize_payment_lines",
    "parse_fee_mode",
    "summarize_receipt",
    # reconciliation
    "BookingContext",
    "ReceiptReconciler",
    "ReceiptRequest",
    "ReconciliationResult",
    "resolve_service_scope",
    # tracer
    "compute_input_fingerprint",
    "traced_engine",
]
