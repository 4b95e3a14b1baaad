"""
Currency-bucketed debt ledger.

Responsibility:
    Aggregate what a booking (or a selected subset of its services) owes and
    what has been paid against it, per currency, and derive the signed
    remaining balance before and after a new receipt.

Architecture position:
    Engines -- pure calculation layer. No I/O; callers pass a snapshot of
    services and prior receipts and must hold the surrounding transaction.

Invariants enforced:
    - Buckets are keyed by canonical currency codes and never mixed.
    - debt[c] == sales[c] - paid[c] exactly, for every currency c.
    - Pure: equal inputs always produce equal ledgers.

Historical receipts:
    Receipts were recorded under several shapes over time. Each one is
    normalized exactly once (``normalize_receipt``) into ``PaidLine`` records
    tagged with the shape they came from, in this priority order:

        1. allocation       -- per-service allocations inside the ledger scope
        2. base_conversion  -- declared base amount plus fees in that currency
        3. payment_line     -- per-line amount + fee in each line currency,
           fee_remainder       plus any aggregate fee not explained by lines
        4. legacy           -- single amount + aggregate fee

    Signs are kept: reversals and adjustments may be negative.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from travel_engines.tracer import traced_engine
from travel_kernel.domain.buckets import CurrencyTotals
from travel_kernel.domain.currency import canonicalize
from travel_kernel.domain.values import DEBT_TOLERANCE, Money, round2, to_decimal
from travel_kernel.exceptions import AlreadySettledError
from travel_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")

_ZERO = Decimal("0")


def _num(value: object) -> Decimal:
    """Lenient numeric read for persisted values; unreadable counts as zero."""
    parsed = to_decimal(value)
    return parsed if parsed is not None else _ZERO


def _ids(values: Iterable[object]) -> frozenset[int]:
    out: set[int] = set()
    for value in values:
        parsed = to_decimal(value)
        if parsed is not None and parsed > _ZERO:
            out.add(int(parsed))
    return frozenset(out)


# =============================================================================
# Read models
# =============================================================================


@dataclass(frozen=True)
class ServiceSale:
    """A booking service as seen by the ledger."""

    service_id: int
    sale_price: Decimal
    currency: str = "ARS"
    card_interest: Decimal | None = None
    taxable_card_interest: Decimal | None = None
    vat_on_card_interest: Decimal | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", canonicalize(self.currency))

    def total(self, include_card_interest: bool) -> Decimal:
        """Sale price plus card interest (split pair preferred over the combined figure)."""
        sale = max(_ZERO, _num(self.sale_price))
        if not include_card_interest:
            return sale
        split = _num(self.taxable_card_interest) + _num(self.vat_on_card_interest)
        interest = split if split > _ZERO else _num(self.card_interest)
        return max(_ZERO, sale + interest)


@dataclass(frozen=True)
class PriorPayment:
    amount: Decimal
    currency: str | None = None
    fee_amount: Decimal = _ZERO


@dataclass(frozen=True)
class PriorAllocation:
    service_id: int
    amount_service: Decimal
    service_currency: str | None = None


@dataclass(frozen=True)
class ReceiptForDebt:
    """
    A receipt already recorded for the booking (or the one being created).

    Any field may be absent depending on the shape it was recorded with.
    """

    receipt_id: object = None
    amount: Decimal | None = None
    amount_currency: str | None = None
    payment_fee_amount: Decimal | None = None
    base_amount: Decimal | None = None
    base_currency: str | None = None
    payments: tuple[PriorPayment, ...] = ()
    service_allocations: tuple[PriorAllocation, ...] = ()
    service_ids: tuple[int, ...] = ()

    @property
    def allocation_service_ids(self) -> frozenset[int]:
        return _ids(a.service_id for a in self.service_allocations)


class PaidLineSource(str, Enum):
    """Which recorded shape a paid amount was read from."""

    ALLOCATION = "allocation"
    BASE_CONVERSION = "base_conversion"
    PAYMENT_LINE = "payment_line"
    FEE_REMAINDER = "fee_remainder"
    LEGACY = "legacy"


@dataclass(frozen=True)
class PaidLine:
    """One canonical credited amount from a receipt."""

    currency: str
    amount: Decimal
    source: PaidLineSource


@dataclass(frozen=True)
class LedgerScope:
    """
    The services a receipt is reconciled against.

    In whole-booking mode every prior receipt counts and historical
    allocations are ignored; otherwise allocations are read only for
    services inside ``service_ids``.
    """

    service_ids: frozenset[int]
    whole_booking: bool = False

    @property
    def allocation_scope(self) -> frozenset[int] | None:
        return None if self.whole_booking else self.service_ids


# =============================================================================
# Normalization
# =============================================================================


def normalize_receipt(
    receipt: ReceiptForDebt,
    allocation_scope: frozenset[int] | None = None,
) -> tuple[PaidLine, ...]:
    """
    Read a receipt into canonical paid lines.

    Each step applies only when the richer preceding data is absent.
    Contributions within the debt tolerance of zero are dropped.
    """
    if allocation_scope is not None and receipt.service_allocations:
        lines: list[PaidLine] = []
        for alloc in receipt.service_allocations:
            service_id = to_decimal(alloc.service_id)
            if service_id is None or service_id <= _ZERO:
                continue
            if int(service_id) not in allocation_scope:
                continue
            amount = _num(alloc.amount_service)
            if abs(amount) <= DEBT_TOLERANCE:
                continue
            lines.append(PaidLine(canonicalize(alloc.service_currency), amount, PaidLineSource.ALLOCATION))
        return tuple(lines)

    amount_currency = canonicalize(receipt.amount_currency)
    fee_total = _num(receipt.payment_fee_amount)
    base_value = _num(receipt.base_amount)
    base_currency = canonicalize(receipt.base_currency) if receipt.base_currency else None
    payments = receipt.payments

    def line_currency(payment: PriorPayment) -> str:
        return canonicalize(payment.currency or amount_currency)

    # The aggregate fee covers every line; only what no line claims is a remainder.
    line_fee_total = sum((_num(p.fee_amount) for p in payments), _ZERO)
    fee_remainder = fee_total - line_fee_total if payments else fee_total

    if base_currency and abs(base_value) > DEBT_TOLERANCE:
        if payments:
            fee_in_base = sum(
                (_num(p.fee_amount) for p in payments if line_currency(p) == base_currency), _ZERO
            )
            if abs(fee_remainder) > DEBT_TOLERANCE and base_currency == amount_currency:
                fee_in_base += fee_remainder
        else:
            fee_in_base = fee_total if base_currency == amount_currency else _ZERO
        credited = base_value + fee_in_base
        if abs(credited) <= DEBT_TOLERANCE:
            return ()
        return (PaidLine(base_currency, credited, PaidLineSource.BASE_CONVERSION),)

    if payments:
        lines = []
        for payment in payments:
            credited = _num(payment.amount) + _num(payment.fee_amount)
            if abs(credited) <= DEBT_TOLERANCE:
                continue
            lines.append(PaidLine(line_currency(payment), credited, PaidLineSource.PAYMENT_LINE))
        if abs(fee_remainder) > DEBT_TOLERANCE:
            lines.append(PaidLine(amount_currency, fee_remainder, PaidLineSource.FEE_REMAINDER))
        return tuple(lines)

    credited = _num(receipt.amount) + fee_total
    if abs(credited) <= DEBT_TOLERANCE:
        return ()
    return (PaidLine(amount_currency, credited, PaidLineSource.LEGACY),)


def receipt_applies_to_scope(receipt: ReceiptForDebt, scope: LedgerScope) -> bool:
    """
    Whether a prior receipt counts against the scope.

    Whole-booking mode counts everything. Otherwise a receipt with
    allocations counts when any allocated service is in scope; one without
    allocations counts when it lists no services or any listed one is in scope.
    """
    if scope.whole_booking:
        return True
    allocated = receipt.allocation_service_ids
    if allocated:
        return not allocated.isdisjoint(scope.service_ids)
    listed = _ids(receipt.service_ids)
    return not listed or not listed.isdisjoint(scope.service_ids)


# =============================================================================
# Aggregation
# =============================================================================


def build_sales_by_currency(
    services: Sequence[ServiceSale],
    scope: LedgerScope,
    *,
    manual_mode: bool = False,
    booking_sale_totals: Mapping[str, object] | None = None,
) -> CurrencyTotals:
    """
    Sum what the scope owes per currency.

    Whole-booking mode uses the booking's own sale totals when present,
    otherwise the sum of every service's sale price; card interest is never
    added there. Otherwise each in-scope service contributes its sale price
    plus card interest unless ``manual_mode`` is set.
    """
    totals = CurrencyTotals()

    if scope.whole_booking:
        explicit = {
            canonicalize(code): _num(value)
            for code, value in (booking_sale_totals or {}).items()
            if to_decimal(value) is not None and _num(value) >= _ZERO
        }
        if explicit:
            for code, amount in explicit.items():
                if amount > _ZERO:
                    totals.add(code, amount)
        else:
            for service in services:
                sale = service.total(include_card_interest=False)
                if sale > _ZERO:
                    totals.add(service.currency, sale)
        return totals

    for service in services:
        if service.service_id not in scope.service_ids:
            continue
        total = service.total(include_card_interest=not manual_mode)
        if total > _ZERO:
            totals.add(service.currency, total)
    return totals


def build_paid_by_currency(
    receipts: Iterable[ReceiptForDebt],
    scope: LedgerScope,
    exclude_receipt_id: object = None,
) -> CurrencyTotals:
    """Sum what relevant prior receipts credited per currency."""
    totals = CurrencyTotals()
    for receipt in receipts:
        if exclude_receipt_id is not None and receipt.receipt_id == exclude_receipt_id:
            continue
        if not receipt_applies_to_scope(receipt, scope):
            continue
        for line in normalize_receipt(receipt, scope.allocation_scope):
            totals.add(line.currency, line.amount)
    return totals


# =============================================================================
# Ledger
# =============================================================================


def _money_map(values: Mapping[str, Decimal]) -> dict[str, Money]:
    return {code: Money.of(values[code], code) for code in sorted(values)}


def detect_overpayment(remaining_after_by_currency: Mapping[str, Money]) -> dict[str, Money]:
    """Absolute excess for every currency below ``-DEBT_TOLERANCE``."""
    return {
        code: Money.of(round2(abs(money.amount)), code)
        for code, money in sorted(remaining_after_by_currency.items())
        if money.amount < -DEBT_TOLERANCE
    }


@dataclass(frozen=True)
class DebtLedger:
    """
    Ledger state for one reconciliation request.

    ``debt_by_currency`` is the balance before the new receipt; negative
    values mean the scope was already overpaid. ``remaining_after_by_currency``
    subtracts the new receipt as well.
    """

    scope: LedgerScope
    sales_by_currency: dict[str, Money]
    paid_by_currency: dict[str, Money]
    debt_by_currency: dict[str, Money]
    current_paid_by_currency: dict[str, Money] = field(default_factory=dict)
    remaining_after_by_currency: dict[str, Money] = field(default_factory=dict)

    @property
    def pending_currencies(self) -> tuple[str, ...]:
        return tuple(c for c, m in self.debt_by_currency.items() if m.amount > DEBT_TOLERANCE)

    @property
    def is_settled(self) -> bool:
        return not self.pending_currencies

    @property
    def overpaid_by_currency(self) -> dict[str, Money]:
        return detect_overpayment(self.remaining_after_by_currency)

    @property
    def is_overpaid(self) -> bool:
        return bool(self.overpaid_by_currency)

    def ensure_pending(self, booking_id: int | None = None) -> None:
        """Reject a receipt against a scope with nothing left to pay."""
        if self.is_settled:
            logger.warning("ledger_scope_already_settled", extra={
                "booking_id": booking_id,
                "whole_booking": self.scope.whole_booking,
                "debt_by_currency": {c: str(m.amount) for c, m in self.debt_by_currency.items()},
            })
            raise AlreadySettledError(
                booking_id,
                self.scope.whole_booking,
                {c: m.amount for c, m in self.debt_by_currency.items()},
            )


@traced_engine(
    "debt_ledger",
    "1.0",
    fingerprint_fields=("services", "prior_receipts", "current_receipt", "scope", "manual_mode"),
)
def compute_debt_ledger(
    services: Sequence[ServiceSale],
    prior_receipts: Sequence[ReceiptForDebt],
    scope: LedgerScope,
    current_receipt: ReceiptForDebt | None = None,
    *,
    manual_mode: bool = False,
    booking_sale_totals: Mapping[str, object] | None = None,
    exclude_receipt_id: object = None,
) -> DebtLedger:
    """
    Compute sales, paid, remaining-before and remaining-after per currency.

    Args:
        services: Every service of the booking (scope filtering happens here).
        prior_receipts: Receipts already recorded for the booking.
        scope: Selected services or whole-booking mode.
        current_receipt: The receipt being reconciled, if any.
        manual_mode: Exclude card interest from sales.
        booking_sale_totals: Booking-level sale totals for whole-booking mode.
        exclude_receipt_id: Receipt being edited; left out of the prior set.
    """
    sales = build_sales_by_currency(
        services,
        scope,
        manual_mode=manual_mode or scope.whole_booking,
        booking_sale_totals=booking_sale_totals,
    )
    paid = build_paid_by_currency(prior_receipts, scope, exclude_receipt_id)

    debt: dict[str, Decimal] = {}
    for code in sales.currencies() | paid.currencies():
        debt[code] = round2(sales.get(code) - paid.get(code))

    current = CurrencyTotals()
    if current_receipt is not None:
        for line in normalize_receipt(current_receipt, scope.allocation_scope):
            current.add(line.currency, line.amount)

    remaining_after: dict[str, Decimal] = {}
    for code in set(debt) | current.currencies():
        remaining_after[code] = round2(debt.get(code, _ZERO) - current.get(code))

    ledger = DebtLedger(
        scope=scope,
        sales_by_currency=sales.as_money(),
        paid_by_currency=paid.as_money(),
        debt_by_currency=_money_map(debt),
        current_paid_by_currency=current.as_money(),
        remaining_after_by_currency=_money_map(remaining_after),
    )
    logger.info("debt_ledger_computed", extra={
        "whole_booking": scope.whole_booking,
        "service_count": len(scope.service_ids),
        "prior_receipt_count": len(prior_receipts),
        "debt_by_currency": {c: str(m.amount) for c, m in ledger.debt_by_currency.items()},
        "pending_currencies": list(ledger.pending_currencies),
    })
    return ledger
