"""
Service allocation validator.

A receipt may split its payment across specific services of the booking.
Each entry must reference a service that belongs to the booking and to the
receipt's service scope, must be strictly positive, and no service may be
listed twice. The allocations, summed per payment currency, must fit inside
what the receipt actually carries (its payment lines or base conversion).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from travel_engines.ledger import PriorAllocation, ReceiptForDebt, ServiceSale, normalize_receipt
from travel_engines.tracer import traced_engine
from travel_kernel.domain.buckets import CurrencyTotals
from travel_kernel.domain.currency import canonicalize
from travel_kernel.domain.values import DEBT_TOLERANCE, Money, round2, to_decimal
from travel_kernel.exceptions import (
    AllocationExceedsAvailableError,
    AllocationServiceOutOfScopeError,
    InvalidAllocationError,
)
from travel_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

_ZERO = Decimal("0")


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class ServiceAllocationInput:
    """Allocation entry as supplied by the caller."""

    service_id: object
    amount_service: object
    service_currency: object = None
    amount_payment: object = None
    payment_currency: object = None
    fx_rate: object = None


@dataclass(frozen=True)
class ServiceAllocation:
    """
    A validated allocation.

    ``amount_service`` is in the service currency. When the payment currency
    differs, ``amount_payment`` is what the allocation consumes from the
    receipt in that currency.
    """

    service_id: int
    amount_service: Money
    amount_payment: Money | None = None
    fx_rate: Decimal | None = None

    @property
    def service_currency(self) -> str:
        return self.amount_service.code

    @property
    def payment_currency(self) -> str:
        return self.amount_payment.code if self.amount_payment is not None else self.service_currency

    @property
    def consumed(self) -> Money:
        """What the allocation draws from the receipt, in the payment currency."""
        return self.amount_payment if self.amount_payment is not None else self.amount_service

    def to_prior(self) -> PriorAllocation:
        return PriorAllocation(
            service_id=self.service_id,
            amount_service=self.amount_service.amount,
            service_currency=self.service_currency,
        )


def _service_id(raw: object) -> int:
    parsed = to_decimal(raw)
    if parsed is None or parsed <= _ZERO:
        raise InvalidAllocationError("service_id must be a positive integer")
    return int(parsed)


@traced_engine("allocation_validator", "1.0", fingerprint_fields=("allocations", "scope_service_ids"))
def validate_service_allocations(
    allocations: Sequence[ServiceAllocationInput],
    *,
    services: Sequence[ServiceSale],
    scope_service_ids: Iterable[int],
    has_booking: bool = True,
) -> tuple[ServiceAllocation, ...]:
    """
    Validate allocation entries against the booking and the receipt scope.

    Raises:
        InvalidAllocationError: Non-positive amount, duplicate service,
            currency mismatch, missing amount_payment, or no booking.
        AllocationServiceOutOfScopeError: Service outside the booking or
            outside the receipt's services.
    """
    if not allocations:
        return ()
    if not has_booking:
        raise InvalidAllocationError("allocations require a booking")

    by_id = {service.service_id: service for service in services}
    scope = frozenset(scope_service_ids)
    seen: set[int] = set()
    validated: list[ServiceAllocation] = []

    for raw in allocations:
        service_id = _service_id(raw.service_id)
        amount = to_decimal(raw.amount_service)
        if amount is None or round2(amount) <= _ZERO:
            raise InvalidAllocationError("amounts must be greater than 0", service_id)
        if service_id in seen:
            raise InvalidAllocationError("a service may appear only once", service_id)
        seen.add(service_id)

        service = by_id.get(service_id)
        if service is None:
            logger.warning("allocation_service_not_in_booking", extra={"service_id": service_id})
            raise AllocationServiceOutOfScopeError(service_id, "service does not belong to the booking")
        if service_id not in scope:
            logger.warning("allocation_service_not_in_scope", extra={"service_id": service_id})
            raise AllocationServiceOutOfScopeError(service_id, "service is not applied to the receipt")

        service_currency = service.currency
        if not _blank(raw.service_currency) and canonicalize(raw.service_currency) != service_currency:
            raise InvalidAllocationError(
                f"currency {canonicalize(raw.service_currency)} does not match service currency {service_currency}",
                service_id,
            )

        payment_currency = None if _blank(raw.payment_currency) else canonicalize(raw.payment_currency)
        amount_payment = to_decimal(raw.amount_payment)
        has_amount_payment = amount_payment is not None and amount_payment > _ZERO
        if payment_currency and payment_currency != service_currency and not has_amount_payment:
            raise InvalidAllocationError(
                "amount_payment > 0 is required when the payment currency differs from the service currency",
                service_id,
            )

        fx_rate = to_decimal(raw.fx_rate)
        validated.append(ServiceAllocation(
            service_id=service_id,
            amount_service=Money.of(round2(amount), service_currency),
            amount_payment=(
                Money.of(round2(amount_payment), payment_currency or service_currency)
                if has_amount_payment else None
            ),
            fx_rate=round2(fx_rate) if fx_rate is not None and fx_rate > _ZERO else None,
        ))

    logger.debug("service_allocations_validated", extra={"allocation_count": len(validated)})
    return tuple(validated)


def available_by_currency(receipt: ReceiptForDebt) -> dict[str, Decimal]:
    """What the receipt carries per currency, ignoring any allocations."""
    totals = CurrencyTotals()
    for line in normalize_receipt(receipt, allocation_scope=None):
        totals.add(line.currency, line.amount)
    return totals.as_dict()


def check_allocations_within_available(
    allocations: Sequence[ServiceAllocation],
    receipt: ReceiptForDebt,
) -> dict[str, Decimal]:
    """
    Ensure allocations per payment currency fit in the receipt.

    Returns:
        Allocated total per payment currency.

    Raises:
        AllocationExceedsAvailableError: A currency is over-allocated by more
            than the debt tolerance.
    """
    allocated = CurrencyTotals()
    for allocation in allocations:
        allocated.add_money(allocation.consumed)

    available = available_by_currency(receipt)
    for code, total in allocated.as_dict().items():
        carried = available.get(code, _ZERO)
        if total - carried > DEBT_TOLERANCE:
            logger.warning("allocation_exceeds_available", extra={
                "currency": code,
                "allocated": str(total),
                "available": str(carried),
            })
            raise AllocationExceedsAvailableError(code, total, carried)
    return allocated.as_dict()
