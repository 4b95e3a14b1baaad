"""
Receipt reconciler -- composes the fee calculator, debt ledger, allocation
validator and overpayment router for one receipt create/update request.

Responsibility:
    Decide whether a receipt may be recorded against a booking and produce
    everything the persistence layer needs to store it: normalized payment
    lines with fees, receipt totals, the service scope, validated
    allocations, the attached clients and an optional client credit excess.

Architecture position:
    Engines -- pure orchestration over explicit inputs. Agency configuration
    is passed in; prior receipts and services are a snapshot supplied by the
    caller, who must hold one transaction per booking across
    read-ledger / decide / persist.

Flow:
    normalize lines -> totals and currency ambiguity -> service scope ->
    allocations and their availability -> ledger -> settled check ->
    attached clients -> overpayment routing

Failure modes:
    Every rejection is a typed TravelKernelError subclass raised before
    anything is persisted. Nothing is retried here.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from travel_config.schema import AgencyEngineConfig, ServiceSelectionMode
from travel_engines.allocation import (
    ServiceAllocation,
    ServiceAllocationInput,
    check_allocations_within_available,
    validate_service_allocations,
)
from travel_engines.ledger import (
    DebtLedger,
    LedgerScope,
    PriorPayment,
    ReceiptForDebt,
    ServiceSale,
    compute_debt_ledger,
)
from travel_engines.overpayment import ClientCreditExcessDescriptor, route_ledger_overpayment
from travel_engines.payment_fees import (
    PaymentLine,
    PaymentLineInput,
    ReceiptTotals,
    normalize_payment_lines,
    summarize_receipt,
)
from travel_kernel.domain.values import to_decimal
from travel_kernel.exceptions import (
    InvalidAllocationError,
    InvalidInputError,
    InvalidServiceSelectionError,
)
from travel_kernel.logging_config import LogContext, get_logger

logger = get_logger("engines.reconciliation")


def _positive_ids(values: Sequence[object]) -> tuple[int, ...]:
    """Positive integer ids, deduplicated, first occurrence order kept."""
    out: dict[int, None] = {}
    for value in values:
        if isinstance(value, bool):
            continue
        parsed = to_decimal(value)
        if parsed is None or parsed <= 0:
            continue
        out[int(parsed)] = None
    return tuple(out)


def _blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# =============================================================================
# Request / result
# =============================================================================


@dataclass(frozen=True)
class BookingContext:
    """Snapshot of a booking as loaded by the persistence layer."""

    booking_id: int
    services: tuple[ServiceSale, ...]
    prior_receipts: tuple[ReceiptForDebt, ...] = ()
    titular_id: int | None = None
    client_ids: tuple[int, ...] = ()
    use_booking_sale_total_override: bool | None = None
    sale_totals: Mapping[str, object] | None = None

    @property
    def service_ids(self) -> tuple[int, ...]:
        return tuple(service.service_id for service in self.services)

    @property
    def booking_client_ids(self) -> frozenset[int] | None:
        """Titular plus passengers; None when the booking has no known clients."""
        ids = set(self.client_ids)
        if self.titular_id is not None:
            ids.add(self.titular_id)
        return frozenset(ids) if ids else None


@dataclass(frozen=True)
class ReceiptRequest:
    """
    A receipt create/update request.

    Either ``payments`` or the legacy ``amount``/``amount_currency``/
    ``payment_fee_amount`` triple carries the money.
    """

    payments: tuple[PaymentLineInput, ...] = ()
    amount: object = None
    amount_currency: object = None
    payment_fee_amount: object = None
    base_amount: object = None
    base_currency: object = None
    service_ids: tuple[object, ...] = ()
    service_allocations: tuple[ServiceAllocationInput, ...] = ()
    client_ids: tuple[object, ...] = ()
    allow_client_credit_excess: bool = False
    client_credit_client_id: int | None = None
    # Set when editing an existing receipt
    receipt_id: object = None
    booking: BookingContext | None = None


@dataclass(frozen=True)
class ReconciliationResult:
    """Everything needed to persist an accepted receipt."""

    payments: tuple[PaymentLine, ...]
    totals: ReceiptTotals
    service_ids: tuple[int, ...]
    client_ids: tuple[int, ...]
    service_allocations: tuple[ServiceAllocation, ...] = ()
    ledger: DebtLedger | None = None
    excess: ClientCreditExcessDescriptor | None = None
    booking_id: int | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_record(self) -> dict[str, Any]:
        """Persisted shape: fixed-point decimal strings and 3-letter codes."""

        def dec(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "booking_id": self.booking_id,
            "amount": dec(self.totals.amount),
            "amount_currency": self.totals.amount_currency,
            "payment_fee_amount": dec(self.totals.payment_fee_amount),
            "base_amount": dec(self.totals.base_amount),
            "base_currency": self.totals.base_currency,
            "service_ids": list(self.service_ids),
            "client_ids": list(self.client_ids),
            "payments": [
                {
                    "amount": dec(line.amount.amount),
                    "payment_currency": line.currency,
                    "payment_method_id": line.payment_method_id,
                    "account_id": line.account_id,
                    "operator_id": line.operator_id,
                    "credit_account_id": line.credit_account_id,
                    "fee_mode": line.fee_mode.value,
                    "fee_value": dec(line.fee_value),
                    "fee_amount": dec(line.fee_amount.amount),
                }
                for line in self.payments
            ],
            "service_allocations": [
                {
                    "service_id": alloc.service_id,
                    "amount_service": dec(alloc.amount_service.amount),
                    "service_currency": alloc.service_currency,
                    "amount_payment": dec(alloc.amount_payment.amount) if alloc.amount_payment else None,
                    "payment_currency": alloc.payment_currency,
                    "fx_rate": dec(alloc.fx_rate),
                }
                for alloc in self.service_allocations
            ],
            "client_credit_excess": (
                {
                    "client_id": self.excess.client_id,
                    "by_currency": {c: dec(v) for c, v in self.excess.as_amounts().items()},
                }
                if self.excess is not None
                else None
            ),
        }


# =============================================================================
# Reconciler
# =============================================================================


def resolve_service_scope(
    mode: ServiceSelectionMode,
    requested: Sequence[int],
    booking_service_ids: Sequence[int],
) -> tuple[int, ...]:
    """
    Resolve which services a receipt pays for.

    Raises:
        InvalidServiceSelectionError: Nothing selected in REQUIRED mode, or a
            selected service is not part of the booking.
    """
    if mode is ServiceSelectionMode.BOOKING:
        resolved = tuple(booking_service_ids)
    elif not requested and mode is ServiceSelectionMode.OPTIONAL:
        resolved = tuple(booking_service_ids)
    elif not requested:
        raise InvalidServiceSelectionError("at least one service is required for a booking receipt")
    else:
        resolved = tuple(requested)

    known = set(booking_service_ids)
    foreign = tuple(sid for sid in resolved if sid not in known)
    if foreign:
        raise InvalidServiceSelectionError("some services do not belong to the booking", foreign)
    return resolved


def _current_receipt_view(
    totals: ReceiptTotals,
    lines: Sequence[PaymentLine],
    allocations: Sequence[ServiceAllocation] = (),
) -> ReceiptForDebt:
    return ReceiptForDebt(
        amount=totals.amount,
        amount_currency=totals.amount_currency,
        payment_fee_amount=totals.payment_fee_amount,
        base_amount=totals.base_amount,
        base_currency=totals.base_currency,
        payments=tuple(
            PriorPayment(line.amount.amount, line.currency, line.fee_amount.amount) for line in lines
        ),
        service_allocations=tuple(a.to_prior() for a in allocations),
    )


class ReceiptReconciler:
    """
    Reconcile receipts for one agency.

    Contract:
        ``reconcile`` either returns a ReconciliationResult or raises a typed
        error; it never partially applies anything.

    Usage:
        reconciler = ReceiptReconciler(get_agency_config(agency_id))
        result = reconciler.reconcile(request)
        store(result.to_record())
    """

    def __init__(self, config: AgencyEngineConfig | None = None):
        self._config = config or AgencyEngineConfig()

    @property
    def config(self) -> AgencyEngineConfig:
        return self._config

    def reconcile(self, request: ReceiptRequest) -> ReconciliationResult:
        booking = request.booking
        with LogContext.bind(
            agency_id=self._config.agency_id,
            booking_id=booking.booking_id if booking else None,
            receipt_id=request.receipt_id,
        ):
            logger.info("receipt_reconciliation_started", extra={
                "has_booking": booking is not None,
                "payment_line_count": len(request.payments),
            })
            if booking is None:
                result = self._reconcile_without_booking(request)
            else:
                result = self._reconcile_with_booking(request, booking)
            logger.info("receipt_reconciliation_completed", extra={
                "amount": str(result.totals.amount),
                "amount_currency": result.totals.amount_currency,
                "service_count": len(result.service_ids),
                "has_excess": result.excess is not None,
            })
            return result

    # ------------------------------------------------------------------

    def _normalize(self, request: ReceiptRequest, has_booking: bool) -> tuple[tuple[PaymentLine, ...], ReceiptTotals]:
        declared = request.amount_currency if not _blank(request.amount_currency) else self._config.default_currency
        lines = normalize_payment_lines(request.payments, declared)
        totals = summarize_receipt(
            lines,
            declared_currency=declared,
            legacy_amount=request.amount,
            legacy_fee_amount=request.payment_fee_amount,
            base_amount=request.base_amount,
            base_currency=request.base_currency,
            require_unambiguous=has_booking,
        )
        return lines, totals

    def _reconcile_without_booking(self, request: ReceiptRequest) -> ReconciliationResult:
        if request.service_allocations:
            raise InvalidAllocationError("allocations require a booking")
        lines, totals = self._normalize(request, has_booking=False)
        return ReconciliationResult(
            payments=lines,
            totals=totals,
            service_ids=_positive_ids(request.service_ids),
            client_ids=_positive_ids(request.client_ids),
        )

    def _reconcile_with_booking(self, request: ReceiptRequest, booking: BookingContext) -> ReconciliationResult:
        config = self._config
        lines, totals = self._normalize(request, has_booking=True)

        whole_booking = (
            booking.use_booking_sale_total_override
            if booking.use_booking_sale_total_override is not None
            else config.use_booking_sale_total
        )
        manual_mode = config.is_manual_billing or whole_booking

        resolved = resolve_service_scope(
            config.receipt_service_selection_mode,
            _positive_ids(request.service_ids),
            booking.service_ids,
        )
        receipt_service_ids = booking.service_ids if whole_booking else resolved

        allocations = validate_service_allocations(
            request.service_allocations,
            services=booking.services,
            scope_service_ids=receipt_service_ids,
        )
        if allocations:
            check_allocations_within_available(allocations, _current_receipt_view(totals, lines))

        ledger = compute_debt_ledger(
            booking.services,
            booking.prior_receipts,
            LedgerScope(frozenset(resolved), whole_booking=whole_booking),
            _current_receipt_view(totals, lines, allocations),
            manual_mode=manual_mode,
            booking_sale_totals=booking.sale_totals,
            exclude_receipt_id=request.receipt_id,
        )
        ledger.ensure_pending(booking.booking_id)

        client_ids = _positive_ids(request.client_ids)
        allowed = booking.booking_client_ids
        if allowed is not None:
            foreign = [cid for cid in client_ids if cid not in allowed]
            if foreign:
                raise InvalidInputError(
                    f"Clients {foreign} do not belong to booking {booking.booking_id}", "client_ids"
                )

        decision = route_ledger_overpayment(
            ledger,
            allow_excess=request.allow_client_credit_excess,
            client_ids=client_ids,
            beneficiary_client_id=request.client_credit_client_id,
            booking_client_ids=allowed,
            agency_allows_excess=config.allow_client_credit_excess,
        )

        return ReconciliationResult(
            payments=lines,
            totals=totals,
            service_ids=receipt_service_ids,
            client_ids=decision.client_ids,
            service_allocations=allocations,
            ledger=ledger,
            excess=decision.descriptor,
            booking_id=booking.booking_id,
        )
