"""
Overpayment router.

Detects currencies where a receipt pushes the remaining balance below
``-DEBT_TOLERANCE`` and, only when the caller explicitly asked for it,
describes how the excess is to be credited to a client's running account.
The descriptor is advisory: nothing here moves money.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal

from travel_engines.ledger import DebtLedger, detect_overpayment
from travel_engines.tracer import traced_engine
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import (
    InvalidBeneficiaryError,
    MissingBeneficiaryError,
    OverpaymentError,
)
from travel_kernel.logging_config import get_logger

__all__ = [
    "ClientCreditExcessDescriptor",
    "OverpaymentDecision",
    "detect_overpayment",
    "route_ledger_overpayment",
    "route_overpayment",
]

logger = get_logger("engines.overpayment")


@dataclass(frozen=True)
class ClientCreditExcessDescriptor:
    """Excess per currency to be granted to one client's credit account."""

    client_id: int
    by_currency: dict[str, Money]

    def as_amounts(self) -> dict[str, Decimal]:
        return {code: money.amount for code, money in self.by_currency.items()}


@dataclass(frozen=True)
class OverpaymentDecision:
    """
    Outcome of routing.

    ``descriptor`` is None when there was no excess. ``client_ids`` is the
    receipt's attached client list, with the beneficiary appended if it was
    missing.
    """

    overpaid_by_currency: dict[str, Money]
    descriptor: ClientCreditExcessDescriptor | None
    client_ids: tuple[int, ...]

    @property
    def has_excess(self) -> bool:
        return self.descriptor is not None


@traced_engine(
    "overpayment_router",
    "1.0",
    fingerprint_fields=("overpaid_by_currency", "allow_excess", "beneficiary_client_id"),
)
def route_overpayment(
    overpaid_by_currency: Mapping[str, Money],
    *,
    allow_excess: bool,
    client_ids: Sequence[int] = (),
    beneficiary_client_id: int | None = None,
    booking_client_ids: Iterable[int] | None = None,
    agency_allows_excess: bool = True,
) -> OverpaymentDecision:
    """
    Decide what happens to an excess.

    Args:
        overpaid_by_currency: Output of ``detect_overpayment``.
        allow_excess: The caller's explicit consent to route the excess.
        client_ids: Clients attached to the receipt.
        beneficiary_client_id: Requested beneficiary; defaults to the first
            attached client.
        booking_client_ids: Titular plus passengers of the booking. When
            given, the beneficiary must be one of them.
        agency_allows_excess: Agency-level permission.

    Raises:
        OverpaymentError: Excess without consent (or agency disallows it).
        MissingBeneficiaryError: Consent given but no client to credit.
        InvalidBeneficiaryError: Beneficiary not part of the booking.
    """
    attached = tuple(client_ids)
    if not overpaid_by_currency:
        return OverpaymentDecision({}, None, attached)

    amounts = {code: money.amount for code, money in overpaid_by_currency.items()}

    if not allow_excess or not agency_allows_excess:
        logger.warning("receipt_overpayment_rejected", extra={
            "overpaid_by_currency": {c: str(v) for c, v in amounts.items()},
            "allow_excess": allow_excess,
            "agency_allows_excess": agency_allows_excess,
        })
        raise OverpaymentError(amounts)

    beneficiary = beneficiary_client_id if beneficiary_client_id is not None else (
        attached[0] if attached else None
    )
    if beneficiary is None:
        logger.warning("receipt_overpayment_missing_beneficiary", extra={
            "overpaid_by_currency": {c: str(v) for c, v in amounts.items()},
        })
        raise MissingBeneficiaryError(amounts)

    if booking_client_ids is not None and beneficiary not in set(booking_client_ids):
        logger.warning("receipt_overpayment_invalid_beneficiary", extra={
            "client_id": beneficiary,
        })
        raise InvalidBeneficiaryError(amounts, beneficiary)

    if beneficiary not in attached:
        attached = (*attached, beneficiary)

    descriptor = ClientCreditExcessDescriptor(
        client_id=beneficiary,
        by_currency=dict(sorted(overpaid_by_currency.items())),
    )
    logger.info("receipt_overpayment_routed", extra={
        "client_id": beneficiary,
        "overpaid_by_currency": {c: str(v) for c, v in amounts.items()},
    })
    return OverpaymentDecision(descriptor.by_currency, descriptor, attached)


def route_ledger_overpayment(
    ledger: DebtLedger,
    *,
    allow_excess: bool,
    client_ids: Sequence[int] = (),
    beneficiary_client_id: int | None = None,
    booking_client_ids: Iterable[int] | None = None,
    agency_allows_excess: bool = True,
) -> OverpaymentDecision:
    """Convenience wrapper: detect on a ledger and route."""
    return route_overpayment(
        ledger.overpaid_by_currency,
        allow_excess=allow_excess,
        client_ids=client_ids,
        beneficiary_client_id=beneficiary_client_id,
        booking_client_ids=booking_client_ids,
        agency_allows_excess=agency_allows_excess,
    )
