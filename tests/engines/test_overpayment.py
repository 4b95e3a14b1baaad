"""
Tests for overpayment detection and routing.

Covers:
- Detection threshold (strictly below -tolerance)
- Rejection without consent or when the agency disallows routing
- Beneficiary resolution and validation
- Excess descriptor contents
"""

from decimal import Decimal

import pytest

from travel_engines.ledger import LedgerScope, ReceiptForDebt, ServiceSale, compute_debt_ledger
from travel_engines.overpayment import (
    detect_overpayment,
    route_ledger_overpayment,
    route_overpayment,
)
from travel_kernel.domain.values import Money
from travel_kernel.exceptions import (
    InvalidBeneficiaryError,
    MissingBeneficiaryError,
    OverpaymentError,
)


def _overpaid_ledger():
    services = (ServiceSale(1, Decimal("1000"), "ARS"),)
    current = ReceiptForDebt(amount=Decimal("1200"), amount_currency="ARS")
    return compute_debt_ledger(services, (), LedgerScope(frozenset({1})), current)


class TestDetectOverpayment:
    """Tests for detect_overpayment()."""

    def test_only_currencies_below_tolerance(self):
        remaining = {
            "ARS": Money.of("-0.01", "ARS"),
            "EUR": Money.of("15", "EUR"),
            "USD": Money.of("-20.004", "USD"),
        }
        assert detect_overpayment(remaining) == {"USD": Money.of("20.00", "USD")}

    def test_nothing_overpaid(self):
        assert detect_overpayment({}) == {}


class TestRouteOverpayment:
    """Tests for route_overpayment()."""

    def test_no_excess_passes_clients_through(self):
        decision = route_overpayment({}, allow_excess=False, client_ids=(3,))
        assert not decision.has_excess
        assert decision.client_ids == (3,)

    def test_rejected_without_consent(self):
        with pytest.raises(OverpaymentError) as exc_info:
            route_ledger_overpayment(_overpaid_ledger(), allow_excess=False, client_ids=(5,))
        assert exc_info.value.overpaid_by_currency == {"ARS": Decimal("200.00")}
        assert exc_info.value.code == "OVERPAYMENT"

    def test_rejected_when_agency_disallows(self):
        with pytest.raises(OverpaymentError):
            route_ledger_overpayment(
                _overpaid_ledger(), allow_excess=True, client_ids=(5,), agency_allows_excess=False
            )

    def test_routes_to_first_attached_client(self):
        decision = route_ledger_overpayment(_overpaid_ledger(), allow_excess=True, client_ids=(5, 6))
        assert decision.has_excess
        assert decision.descriptor.client_id == 5
        assert decision.descriptor.as_amounts() == {"ARS": Decimal("200.00")}
        assert decision.client_ids == (5, 6)

    def test_explicit_beneficiary_is_attached(self):
        decision = route_ledger_overpayment(
            _overpaid_ledger(),
            allow_excess=True,
            client_ids=(5,),
            beneficiary_client_id=8,
            booking_client_ids={5, 8},
        )
        assert decision.descriptor.client_id == 8
        assert decision.client_ids == (5, 8)

    def test_missing_beneficiary(self):
        with pytest.raises(MissingBeneficiaryError):
            route_ledger_overpayment(_overpaid_ledger(), allow_excess=True)

    def test_beneficiary_outside_booking(self):
        with pytest.raises(InvalidBeneficiaryError) as exc_info:
            route_ledger_overpayment(
                _overpaid_ledger(),
                allow_excess=True,
                beneficiary_client_id=99,
                booking_client_ids={5, 8},
            )
        assert exc_info.value.client_id == 99
        assert isinstance(exc_info.value, OverpaymentError)

    def test_logs_routing(self, captured_logs):
        route_ledger_overpayment(_overpaid_ledger(), allow_excess=True, client_ids=(5,))
        routed = [r for r in captured_logs() if r["message"] == "receipt_overpayment_routed"]
        assert routed[-1]["client_id"] == 5
        assert routed[-1]["overpaid_by_currency"] == {"ARS": "200.00"}
