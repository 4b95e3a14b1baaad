"""
Typed exception hierarchy for the travel kernel.

Every error has a TYPED class (catch by type, not message), a ``code`` class
attribute (machine-readable, API-safe) and carries its context as attributes.

    TravelKernelError (base)
    |
    +-- InvalidInputError
    |   +-- InvalidAmountError
    |   +-- InvalidCurrencyError
    |   +-- InvalidFeeModeError
    |   +-- InvalidFeeValueError
    |   +-- InvalidPaymentLineError
    |   +-- InvalidServiceSelectionError
    |   +-- InvalidAllocationError
    |   +-- InvalidOverrideError
    |   +-- InvalidCounterKeyError
    |
    +-- ReconciliationError
    |   +-- AlreadySettledError
    |   +-- AmbiguousCurrencyError
    |   +-- OverpaymentError
    |       +-- MissingBeneficiaryError
    |       +-- InvalidBeneficiaryError
    |
    +-- AllocationOutOfBoundsError
    |   +-- AllocationServiceOutOfScopeError
    |   +-- AllocationExceedsAvailableError
    |
    +-- CurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- ConcurrencyError
        +-- CounterUnavailableError

Category        | Code                              | When Raised
----------------|-----------------------------------|----------------------------------------
Input           | INVALID_INPUT                     | Generic invalid caller input
                | INVALID_AMOUNT                    | Non-numeric, non-finite, or <= 0 amount
                | INVALID_CURRENCY                  | Currency cannot be canonicalized
                | INVALID_FEE_MODE                  | Fee mode not in {none, fixed, percent}
                | INVALID_FEE_VALUE                 | Percent fee above the sanity ceiling
                | INVALID_PAYMENT_LINE              | Method/account/operator fields invalid
                | INVALID_SERVICE_SELECTION         | Missing or foreign service ids
                | INVALID_ALLOCATION                | Non-positive, duplicate, or mismatched
                | INVALID_OVERRIDE                  | Unknown breakdown override field
                | INVALID_COUNTER_KEY               | Empty counter key
----------------|-----------------------------------|----------------------------------------
Reconciliation  | ALREADY_SETTLED                   | No currency has a pending balance
                | AMBIGUOUS_CURRENCY                | Mixed line currencies, no conversion
                | OVERPAYMENT                       | Receipt exceeds pending balance
                | OVERPAYMENT_BENEFICIARY_REQUIRED  | Excess routing without a client
                | OVERPAYMENT_BENEFICIARY_INVALID   | Client not part of the booking
----------------|-----------------------------------|----------------------------------------
Allocation      | ALLOCATION_OUT_OF_BOUNDS          | Allocation outside scope or funds
----------------|-----------------------------------|----------------------------------------
Concurrency     | COUNTER_UNAVAILABLE               | Counter retry budget exhausted
"""

from decimal import Decimal


class TravelKernelError(Exception):
    """
    Base exception for all travel kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "TRAVEL_KERNEL_ERROR"


# Input validation


class InvalidInputError(TravelKernelError):
    """Caller input rejected before any persistence attempt."""

    code: str = "INVALID_INPUT"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(InvalidInputError):
    """Amount is not a finite number greater than zero."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, field: str = "amount"):
        self.value = value
        super().__init__(f"Invalid {field}: {value!r} (must be a finite number > 0)", field)


class InvalidCurrencyError(InvalidInputError):
    """Currency code could not be canonicalized."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: object):
        self.currency = currency
        super().__init__(f"Invalid currency code: {currency!r}", "currency")


class InvalidFeeModeError(InvalidInputError):
    """Fee mode is not one of none / fixed / percent."""

    code: str = "INVALID_FEE_MODE"

    def __init__(self, fee_mode: object):
        self.fee_mode = fee_mode
        super().__init__(f"Invalid fee mode: {fee_mode!r}", "fee_mode")


class InvalidFeeValueError(InvalidInputError):
    """Fee value outside the accepted range."""

    code: str = "INVALID_FEE_VALUE"

    def __init__(self, fee_value: object, reason: str):
        self.fee_value = fee_value
        self.reason = reason
        super().__init__(f"Invalid fee value {fee_value!r}: {reason}", "fee_value")


class InvalidPaymentLineError(InvalidInputError):
    """Payment line method/account fields are inconsistent."""

    code: str = "INVALID_PAYMENT_LINE"

    def __init__(self, line_index: int, reason: str):
        self.line_index = line_index
        self.reason = reason
        super().__init__(f"Invalid payment line #{line_index}: {reason}", "payments")


class InvalidServiceSelectionError(InvalidInputError):
    """Selected services are missing or do not belong to the booking."""

    code: str = "INVALID_SERVICE_SELECTION"

    def __init__(self, reason: str, service_ids: tuple[int, ...] = ()):
        self.reason = reason
        self.service_ids = service_ids
        super().__init__(f"Invalid service selection: {reason}", "service_ids")


class InvalidAllocationError(InvalidInputError):
    """Service allocation entry is malformed."""

    code: str = "INVALID_ALLOCATION"

    def __init__(self, reason: str, service_id: int | None = None):
        self.reason = reason
        self.service_id = service_id
        super().__init__(f"Invalid service allocation: {reason}", "service_allocations")


class InvalidOverrideError(InvalidInputError):
    """Fiscal breakdown override names an unknown field."""

    code: str = "INVALID_OVERRIDE"

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Unknown breakdown override field: {field_name!r}", field_name)


class InvalidCounterKeyError(InvalidInputError):
    """Agency counter key is empty."""

    code: str = "INVALID_COUNTER_KEY"

    def __init__(self, key: object):
        self.key = key
        super().__init__(f"Invalid agency counter key: {key!r}", "key")


# Reconciliation


class ReconciliationError(TravelKernelError):
    """Base exception for receipt reconciliation rejections."""

    code: str = "RECONCILIATION_ERROR"


class AlreadySettledError(ReconciliationError):
    """The ledger scope has no positive remaining balance in any currency."""

    code: str = "ALREADY_SETTLED"

    def __init__(self, booking_id: int | None, whole_booking: bool, debt_by_currency: dict[str, Decimal]):
        self.booking_id = booking_id
        self.whole_booking = whole_booking
        self.debt_by_currency = debt_by_currency
        scope = "booking" if whole_booking else "selected services"
        super().__init__(f"The {scope} of booking {booking_id} are already settled")


class AmbiguousCurrencyError(ReconciliationError):
    """Mixed payment currencies without a declared base conversion."""

    code: str = "AMBIGUOUS_CURRENCY"

    def __init__(self, currencies: tuple[str, ...]):
        self.currencies = currencies
        super().__init__(
            f"Payments in multiple currencies ({', '.join(currencies)}) "
            "require a base amount and base currency"
        )


class OverpaymentError(ReconciliationError):
    """The receipt exceeds the pending balance in at least one currency."""

    code: str = "OVERPAYMENT"

    def __init__(self, overpaid_by_currency: dict[str, Decimal], message: str | None = None):
        self.overpaid_by_currency = overpaid_by_currency
        currencies = ", ".join(sorted(overpaid_by_currency))
        super().__init__(message or f"Receipt exceeds the pending balance in {currencies}")


class MissingBeneficiaryError(OverpaymentError):
    """Excess routing was requested but no client was named."""

    code: str = "OVERPAYMENT_BENEFICIARY_REQUIRED"

    def __init__(self, overpaid_by_currency: dict[str, Decimal]):
        super().__init__(
            overpaid_by_currency,
            "Routing an excess to a credit account requires a beneficiary client",
        )


class InvalidBeneficiaryError(OverpaymentError):
    """The beneficiary client is not attached to the booking."""

    code: str = "OVERPAYMENT_BENEFICIARY_INVALID"

    def __init__(self, overpaid_by_currency: dict[str, Decimal], client_id: int):
        self.client_id = client_id
        super().__init__(
            overpaid_by_currency,
            f"Client {client_id} does not belong to the booking",
        )


# Allocation


class AllocationOutOfBoundsError(TravelKernelError):
    """Per-service allocation outside the receipt's scope or funds."""

    code: str = "ALLOCATION_OUT_OF_BOUNDS"


class AllocationServiceOutOfScopeError(AllocationOutOfBoundsError):
    """Allocation references a service outside the booking or receipt scope."""

    def __init__(self, service_id: int, reason: str):
        self.service_id = service_id
        self.reason = reason
        super().__init__(f"Allocation for service {service_id} is out of scope: {reason}")


class AllocationExceedsAvailableError(AllocationOutOfBoundsError):
    """Allocations in a currency exceed what the receipt carries."""

    def __init__(self, currency: str, allocated: Decimal, available: Decimal):
        self.currency = currency
        self.allocated = allocated
        self.available = available
        super().__init__(
            f"Service allocations exceed the available amount in {currency}: "
            f"allocated={allocated}, available={available}"
        )


# Currency


class CurrencyError(TravelKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Values in different currencies were combined."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Currency mismatch: expected {expected}, received {received}")


# Concurrency


class ConcurrencyError(TravelKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class CounterUnavailableError(ConcurrencyError):
    """Counter could not be incremented within the retry budget."""

    code: str = "COUNTER_UNAVAILABLE"

    def __init__(self, agency_id: int, key: str, attempts: int):
        self.agency_id = agency_id
        self.key = key
        self.attempts = attempts
        super().__init__(
            f"Agency counter {key!r} for agency {agency_id} unavailable "
            f"after {attempts} attempts"
        )
