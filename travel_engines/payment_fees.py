"""
Payment line normalizer and financing-fee calculator.

Every receipt payment line carries an amount, a currency, a payment method
and an optional financing fee definition. This module turns raw lines
into normalized ``PaymentLine`` objects with an authoritative ``fee_amount``
and summarizes them into receipt totals. The same functions serve live
previews and the persisted receipt, so both always agree.

Fee rules:
    none     -> 0, or an explicitly supplied legacy fee_amount clamped to >= 0
    fixed    -> round2(max(0, fee_value))
    percent  -> round2(max(0, amount) * max(0, fee_value) / 100)

Usage:
    from travel_engines.payment_fees import PaymentLineInput, normalize_payment_lines

    lines = normalize_payment_lines(
        [PaymentLineInput(amount="1.000,00", payment_method_id=3,
                          currency="AR$", fee_mode="percent", fee_value="10")]
    )
    lines[0].fee_amount   # Money(Decimal('100.00'), Currency('ARS'))
"""

from __future__ import annotations

import unicodedata
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from travel_engines.tracer import traced_engine
from travel_kernel.domain.currency import canonicalize
from travel_kernel.domain.values import Money, round2, to_decimal
from travel_kernel.exceptions import (
    AmbiguousCurrencyError,
    InvalidAmountError,
    InvalidFeeModeError,
    InvalidFeeValueError,
    InvalidPaymentLineError,
)
from travel_kernel.logging_config import get_logger

logger = get_logger("engines.payment_fees")

# A percentage above this is almost certainly a typo (e.g. 1500 for 15.00).
MAX_PERCENT_FEE = Decimal("1000")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

OPERATOR_CREDIT_METHOD_ALIASES = frozenset({
    "credito operador",
    "credito/corriente operador",
})


class FeeMode(str, Enum):
    """How a payment line's financing fee is derived."""

    NONE = "none"
    FIXED = "fixed"
    PERCENT = "percent"


def parse_fee_mode(value: object) -> FeeMode:
    """Case-insensitive fee mode parsing; None/blank means no fee mode."""
    if value is None:
        return FeeMode.NONE
    if isinstance(value, FeeMode):
        return value
    if not isinstance(value, str):
        raise InvalidFeeModeError(value)
    text = value.strip().lower()
    if not text:
        return FeeMode.NONE
    try:
        return FeeMode(text)
    except ValueError:
        raise InvalidFeeModeError(value) from None


def is_operator_credit_method(method_name: str | None) -> bool:
    """True for payment methods that draw on an operator credit account."""
    if not method_name:
        return False
    decomposed = unicodedata.normalize("NFD", method_name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.strip().lower() in OPERATOR_CREDIT_METHOD_ALIASES


def _optional_id(value: object) -> int | None:
    """Positive integer id, or None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    parsed = to_decimal(value)
    if parsed is None:
        return None
    as_int = int(parsed)
    return as_int if as_int > 0 else None


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True)
class PaymentLineInput:
    """A payment line as received from the caller, not yet validated."""

    amount: object
    payment_method_id: object
    currency: object = None
    fee_mode: object = None
    fee_value: object = None
    # Legacy: explicit fee with no mode
    fee_amount: object = None
    account_id: object = None
    operator_id: object = None
    credit_account_id: object = None
    is_operator_credit: bool = False
    method_name: str | None = None


@dataclass(frozen=True)
class DerivedFee:
    """Normalized fee definition plus the computed amount."""

    fee_mode: FeeMode
    fee_value: Decimal | None
    fee_amount: Decimal


@dataclass(frozen=True)
class PaymentLine:
    """
    A validated payment line.

    Guarantees:
        - ``amount`` is strictly positive.
        - ``fee_amount`` is >= 0, in the line currency, and 0 when
          ``fee_mode`` is none unless a legacy explicit fee was supplied.
        - Operator-credit lines have operator_id and credit_account_id and
          no account_id.
    """

    amount: Money
    payment_method_id: int
    fee_mode: FeeMode
    fee_value: Decimal | None
    fee_amount: Money
    account_id: int | None = None
    operator_id: int | None = None
    credit_account_id: int | None = None
    is_operator_credit: bool = False

    @property
    def currency(self) -> str:
        return self.amount.code

    @property
    def credited(self) -> Money:
        """What this line credits against the debt: amount plus fee."""
        return self.amount + self.fee_amount


@dataclass(frozen=True)
class ReceiptTotals:
    """
    Receipt-level totals derived from its payment lines.

    ``amount_currency`` is the base currency when mixed line currencies are
    bridged by a base conversion, otherwise the first line's currency.
    ``amount`` only adds up lines in that currency; mixed receipts report the
    declared base amount. ``payment_fee_amount`` is the sum of every line fee,
    so prior-receipt readers can tell which part no line claims.
    """

    amount: Decimal
    amount_currency: str
    payment_fee_amount: Decimal
    currencies: tuple[str, ...]
    base_amount: Decimal | None = None
    base_currency: str | None = None

    @property
    def is_mixed(self) -> bool:
        return len(self.currencies) > 1

    @property
    def has_base_conversion(self) -> bool:
        return self.base_currency is not None and self.base_amount is not None and self.base_amount > _ZERO


# =============================================================================
# Fee computation
# =============================================================================


@traced_engine("payment_fees", "1.0", fingerprint_fields=("amount", "fee_mode", "fee_value"))
def compute_fee(
    amount: Decimal,
    fee_mode: FeeMode,
    fee_value: Decimal | None = None,
    explicit_fee_amount: Decimal | None = None,
) -> DerivedFee:
    """
    Derive the financing fee for one payment line.

    Args:
        amount: Line amount (negative amounts are treated as zero).
        fee_mode: Parsed fee mode.
        fee_value: Fixed amount or percentage, depending on the mode.
        explicit_fee_amount: Legacy fee supplied without a mode.

    Raises:
        InvalidFeeValueError: Percentage above MAX_PERCENT_FEE.
    """
    if fee_mode is FeeMode.NONE:
        legacy = max(_ZERO, explicit_fee_amount) if explicit_fee_amount is not None else _ZERO
        return DerivedFee(FeeMode.NONE, None, round2(legacy))

    value = max(_ZERO, fee_value) if fee_value is not None else _ZERO

    if fee_mode is FeeMode.PERCENT:
        if value > MAX_PERCENT_FEE:
            logger.warning("fee_percent_above_ceiling", extra={
                "fee_value": str(value),
                "ceiling": str(MAX_PERCENT_FEE),
            })
            raise InvalidFeeValueError(fee_value, f"percentage above {MAX_PERCENT_FEE}")
        fee = round2(max(_ZERO, amount) * value / _HUNDRED)
        return DerivedFee(FeeMode.PERCENT, round2(value), fee)

    return DerivedFee(FeeMode.FIXED, round2(value), round2(value))


def _parse_fee_value(raw: object) -> Decimal | None:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    parsed = to_decimal(raw)
    if parsed is None:
        raise InvalidFeeValueError(raw, "not a number")
    return parsed


def normalize_payment_line(
    raw: PaymentLineInput,
    index: int = 0,
    default_currency: object = None,
) -> PaymentLine:
    """
    Validate one raw payment line and compute its fee.

    The line currency falls back to ``default_currency`` (the receipt's
    declared currency) and then to ARS.

    Raises:
        InvalidAmountError: amount missing, non-numeric, non-finite or <= 0.
        InvalidPaymentLineError: bad method id or operator-credit fields.
        InvalidFeeModeError / InvalidFeeValueError: bad fee definition.
    """
    amount = to_decimal(raw.amount)
    if amount is None or amount <= _ZERO:
        raise InvalidAmountError(raw.amount, f"payments[{index}].amount")

    method_id = _optional_id(raw.payment_method_id)
    if method_id is None:
        raise InvalidPaymentLineError(index, "payment_method_id must be a positive integer")

    currency_source = raw.currency
    if currency_source is None or (isinstance(currency_source, str) and not currency_source.strip()):
        currency_source = default_currency
    currency = canonicalize(currency_source)

    account_id = _optional_id(raw.account_id)
    operator_id = _optional_id(raw.operator_id)
    credit_account_id = _optional_id(raw.credit_account_id)
    operator_credit = raw.is_operator_credit or is_operator_credit_method(raw.method_name)

    if operator_credit:
        if account_id is not None:
            raise InvalidPaymentLineError(index, "operator credit lines cannot use an account")
        if operator_id is None:
            raise InvalidPaymentLineError(index, "operator credit lines require operator_id")
        if credit_account_id is None:
            raise InvalidPaymentLineError(index, "operator credit lines require credit_account_id")

    fee_mode = parse_fee_mode(raw.fee_mode)
    explicit_fee = to_decimal(raw.fee_amount) if raw.fee_amount is not None else None
    derived = compute_fee(amount, fee_mode, _parse_fee_value(raw.fee_value), explicit_fee)

    return PaymentLine(
        amount=Money.of(amount, currency),
        payment_method_id=method_id,
        fee_mode=derived.fee_mode,
        fee_value=derived.fee_value,
        fee_amount=Money.of(derived.fee_amount, currency),
        account_id=account_id,
        operator_id=operator_id,
        credit_account_id=credit_account_id,
        is_operator_credit=operator_credit,
    )


def normalize_payment_lines(
    lines: Sequence[PaymentLineInput],
    default_currency: object = None,
) -> tuple[PaymentLine, ...]:
    """Normalize every line; the first invalid line aborts the whole receipt."""
    normalized = tuple(
        normalize_payment_line(line, index, default_currency)
        for index, line in enumerate(lines)
    )
    logger.debug("payment_lines_normalized", extra={
        "line_count": len(normalized),
        "currencies": sorted({line.currency for line in normalized}),
    })
    return normalized


# =============================================================================
# Receipt totals
# =============================================================================


def summarize_receipt(
    lines: Sequence[PaymentLine],
    *,
    declared_currency: object = None,
    legacy_amount: object = None,
    legacy_fee_amount: object = None,
    base_amount: object = None,
    base_currency: object = None,
    require_unambiguous: bool = True,
) -> ReceiptTotals:
    """
    Compute receipt totals and its principal currency.

    With payment lines, amount and fee come from the lines. Without them the
    legacy single amount/currency/fee triple is used.

    Args:
        require_unambiguous: When True (receipt tied to a booking), mixed
            line currencies without a base conversion are rejected.

    Raises:
        AmbiguousCurrencyError: Mixed currencies, no conversion, booking context.
        InvalidAmountError: Legacy receipt without a positive amount.
    """
    parsed_base = to_decimal(base_amount)
    base_code = canonicalize(base_currency) if base_currency not in (None, "") else None
    has_base = base_code is not None and parsed_base is not None and parsed_base > _ZERO

    if not lines:
        amount = to_decimal(legacy_amount)
        if amount is None or amount <= _ZERO:
            raise InvalidAmountError(legacy_amount)
        fee = to_decimal(legacy_fee_amount)
        code = canonicalize(declared_currency)
        return ReceiptTotals(
            amount=round2(amount),
            amount_currency=code,
            payment_fee_amount=round2(max(_ZERO, fee)) if fee is not None else _ZERO,
            currencies=(code,),
            base_amount=round2(parsed_base) if has_base else None,
            base_currency=base_code if has_base else None,
        )

    currencies = tuple(dict.fromkeys(line.currency for line in lines))
    mixed = len(currencies) > 1

    if mixed and not has_base and require_unambiguous:
        logger.warning("receipt_currency_ambiguous", extra={"currencies": list(currencies)})
        raise AmbiguousCurrencyError(currencies)

    principal = base_code if mixed and has_base else currencies[0]

    if mixed and has_base:
        amount = round2(parsed_base)
    else:
        amount = round2(sum((line.amount.amount for line in lines if line.currency == principal), _ZERO))
    fee_total = round2(sum((line.fee_amount.amount for line in lines), _ZERO))

    return ReceiptTotals(
        amount=amount,
        amount_currency=principal,
        payment_fee_amount=fee_total,
        currencies=currencies,
        base_amount=round2(parsed_base) if has_base else None,
        base_currency=base_code if has_base else None,
    )
