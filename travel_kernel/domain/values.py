"""
Values -- Immutable, self-validating money primitives.

Responsibility:
    Provides Currency and Money plus the two rounding primitives every engine
    computation goes through: ``round2`` for monetary values and
    ``round_ratio`` for intermediate ratios. ``to_decimal`` is the single
    parser for amounts typed by operators.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine. No outward dependencies except
    travel_kernel.domain.currency.

Invariants enforced:
    - Monetary amounts are Decimal, never binary float. Floats are converted
      through their shortest ``repr`` so ``0.1 + 0.2`` style artifacts never
      reach a quantize call; this replaces the epsilon nudge a float-based
      implementation would need before rounding.
    - ``round2`` is ROUND_HALF_UP at two decimals (1.005 -> 1.01).
    - A balance within DEBT_TOLERANCE of zero is settled.

Failure modes:
    - ValueError on construction with invalid amounts or currencies.
    - ValueError when arithmetic mixes different currencies.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from travel_kernel.domain.currency import CurrencyRegistry

DEBT_TOLERANCE = Decimal("0.01")

_CENTS = Decimal("0.01")
_RATIO_QUANT = Decimal("0.00000001")

_NON_NUMERIC = re.compile(r"[^0-9,.\-]")


def _as_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("bool is not a monetary amount")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def round2(value: Decimal | int | float | str) -> Decimal:
    """Round to two decimals, half away from zero."""
    return _as_decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


def round_ratio(value: Decimal | int | float | str) -> Decimal:
    """Round an intermediate ratio or factor to eight decimals."""
    return _as_decimal(value).quantize(_RATIO_QUANT, rounding=ROUND_HALF_UP)


def to_decimal(value: object) -> Decimal | None:
    """
    Parse a user-entered amount.

    Accepts numbers, plain numeric strings and es-AR formatted text such as
    ``"$ 1.234,56"`` or ``"US$ 10,5"``. Currency symbols and spaces are
    ignored. When both separators appear the last one is the decimal mark;
    a lone comma is always decimal; a lone dot followed by exactly three
    digits is a thousands separator (``"1.500"`` is fifteen hundred).

    Returns None for empty or non-numeric input and for NaN/infinity.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        parsed = Decimal(str(value))
        return parsed if parsed.is_finite() else None
    if not isinstance(value, str):
        return None

    text = _NON_NUMERIC.sub("", value)
    if not text or text in {"-", ".", ","}:
        return None

    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
    elif text.count(".") > 1:
        text = text.replace(".", "")
    elif "." in text:
        whole, frac = text.split(".")
        if len(frac) == 3 and whole.lstrip("-"):
            text = whole + frac

    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


@dataclass(frozen=True, slots=True)
class Currency:
    """
    ISO 4217 currency code value object.

    Construction validates against CurrencyRegistry; aliases are NOT accepted
    here, callers canonicalize first.
    """

    code: str

    def __post_init__(self) -> None:
        normalized = CurrencyRegistry.validate(self.code)
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Pairs a Decimal amount with its Currency. Arithmetic and comparisons
    between different currencies raise ValueError; cross-currency totals are
    always kept as maps keyed by currency code.
    """

    amount: Decimal
    currency: Currency

    def __post_init__(self) -> None:
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, "amount", _as_decimal(self.amount))
        if not self.amount.is_finite():
            raise ValueError(f"Invalid amount: {self.amount}")

        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        elif not isinstance(self.currency, Currency):
            raise TypeError(f"currency must be Currency or str, got {type(self.currency)}")

    @classmethod
    def of(cls, amount: Decimal | str | int | float, currency: str | Currency) -> Money:
        """Create Money from a numeric value and an ISO code or Currency."""
        return cls(amount=_as_decimal(amount), currency=currency)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(amount=Decimal("0"), currency=currency)

    @property
    def code(self) -> str:
        return self.currency.code

    @property
    def is_zero(self) -> bool:
        return self.amount == Decimal("0")

    @property
    def is_positive(self) -> bool:
        return self.amount > Decimal("0")

    @property
    def is_negative(self) -> bool:
        return self.amount < Decimal("0")

    def within_tolerance(self) -> bool:
        """True when the amount is indistinguishable from zero."""
        return abs(self.amount) <= DEBT_TOLERANCE

    def round2(self) -> Money:
        return Money(amount=round2(self.amount), currency=self.currency)

    def _check_currency(self, other: Money, operation: str) -> None:
        if self.currency != other.currency:
            raise ValueError(
                f"Cannot {operation} Money with different currencies: "
                f"{self.currency} and {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "add")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "subtract")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount, currency=self.currency)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount), currency=self.currency)

    def __mul__(self, factor: Decimal | int | str) -> Money:
        if isinstance(factor, (int, str)) and not isinstance(factor, bool):
            factor = Decimal(str(factor))
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor, currency=self.currency)

    def __rmul__(self, factor: Decimal | int | str) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency!r})"
