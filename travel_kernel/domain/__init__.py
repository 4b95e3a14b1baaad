"""Pure domain values: currencies, money, rounding and currency buckets."""

from travel_kernel.domain.buckets import CurrencyTotals
from travel_kernel.domain.currency import (
    CURRENCY_ALIASES,
    DEFAULT_CURRENCY,
    CurrencyInfo,
    CurrencyRegistry,
    canonicalize,
)
from travel_kernel.domain.values import (
    DEBT_TOLERANCE,
    Currency,
    Money,
    round2,
    round_ratio,
    to_decimal,
)

__all__ = [
    "CURRENCY_ALIASES",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "CurrencyTotals",
    "DEBT_TOLERANCE",
    "DEFAULT_CURRENCY",
    "Money",
    "canonicalize",
    "round2",
    "round_ratio",
    "to_decimal",
]
