"""Per-currency accumulators for ledger and allocation arithmetic."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from decimal import Decimal

from travel_kernel.domain.currency import canonicalize
from travel_kernel.domain.values import DEBT_TOLERANCE, Money, round2


class CurrencyTotals:
    """
    Running totals keyed by canonical currency code.

    Every addition is rounded with ``round2``; contributions within the debt
    tolerance of zero are ignored so rounding noise never creates a bucket.
    Values are never summed across currencies.
    """

    __slots__ = ("_totals",)

    def __init__(self, initial: Mapping[str, Decimal] | None = None):
        self._totals: dict[str, Decimal] = {}
        for code, amount in (initial or {}).items():
            self.add(code, amount)

    def add(self, currency: object, amount: Decimal) -> None:
        if abs(amount) <= DEBT_TOLERANCE:
            return
        code = canonicalize(currency)
        self._totals[code] = round2(self._totals.get(code, Decimal("0")) + amount)

    def add_money(self, money: Money) -> None:
        self.add(money.code, money.amount)

    def get(self, currency: str) -> Decimal:
        return self._totals.get(canonicalize(currency), Decimal("0"))

    def currencies(self) -> set[str]:
        return set(self._totals)

    def as_dict(self) -> dict[str, Decimal]:
        return dict(sorted(self._totals.items()))

    def as_money(self) -> dict[str, Money]:
        return {code: Money.of(amount, code) for code, amount in sorted(self._totals.items())}

    def __contains__(self, currency: object) -> bool:
        return canonicalize(currency) in self._totals

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._totals))

    def __len__(self) -> int:
        return len(self._totals)

    def __repr__(self) -> str:
        return f"CurrencyTotals({self.as_dict()!r})"
