"""Currency -- ISO 4217 registry and alias canonicalization."""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

DEFAULT_CURRENCY = "ARS"

# Symbols and local shorthand seen on receipts and operator invoices.
CURRENCY_ALIASES: dict[str, str] = {
    "US$": "USD",
    "U$S": "USD",
    "U$D": "USD",
    "DOL": "USD",
    "$": "ARS",
    "AR$": "ARS",
}


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str

    @property
    def rounding_tolerance(self) -> Decimal:
        """Smallest representable unit for this currency."""
        if self.decimal_places == 0:
            return Decimal("1")
        return Decimal("0." + "0" * (self.decimal_places - 1) + "1")


class CurrencyRegistry:
    """Registry of the ISO 4217 currencies a travel agency settles in."""

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Local and regional
        "ARS": CurrencyInfo("ARS", 2, "Argentine Peso"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "UYU": CurrencyInfo("UYU", 2, "Uruguayan Peso"),
        "PYG": CurrencyInfo("PYG", 0, "Paraguayan Guarani"),
        "BOB": CurrencyInfo("BOB", 2, "Boliviano"),
        "PEN": CurrencyInfo("PEN", 2, "Peruvian Sol"),
        "COP": CurrencyInfo("COP", 2, "Colombian Peso"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "CRC": CurrencyInfo("CRC", 2, "Costa Rican Colon"),
        "DOP": CurrencyInfo("DOP", 2, "Dominican Peso"),
        "CUP": CurrencyInfo("CUP", 2, "Cuban Peso"),
        # Destinations
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar"),
        "NZD": CurrencyInfo("NZD", 2, "New Zealand Dollar"),
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "CNY": CurrencyInfo("CNY", 2, "Chinese Yuan"),
        "THB": CurrencyInfo("THB", 2, "Thai Baht"),
        "AED": CurrencyInfo("AED", 2, "UAE Dirham"),
        "TRY": CurrencyInfo("TRY", 2, "Turkish Lira"),
        "EGP": CurrencyInfo("EGP", 2, "Egyptian Pound"),
        "ZAR": CurrencyInfo("ZAR", 2, "South African Rand"),
        "ILS": CurrencyInfo("ILS", 2, "Israeli New Shekel"),
        "SEK": CurrencyInfo("SEK", 2, "Swedish Krona"),
        "NOK": CurrencyInfo("NOK", 2, "Norwegian Krone"),
        "DKK": CurrencyInfo("DKK", 2, "Danish Krone"),
        "ISK": CurrencyInfo("ISK", 0, "Icelandic Krona"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "VND": CurrencyInfo("VND", 0, "Vietnamese Dong"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
    }

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    @classmethod
    def is_valid(cls, code: str) -> bool:
        """Check if a currency code is a registered ISO 4217 code."""
        if not code or not isinstance(code, str):
            return False
        return code.upper().strip() in cls._CURRENCIES

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        """Get currency information by code."""
        if not code or not isinstance(code, str):
            return None
        return cls._CURRENCIES.get(code.upper().strip())

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def validate(cls, code: str) -> str:
        """Validate and normalize a strict ISO code (no aliases)."""
        if not code or not isinstance(code, str):
            raise ValueError(f"Invalid currency code: {code!r}")

        normalized = code.upper().strip()
        if normalized not in cls._CURRENCIES:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return normalized

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._CURRENCIES.keys())


def canonicalize(code: object) -> str:
    """
    Map free-text currency input to a canonical ISO code.

    Aliases ("U$D", "US$", "$", "AR$", ...) are resolved case-insensitively,
    registered ISO codes pass through, and empty or unrecognized input falls
    back to ARS.
    """
    if code is None:
        return DEFAULT_CURRENCY
    text = str(code).strip().upper()
    if not text:
        return DEFAULT_CURRENCY
    alias = CURRENCY_ALIASES.get(text)
    if alias is not None:
        return alias
    if text in CurrencyRegistry.all_codes():
        return text
    return DEFAULT_CURRENCY
