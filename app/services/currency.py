"""
Currency catalog and pair canonicalization.

Rates against the domestic currency are always stored and queried as
``FOREIGN-DOMESTIC``; a request for ``DOMESTIC -> FOREIGN`` is served by
inverting the canonical record.
"""

from dataclasses import dataclass

from app.config import settings
from app.core.errors import UnsupportedCurrencyError

# Display metadata for the currencies the converter offers
CURRENCY_CATALOG: dict[str, dict[str, str]] = {
    "USD": {"name": "US Dollar", "symbol": "$", "flag": "https://flagcdn.com/us.svg"},
    "NGN": {"name": "Nigerian Naira", "symbol": "₦", "flag": "https://flagcdn.com/ng.svg"},
    "EUR": {"name": "Euro", "symbol": "€", "flag": "https://flagcdn.com/eu.svg"},
    "GBP": {"name": "British Pound", "symbol": "£", "flag": "https://flagcdn.com/gb.svg"},
    "CAD": {"name": "Canadian Dollar", "symbol": "C$", "flag": "https://flagcdn.com/ca.svg"},
}


@dataclass(frozen=True)
class CanonicalPair:
    """Search direction for a requested pair and whether to invert the result."""
    source: str
    target: str
    invert: bool

    @property
    def key(self) -> str:
        return pair_key(self.source, self.target)


def pair_key(source: str, target: str) -> str:
    return f"{source}-{target}"


def normalize_pair(
    source: str,
    target: str,
    supported: list[str] | None = None,
) -> tuple[str, str]:
    """
    Upper-case and validate a requested pair.

    Raises UnsupportedCurrencyError for codes outside the supported set
    or when both sides are the same currency.
    """
    allowed = supported if supported is not None else settings.SUPPORTED_CURRENCIES
    source = source.strip().upper()
    target = target.strip().upper()

    for code in (source, target):
        if code not in allowed:
            raise UnsupportedCurrencyError(f"Unsupported currency: {code}")
    if source == target:
        raise UnsupportedCurrencyError(
            f"Source and target currency are the same: {source}"
        )
    return source, target


def canonicalize(source: str, target: str, domestic: str) -> CanonicalPair:
    """Orient a pair as FOREIGN -> DOMESTIC when it starts from the domestic side."""
    if source == domestic and target != domestic:
        return CanonicalPair(source=target, target=source, invert=True)
    return CanonicalPair(source=source, target=target, invert=False)
