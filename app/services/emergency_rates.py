"""
Emergency static rate table — the last fallback tier.

Consulted only when the oracle fails and no stored record exists for
the pair. Entries come from EMERGENCY_RATES unless a table is passed in.
"""

from app.config import settings
from app.schemas.rate import ExchangeQuote
from app.services.quotes import OFFLINE_LABEL

EMERGENCY_SUMMARY = (
    "Live market data is temporarily unavailable. "
    "This is an offline estimate and may not reflect current rates."
)


class EmergencyRateTable:
    """Fixed canonical-pair -> rate mapping."""

    def __init__(self, rates: dict[str, float] | None = None):
        source = settings.EMERGENCY_RATES if rates is None else rates
        self._rates = {pair.upper(): float(rate) for pair, rate in source.items() if rate > 0}

    def __contains__(self, pair: str) -> bool:
        return pair in self._rates

    def get(self, pair: str) -> float | None:
        return self._rates.get(pair)

    def quote_for(self, pair: str) -> ExchangeQuote | None:
        rate = self.get(pair)
        if rate is None:
            return None
        return ExchangeQuote(
            rate=rate,
            parallel_rate=None,
            summary=EMERGENCY_SUMMARY,
            sources=[],
            last_updated=OFFLINE_LABEL,
        )
