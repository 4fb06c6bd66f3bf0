"""
Consumer-side quote cache keyed by directional pair (``USD-NGN``).

Every freshly resolved quote is stored together with its inverse, so a
swap of the pair is served from memory without another resolution.
Degraded quotes (stale store or emergency table) are returned but never
cached, so the next request retries the oracle. Entries expire after
``ttl`` when one is set.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from app.core.errors import QuoteUnavailableError
from app.schemas.rate import ExchangeQuote
from app.services.currency import normalize_pair, pair_key
from app.services.quotes import invert_quote
from app.services.rate_service import RateService, RateTier

logger = logging.getLogger(__name__)

CACHEABLE_TIERS = frozenset({RateTier.FRESH_CACHE, RateTier.ORACLE})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionQuoteCache:
    """Directional quote cache with on-demand inverse derivation."""

    def __init__(
        self,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = ttl
        self._clock = clock
        self._quotes: dict[str, tuple[ExchangeQuote, datetime]] = {}

    def __len__(self) -> int:
        return len(self._quotes)

    def _entry(self, source: str, target: str) -> tuple[ExchangeQuote, datetime] | None:
        key = pair_key(source, target)
        entry = self._quotes.get(key)
        if entry is None:
            return None
        if self.ttl is not None and self._clock() - entry[1] >= self.ttl:
            del self._quotes[key]
            return None
        return entry

    def get(self, source: str, target: str) -> ExchangeQuote | None:
        entry = self._entry(source, target)
        return entry[0] if entry is not None else None

    def put(
        self,
        source: str,
        target: str,
        quote: ExchangeQuote,
        stored_at: datetime | None = None,
    ) -> None:
        self._quotes[pair_key(source, target)] = (quote, stored_at or self._clock())

    def put_with_inverse(self, source: str, target: str, quote: ExchangeQuote) -> None:
        """Store a quote and, when its rate is positive, its inverse."""
        stored_at = self._clock()
        self.put(source, target, quote, stored_at)
        if quote.rate > 0:
            self.put(target, source, invert_quote(quote), stored_at)

    def derive_inverse(self, source: str, target: str) -> ExchangeQuote | None:
        """
        Build ``source -> target`` from a cached ``target -> source`` quote,
        remembering it under the requested key until the original expires.
        """
        entry = self._entry(target, source)
        if entry is None:
            return None
        inverse, stored_at = entry
        quote = invert_quote(inverse)
        self.put(source, target, quote, stored_at)
        return quote

    def clear(self) -> None:
        self._quotes.clear()


class RateSession:
    """``resolve(from, to, force_refresh)`` for the presentation layer."""

    def __init__(self, service: RateService, cache: SessionQuoteCache | None = None):
        self.service = service
        self.cache = cache if cache is not None else SessionQuoteCache()

    async def resolve(
        self,
        source: str,
        target: str,
        force_refresh: bool = False,
    ) -> ExchangeQuote:
        source, target = normalize_pair(source, target, self.service.supported)

        if not force_refresh:
            cached = self.cache.get(source, target)
            if cached is not None:
                return cached
            derived = self.cache.derive_inverse(source, target)
            if derived is not None:
                logger.info("Derived %s-%s from cached inverse", source, target)
                return derived

        try:
            resolution = await self.service.resolve(source, target)
        except Exception as exc:
            logger.error("Failed to fetch rates for %s-%s: %s", source, target, exc)
            raise QuoteUnavailableError() from exc

        if resolution.tier in CACHEABLE_TIERS:
            self.cache.put_with_inverse(source, target, resolution.quote)
        else:
            logger.info("Not caching %s quote for %s-%s", resolution.tier.value, source, target)
        return resolution.quote
