"""
Rate resolution engine — canonicalization, freshness check, oracle query,
background persistence and the fallback chain.

Resolution order for a requested pair:

  1. Canonicalize (NGN -> X is served from the X -> NGN record, inverted)
  2. Stored record younger than the freshness window  -> serve it
  3. Oracle query (rate-limit retries)                -> store in background, serve
  4. Oracle failed: stored record of any age          -> serve, marked " (Cached)"
  5. Emergency table entry                            -> serve "Offline Estimate"
  6. Nothing left                                     -> NoDataAvailableError
"""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.config import settings
from app.core.errors import NoDataAvailableError
from app.schemas.rate import CacheRecord, ExchangeQuote
from app.services.currency import CanonicalPair, canonicalize, normalize_pair
from app.services.emergency_rates import EmergencyRateTable
from app.services.quotes import CACHED_SUFFIX, invert_quote, quote_from_record
from app.services.rate_oracle import Oracle, query_rate
from app.services.rate_store import RateStore
from app.services.retry import call_with_retry

logger = logging.getLogger(__name__)


class RateTier(str, enum.Enum):
    """Where a resolved quote came from."""
    FRESH_CACHE = "fresh_cache"
    ORACLE = "oracle"
    STALE_CACHE = "stale_cache"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class Resolution:
    quote: ExchangeQuote
    tier: RateTier
    pair: CanonicalPair


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateService:
    """Tiered exchange rate resolver."""

    def __init__(
        self,
        store: RateStore,
        oracle: Oracle,
        emergency: EmergencyRateTable | None = None,
        domestic: str | None = None,
        freshness: timedelta | None = None,
        retries: int | None = None,
        backoff_seconds: float | None = None,
        supported: list[str] | None = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.oracle = oracle
        self.emergency = emergency if emergency is not None else EmergencyRateTable()
        self.domestic = domestic or settings.DOMESTIC_CURRENCY
        self.freshness = (
            timedelta(seconds=settings.RATE_FRESHNESS_SECONDS) if freshness is None else freshness
        )
        self.retries = settings.ORACLE_RETRY_BUDGET if retries is None else retries
        self.backoff_seconds = (
            settings.ORACLE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )
        self.supported = supported
        self._clock = clock
        self._sleep = sleep
        # Background writes; a strong reference keeps each task alive until done
        self._pending_writes: set[asyncio.Task] = set()

    # --- Public API ---

    async def fetch_rate(self, source: str, target: str) -> ExchangeQuote:
        """Resolve a quote for ``source -> target``; see module docstring."""
        resolution = await self.resolve(source, target)
        return resolution.quote

    async def resolve(self, source: str, target: str) -> Resolution:
        source, target = normalize_pair(source, target, self.supported)
        pair = canonicalize(source, target, self.domestic)

        stale = await self._read_record(pair.key)
        if stale is not None and self._is_fresh(stale):
            logger.info("Using fresh cached rate for %s", pair.key)
            return self._finish(quote_from_record(stale), RateTier.FRESH_CACHE, pair)

        logger.info("Cache stale or missing for %s. Fetching from oracle...", pair.key)
        now = self._clock()
        try:
            quote = await call_with_retry(
                lambda: query_rate(
                    self.oracle, pair.source, pair.target, self.domestic, now=now
                ),
                retries=self.retries,
                backoff_seconds=self.backoff_seconds,
                sleep=self._sleep,
            )
        except Exception as exc:
            logger.error("Oracle fetch failed for %s: %s", pair.key, exc)
            return self._fallback(pair, stale, exc)

        self._persist_in_background(pair.key, quote, now)
        return self._finish(quote, RateTier.ORACLE, pair)

    async def drain(self) -> None:
        """Wait for pending background writes (shutdown / tests)."""
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

    # --- Cache tier ---

    def _is_fresh(self, record: CacheRecord) -> bool:
        updated_at = record.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return self._clock() - updated_at < self.freshness

    async def _read_record(self, key: str) -> CacheRecord | None:
        try:
            return await self.store.get(key)
        except Exception as exc:
            logger.warning("Rate cache check failed for %s: %s", key, exc)
            return None

    def _persist_in_background(self, key: str, quote: ExchangeQuote, updated_at: datetime) -> None:
        if quote.rate <= 0:
            return
        record = CacheRecord(
            pair=key,
            rate=quote.rate,
            parallel_rate=quote.parallel_rate,
            summary=quote.summary,
            sources=quote.sources,
            updated_at=updated_at,
        )
        task = asyncio.create_task(self._persist(record))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist(self, record: CacheRecord) -> None:
        try:
            await self.store.put(record)
        except Exception as exc:
            logger.warning("Background cache update failed for %s: %s", record.pair, exc)

    # --- Fallback chain ---

    def _fallback(
        self,
        pair: CanonicalPair,
        stale: CacheRecord | None,
        error: Exception,
    ) -> Resolution:
        if stale is not None:
            logger.warning("Falling back to stale data for %s", pair.key)
            quote = quote_from_record(stale)
            quote = quote.model_copy(
                update={"last_updated": f"{quote.last_updated}{CACHED_SUFFIX}"}
            )
            return self._finish(quote, RateTier.STALE_CACHE, pair)

        emergency = self.emergency.quote_for(pair.key)
        if emergency is not None:
            logger.warning("Using emergency offline rate for %s", pair.key)
            return self._finish(emergency, RateTier.EMERGENCY, pair)

        logger.error("No rate data available for %s", pair.key)
        raise NoDataAvailableError(pair.key) from error

    def _finish(self, quote: ExchangeQuote, tier: RateTier, pair: CanonicalPair) -> Resolution:
        if pair.invert:
            quote = invert_quote(quote)
        return Resolution(quote=quote, tier=tier, pair=pair)
