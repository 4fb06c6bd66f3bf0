"""
Helpers shared by the resolver and the session cache: display
timestamps, quote inversion and amount conversion.
"""

from datetime import datetime

from app.schemas.rate import CacheRecord, ExchangeQuote

CACHED_SUFFIX = " (Cached)"
OFFLINE_LABEL = "Offline Estimate"


def format_timestamp(moment: datetime) -> str:
    """Local wall-clock label, e.g. ``14:03:27``."""
    return moment.astimezone().strftime("%H:%M:%S")


def quote_from_record(record: CacheRecord) -> ExchangeQuote:
    return ExchangeQuote(
        rate=record.rate,
        parallel_rate=record.parallel_rate or None,
        summary=record.summary,
        sources=list(record.sources),
        last_updated=format_timestamp(record.updated_at),
    )


def invert_quote(quote: ExchangeQuote) -> ExchangeQuote:
    """
    Reciprocal of a quote.

    A non-positive rate cannot be inverted; the quote is returned as-is.
    Summary, sources and timestamp are carried over unchanged.
    """
    if quote.rate <= 0:
        return quote
    return quote.model_copy(update={
        "rate": 1 / quote.rate,
        "parallel_rate": 1 / quote.parallel_rate if quote.parallel_rate else None,
    })


def convert_amount(amount: float, rate: float) -> float:
    return amount * rate
