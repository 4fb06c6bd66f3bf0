"""
Pydantic schemas for exchange quotes, stored rate records and oracle results.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Citation(BaseModel):
    """A web source the oracle grounded its answer on."""
    title: str
    uri: str


class ExchangeQuote(BaseModel):
    """Resolved rate for a directional pair, as returned to consumers."""
    rate: float
    parallel_rate: float | None = None
    summary: str = ""
    sources: list[Citation] = Field(default_factory=list)
    last_updated: str


class CacheRecord(BaseModel):
    """One persisted rate per canonical pair key ("USD-NGN")."""
    pair: str
    rate: float
    parallel_rate: float | None = None
    summary: str = ""
    sources: list[Citation] = Field(default_factory=list)
    updated_at: datetime


class OracleResponse(BaseModel):
    """Raw oracle answer: unstructured text plus grounding citations."""
    raw_text: str = ""
    citations: list[Citation] = Field(default_factory=list)


class CurrencyInfo(BaseModel):
    """Display metadata for a supported currency."""
    code: str
    name: str
    symbol: str
    flag: str


class ConversionResponse(BaseModel):
    """Amount converted at the resolved quote."""
    source_currency: str
    target_currency: str
    amount: float
    converted_amount: float
    parallel_converted_amount: float | None = None
    quote: ExchangeQuote
