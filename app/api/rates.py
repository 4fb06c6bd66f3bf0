"""
Exchange rate endpoints.

Quotes are resolved through the session cache, then the tiered
RateService (stored rate, oracle, stale fallback, emergency table).
Stale and emergency data are flagged in ``last_updated`` only.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_rate_session
from app.core.errors import QuoteUnavailableError, UnsupportedCurrencyError
from app.schemas.rate import ConversionResponse, CurrencyInfo, ExchangeQuote
from app.services.currency import CURRENCY_CATALOG
from app.services.quotes import convert_amount
from app.services.session_cache import RateSession

logger = logging.getLogger(__name__)

router = APIRouter()


async def _resolve(
    session: RateSession,
    source: str,
    target: str,
    refresh: bool,
) -> ExchangeQuote:
    try:
        return await session.resolve(source, target, force_refresh=refresh)
    except UnsupportedCurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    except QuoteUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )


@router.get("/currencies", response_model=list[CurrencyInfo])
async def list_currencies():
    """Supported currencies with display name, symbol and flag."""
    return [
        CurrencyInfo(code=code, **details)
        for code, details in CURRENCY_CATALOG.items()
    ]


@router.get("/quote", response_model=ExchangeQuote)
async def get_quote(
    source: str = Query(..., description="Source currency", examples=["USD"]),
    target: str = Query(..., description="Target currency", examples=["NGN"]),
    refresh: bool = Query(False, description="Bypass the session cache"),
    session: RateSession = Depends(get_rate_session),
):
    """
    Get the current rate for a currency pair.

    Returns the effective rate, the parallel market rate when one exists,
    a market summary and the web sources the rate was grounded on.
    """
    return await _resolve(session, source, target, refresh)


@router.get("/convert", response_model=ConversionResponse)
async def convert(
    source: str = Query(..., description="Source currency", examples=["USD"]),
    target: str = Query(..., description="Target currency", examples=["NGN"]),
    amount: float = Query(..., gt=0, description="Amount in source currency", examples=[100]),
    refresh: bool = Query(False, description="Bypass the session cache"),
    session: RateSession = Depends(get_rate_session),
):
    """Convert an amount at the effective rate (and the parallel rate, if any)."""
    quote = await _resolve(session, source, target, refresh)

    parallel = (
        convert_amount(amount, quote.parallel_rate)
        if quote.parallel_rate else None
    )
    return ConversionResponse(
        source_currency=source.strip().upper(),
        target_currency=target.strip().upper(),
        amount=amount,
        converted_amount=convert_amount(amount, quote.rate),
        parallel_converted_amount=parallel,
        quote=quote,
    )
