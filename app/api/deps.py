"""
Reusable FastAPI dependencies for the rate endpoints.

Dependencies:
  - get_rate_service  — process-wide RateService (store + oracle from config)
  - get_rate_session  — process-wide RateSession holding the quote cache
"""

from fastapi import Depends

from app.services.oracle_client import get_oracle
from app.services.rate_service import RateService
from app.services.rate_store import build_rate_store
from app.services.session_cache import RateSession, SessionQuoteCache

_service: RateService | None = None
_session: RateSession | None = None


def get_rate_service() -> RateService:
    """Return the shared RateService, building it on first use."""
    global _service
    if _service is None:
        _service = RateService(store=build_rate_store(), oracle=get_oracle())
    return _service


def get_rate_session(service: RateService = Depends(get_rate_service)) -> RateSession:
    """Return the shared RateSession; cached quotes expire with the freshness window."""
    global _session
    if _session is None:
        _session = RateSession(service, SessionQuoteCache(ttl=service.freshness))
    return _session


async def shutdown_rate_service() -> None:
    """Wait for background rate writes before connections are closed."""
    if _service is not None:
        await _service.drain()
