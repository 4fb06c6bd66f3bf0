"""
Shared test fixtures for NairaSense.

Provides an in-memory rate store, a scripted oracle, a fixed clock,
Redis mocks and an async test client wired to test doubles.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_rate_session
from app.core.errors import CacheReadError, CacheWriteError
from app.schemas.rate import CacheRecord, Citation, OracleResponse
from app.services.emergency_rates import EmergencyRateTable
from app.services.rate_service import RateService
from app.services.session_cache import RateSession

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


# --- Oracle helpers ---


def oracle_text(rate, parallel_rate=None, summary="Stable.", prose="Market report."):
    """Oracle prose ending in a fenced JSON block."""
    block = {"rate": rate, "parallelRate": parallel_rate, "summary": summary}
    return f"{prose}\n\n```json\n{json.dumps(block)}\n```"


def oracle_response(rate, parallel_rate=None, summary="Stable.", citations=2):
    return OracleResponse(
        raw_text=oracle_text(rate, parallel_rate, summary),
        citations=[
            Citation(title=f"Source {i}", uri=f"https://example.com/{i}")
            for i in range(citations)
        ],
    )


class ScriptedOracle:
    """Returns (or raises) scripted items in order; the last item repeats."""

    def __init__(self, *items):
        self.items = list(items)
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def query(self, prompt: str) -> OracleResponse:
        self.prompts.append(prompt)
        item = self.items.pop(0) if len(self.items) > 1 else self.items[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeRateStore:
    """In-memory RateStore with switchable read/write failures."""

    def __init__(self, *records: CacheRecord):
        self.records = {r.pair: r for r in records}
        self.reads: list[str] = []
        self.puts: list[CacheRecord] = []
        self.fail_get = False
        self.fail_put = False

    async def get(self, pair: str) -> CacheRecord | None:
        self.reads.append(pair)
        if self.fail_get:
            raise CacheReadError(f"read failed for {pair}")
        return self.records.get(pair)

    async def put(self, record: CacheRecord) -> None:
        if self.fail_put:
            raise CacheWriteError(f"write failed for {record.pair}")
        self.puts.append(record)
        self.records[record.pair] = record


def make_record(pair="USD-NGN", rate=1500.0, parallel_rate=1580.0, updated_at=NOW, **kw):
    return CacheRecord(
        pair=pair,
        rate=rate,
        parallel_rate=parallel_rate,
        summary=kw.pop("summary", "Stored summary."),
        sources=kw.pop("sources", [Citation(title="CBN", uri="https://www.cbn.gov.ng")]),
        updated_at=updated_at,
    )


# --- Fixtures ---


@pytest.fixture
def store():
    return FakeRateStore()


@pytest.fixture
def emergency():
    return EmergencyRateTable({"USD-NGN": 1600.0, "GBP-NGN": 2050.0})


@pytest.fixture
def make_service(store, emergency):
    """Factory for a RateService on the fake store with a fixed clock and no backoff."""

    def _make(oracle, **overrides):
        params = {
            "store": store,
            "oracle": oracle,
            "emergency": emergency,
            "domestic": "NGN",
            "retries": 2,
            "backoff_seconds": 0,
            "supported": ["USD", "NGN", "EUR", "GBP", "CAD"],
            "clock": lambda: NOW,
            "sleep": AsyncMock(),
        }
        params.update(overrides)
        return RateService(**params)

    return _make


@pytest.fixture
def mock_redis():
    """AsyncMock Redis client with common methods."""
    redis = AsyncMock()
    redis.set = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    return redis


# --- Dependency Override Helpers ---


@pytest.fixture
def api_oracle():
    return ScriptedOracle(oracle_response(1550.25, 1600.0))


@pytest.fixture
def rate_session(make_service, api_oracle):
    """RateSession on the fake store and scripted oracle, shared with the client."""
    return RateSession(make_service(api_oracle))


@pytest_asyncio.fixture
async def client(rate_session):
    """
    Async HTTP test client with get_rate_session overridden to use
    the fake store and scripted oracle.
    """
    from app.main import app

    app.dependency_overrides[get_rate_session] = lambda: rate_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await rate_session.service.drain()
    app.dependency_overrides.clear()
