"""Tests for the PostgreSQL and Redis rate stores."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.core.errors import CacheReadError, CacheWriteError
from app.models.currency_rate import CurrencyRate
from app.services.rate_store import (
    REDIS_KEY_PREFIX,
    PostgresRateStore,
    RedisRateStore,
    build_rate_store,
)
from conftest import NOW, make_record


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_session():
    """AsyncMock database session returned by the session factory."""
    session = AsyncMock()
    mock_result = MagicMock()
    mock_result.scalar_one_or_none = MagicMock(return_value=None)
    session.execute = AsyncMock(return_value=mock_result)
    session.commit = AsyncMock()
    return session


@pytest.fixture
def session_factory(mock_session):
    """Callable returning an async context manager that yields mock_session."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=mock_session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


# ---------------------------------------------------------------------------
# PostgresRateStore
# ---------------------------------------------------------------------------


class TestPostgresRateStore:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, session_factory):
        store = PostgresRateStore(session_factory)
        assert await store.get("USD-NGN") is None

    @pytest.mark.asyncio
    async def test_get_maps_row(self, session_factory, mock_session):
        row = CurrencyRate(
            pair="USD-NGN",
            rate=1550.25,
            parallel_rate=None,
            summary="Stable.",
            sources=[{"title": "CBN", "uri": "https://www.cbn.gov.ng"}],
            updated_at=NOW,
        )
        mock_session.execute.return_value.scalar_one_or_none.return_value = row

        record = await PostgresRateStore(session_factory).get("USD-NGN")

        assert record.pair == "USD-NGN"
        assert record.rate == 1550.25
        assert record.parallel_rate is None
        assert record.sources[0].title == "CBN"
        assert record.updated_at == NOW

    @pytest.mark.asyncio
    async def test_get_failure_raises_cache_read_error(self, session_factory, mock_session):
        mock_session.execute.side_effect = OperationalError("SELECT", {}, Exception("down"))
        with pytest.raises(CacheReadError):
            await PostgresRateStore(session_factory).get("USD-NGN")

    @pytest.mark.asyncio
    async def test_put_upserts_and_commits(self, session_factory, mock_session):
        await PostgresRateStore(session_factory).put(make_record())

        mock_session.execute.assert_awaited_once()
        mock_session.commit.assert_awaited_once()
        stmt = mock_session.execute.await_args.args[0]
        assert "ON CONFLICT (pair) DO UPDATE" in str(stmt.compile(dialect=postgresql.dialect()))

    @pytest.mark.asyncio
    async def test_put_failure_raises_cache_write_error(self, session_factory, mock_session):
        mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("down"))
        with pytest.raises(CacheWriteError):
            await PostgresRateStore(session_factory).put(make_record())


# ---------------------------------------------------------------------------
# RedisRateStore
# ---------------------------------------------------------------------------


class TestRedisRateStore:

    @pytest.mark.asyncio
    async def test_put_then_get(self, mock_redis):
        store = RedisRateStore(mock_redis)
        record = make_record(pair="GBP-NGN", rate=2010.5)

        await store.put(record)

        key, payload = mock_redis.set.await_args.args
        assert key == f"{REDIS_KEY_PREFIX}GBP-NGN"

        mock_redis.get = AsyncMock(return_value=payload)
        loaded = await store.get("GBP-NGN")
        assert loaded == record

    @pytest.mark.asyncio
    async def test_put_has_no_expiry(self, mock_redis):
        await RedisRateStore(mock_redis).put(make_record())
        assert "ex" not in mock_redis.set.await_args.kwargs

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_redis):
        assert await RedisRateStore(mock_redis).get("USD-NGN") is None

    @pytest.mark.asyncio
    async def test_get_corrupt_record(self, mock_redis):
        mock_redis.get = AsyncMock(return_value='{"pair": "USD-NGN"}')
        with pytest.raises(CacheReadError):
            await RedisRateStore(mock_redis).get("USD-NGN")

    @pytest.mark.asyncio
    async def test_connection_errors_are_wrapped(self, mock_redis):
        mock_redis.get = AsyncMock(side_effect=RedisConnectionError("refused"))
        mock_redis.set = AsyncMock(side_effect=RedisConnectionError("refused"))
        store = RedisRateStore(mock_redis)

        with pytest.raises(CacheReadError):
            await store.get("USD-NGN")
        with pytest.raises(CacheWriteError):
            await store.put(make_record())


class TestBuildRateStore:

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="RATE_STORE_BACKEND"):
            build_rate_store("mongo")

    def test_redis_backend(self):
        assert isinstance(build_rate_store("redis"), RedisRateStore)

    def test_postgres_backend(self):
        assert isinstance(build_rate_store("postgres"), PostgresRateStore)
