"""
Persistent rate cache — one record per canonical pair key.

Two backends implement the same ``RateStore`` protocol:
  - PostgresRateStore: ``currency_rates`` table, upsert on pair
  - RedisRateStore: JSON document under ``currency_rates:{pair}``, no TTL

Backend failures are raised as CacheReadError / CacheWriteError so the
resolver can log them and carry on.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from redis.exceptions import RedisError

from app.config import settings
from app.core.errors import CacheReadError, CacheWriteError
from app.models.currency_rate import CurrencyRate
from app.schemas.rate import CacheRecord

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "currency_rates:"


class RateStore(Protocol):
    async def get(self, pair: str) -> CacheRecord | None: ...

    async def put(self, record: CacheRecord) -> None: ...


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


class PostgresRateStore:
    """Rate records in the ``currency_rates`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, pair: str) -> CacheRecord | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CurrencyRate).where(CurrencyRate.pair == pair)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CacheReadError(f"Failed to read rate for {pair}: {exc}") from exc

        if row is None:
            return None
        return CacheRecord(
            pair=row.pair,
            rate=row.rate,
            parallel_rate=row.parallel_rate,
            summary=row.summary or "",
            sources=row.sources or [],
            updated_at=row.updated_at,
        )

    async def put(self, record: CacheRecord) -> None:
        values = {
            "pair": record.pair,
            "rate": record.rate,
            "parallel_rate": record.parallel_rate,
            "summary": record.summary,
            "sources": [s.model_dump() for s in record.sources],
            "updated_at": record.updated_at,
        }
        stmt = insert(CurrencyRate).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CurrencyRate.pair],
            set_={k: stmt.excluded[k] for k in values if k != "pair"},
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            raise CacheWriteError(f"Failed to store rate for {record.pair}: {exc}") from exc


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisRateStore:
    """Rate records as JSON strings in Redis (no expiry)."""

    def __init__(self, redis):
        self.redis = redis

    async def get(self, pair: str) -> CacheRecord | None:
        try:
            cached = await self.redis.get(f"{REDIS_KEY_PREFIX}{pair}")
        except RedisError as exc:
            raise CacheReadError(f"Failed to read rate for {pair}: {exc}") from exc

        if cached is None:
            return None
        try:
            return CacheRecord.model_validate_json(cached)
        except ValidationError as exc:
            raise CacheReadError(f"Corrupt rate record for {pair}") from exc

    async def put(self, record: CacheRecord) -> None:
        try:
            await self.redis.set(
                f"{REDIS_KEY_PREFIX}{record.pair}",
                record.model_dump_json(),
            )
        except RedisError as exc:
            raise CacheWriteError(f"Failed to store rate for {record.pair}: {exc}") from exc


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_rate_store(backend: str | None = None) -> RateStore:
    """Create the store selected by RATE_STORE_BACKEND."""
    backend = (backend or settings.RATE_STORE_BACKEND).lower()

    if backend == "redis":
        from app.redis_client import redis

        logger.info("Using RedisRateStore for persistent rates")
        return RedisRateStore(redis)
    if backend == "postgres":
        from app.database import async_session

        logger.info("Using PostgresRateStore for persistent rates")
        return PostgresRateStore(async_session)
    raise ValueError(f"Unknown RATE_STORE_BACKEND: {backend}")
