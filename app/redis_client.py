"""
Redis connection setup using redis-py async client.

Configured for Upstash Redis with optional TLS support. Used by the
Redis-backed rate store when RATE_STORE_BACKEND=redis.
"""

import redis.asyncio as aioredis

from app.config import settings

redis = aioredis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    ssl=settings.REDIS_SSL,
)
