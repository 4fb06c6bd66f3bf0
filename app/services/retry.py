"""
Bounded retry for oracle calls that hit rate limits.

Only rate-limit / quota failures are retried, with a fixed backoff.
Anything else propagates on the first failure.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_rate_limited(exc: BaseException) -> bool:
    """True for HTTP 429 status/code or a message mentioning 429 or quota."""
    if getattr(exc, "status_code", None) == 429 or getattr(exc, "status", None) == 429:
        return True
    code = getattr(exc, "code", None)
    if code == 429 or code == "429":
        return True
    message = str(exc)
    return "429" in message or "quota" in message


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    retries: int = 2,
    backoff_seconds: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await ``func()``; on a rate-limit error wait ``backoff_seconds`` and try
    again, at most ``retries`` more times.
    """
    remaining = retries
    while True:
        try:
            return await func()
        except Exception as exc:
            if remaining <= 0 or not is_rate_limited(exc):
                raise
            logger.warning(
                "Rate limit hit (429). Retrying in %ss... (%d retries left)",
                backoff_seconds, remaining,
            )
            await sleep(backoff_seconds)
            remaining -= 1
