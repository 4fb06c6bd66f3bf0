"""Tests for rate-limit detection and the bounded oracle retry loop."""

from unittest.mock import AsyncMock

import pytest

from app.core.errors import (
    OracleMalformedResponseError,
    OracleRateLimitedError,
    OracleUnavailableError,
)
from app.services.retry import call_with_retry, is_rate_limited


class _StatusError(Exception):
    def __init__(self, message="", status=None, code=None):
        super().__init__(message)
        self.status = status
        self.code = code


class TestIsRateLimited:

    def test_status_code_attribute(self):
        assert is_rate_limited(OracleRateLimitedError("slow down", status_code=429))

    def test_status_attribute(self):
        assert is_rate_limited(_StatusError(status=429))

    def test_code_attribute(self):
        assert is_rate_limited(_StatusError(code=429))
        assert is_rate_limited(_StatusError(code="429"))

    def test_message_mentions_429(self):
        assert is_rate_limited(RuntimeError("HTTP 429 Too Many Requests"))

    def test_message_mentions_quota(self):
        assert is_rate_limited(RuntimeError("You exceeded your current quota"))

    def test_other_errors(self):
        assert not is_rate_limited(OracleUnavailableError("connection reset", status_code=503))
        assert not is_rate_limited(OracleMalformedResponseError("no rate"))
        assert not is_rate_limited(ValueError("bad"))


class TestCallWithRetry:

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        func = AsyncMock(return_value="ok")
        sleep = AsyncMock()
        assert await call_with_retry(func, retries=2, sleep=sleep) == "ok"
        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_succeeds(self):
        func = AsyncMock(side_effect=[OracleRateLimitedError("429"), "ok"])
        sleep = AsyncMock()
        assert await call_with_retry(func, retries=2, backoff_seconds=2.0, sleep=sleep) == "ok"
        assert func.await_count == 2
        sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_budget_one_stops_after_second_failure(self):
        """Two 429s with one retry: second failure propagates, no third attempt."""
        func = AsyncMock(side_effect=[
            OracleRateLimitedError("429 first"),
            OracleRateLimitedError("429 second"),
            "never",
        ])
        sleep = AsyncMock()
        with pytest.raises(OracleRateLimitedError, match="second"):
            await call_with_retry(func, retries=1, sleep=sleep)
        assert func.await_count == 2
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_fails_fast(self):
        func = AsyncMock(side_effect=OracleUnavailableError("network down"))
        sleep = AsyncMock()
        with pytest.raises(OracleUnavailableError):
            await call_with_retry(func, retries=2, sleep=sleep)
        assert func.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_budget_never_retries(self):
        func = AsyncMock(side_effect=OracleRateLimitedError("429"))
        sleep = AsyncMock()
        with pytest.raises(OracleRateLimitedError):
            await call_with_retry(func, retries=0, sleep=sleep)
        assert func.await_count == 1
