"""
Error kinds raised across the rate resolution pipeline.

Only ``NoDataAvailableError`` is meant to reach the caller of the
resolver; every other kind is recovered from at a tier boundary.
"""


class RateServiceError(Exception):
    """Base class for rate service errors."""
    pass


# --- Oracle ---


class OracleError(RateServiceError):
    """The oracle could not produce a usable rate."""
    pass


class OracleRateLimitedError(OracleError):
    """Oracle rejected the call with a rate-limit / quota signal."""

    def __init__(self, message: str, status_code: int | None = 429, code: int | str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class OracleUnavailableError(OracleError):
    """Network failure or non rate-limit error from the oracle."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class OracleMalformedResponseError(OracleError):
    """Oracle answered but no usable rate could be extracted."""
    pass


# --- Persistent cache ---


class CacheReadError(RateServiceError):
    """Reading a record from the rate store failed."""
    pass


class CacheWriteError(RateServiceError):
    """Writing a record to the rate store failed."""
    pass


# --- Terminal / input ---


class NoDataAvailableError(RateServiceError):
    """Oracle and every fallback tier are exhausted for a pair."""

    def __init__(self, pair: str):
        super().__init__(f"No exchange rate data available for {pair}")
        self.pair = pair


class UnsupportedCurrencyError(ValueError):
    """Currency code outside the supported set, or an identical pair."""
    pass


class QuoteUnavailableError(RateServiceError):
    """User-facing failure: no quote could be produced. Carries no tier detail."""

    DEFAULT_MESSAGE = (
        "Unable to retrieve real-time data. "
        "Please check your connection or try again later."
    )

    def __init__(self, message: str = DEFAULT_MESSAGE):
        super().__init__(message)
