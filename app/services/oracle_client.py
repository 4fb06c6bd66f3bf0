"""
Rate oracle providers — search-grounded Gemini calls or mock answers.

Architecture:
  - Oracle (protocol, see rate_oracle) defines ``query(prompt)``
  - MockOracle returns a deterministic answer for development
  - GeminiOracle calls the Gemini generateContent API with Google Search
  - ORACLE_MOCK=true (default) selects the mock provider

Switch to production by setting ORACLE_MOCK=false and providing
GEMINI_API_KEY in the environment.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from app.config import settings
from app.core.errors import OracleRateLimitedError, OracleUnavailableError
from app.schemas.rate import Citation, OracleResponse
from app.services.rate_oracle import Oracle, extract_citations

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mock provider (development / testing)
# ---------------------------------------------------------------------------

# Deterministic answers per prompt pair; anything else gets the USD-NGN answer
_MOCK_RATES: dict[str, dict[str, Any]] = {
    "USD-NGN": {"rate": 1550.25, "parallelRate": 1600.0,
                "summary": "The Naira is trading steadily on the parallel market."},
    "GBP-NGN": {"rate": 2010.5, "parallelRate": 2075.0,
                "summary": "Sterling demand remains firm against the Naira."},
    "EUR-NGN": {"rate": 1702.75, "parallelRate": 1760.0,
                "summary": "Euro flows into Lagos are thin this week."},
    "CAD-NGN": {"rate": 1130.4, "parallelRate": None,
                "summary": "Little parallel activity reported for CAD."},
}


class MockOracle:
    """Returns a fenced JSON answer with fixed rates and two citations."""

    async def query(self, prompt: str) -> OracleResponse:
        answer = _MOCK_RATES["USD-NGN"]
        for pair, data in _MOCK_RATES.items():
            source, target = pair.split("-")
            if f"from {source} to {target}" in prompt:
                answer = data
                break

        text = (
            "Rates were gathered from recent market reports.\n\n"
            f"```json\n{json.dumps(answer)}\n```"
        )
        return OracleResponse(
            raw_text=text,
            citations=[
                Citation(title="Central Bank of Nigeria", uri="https://www.cbn.gov.ng/rates/"),
                Citation(title="Nairametrics", uri="https://nairametrics.com/"),
            ],
        )


# ---------------------------------------------------------------------------
# Gemini provider
# ---------------------------------------------------------------------------


class GeminiOracle:
    """Calls Gemini ``generateContent`` with the google_search tool."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._model = model
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def query(self, prompt: str) -> OracleResponse:
        if not self._api_key:
            raise OracleUnavailableError("GEMINI_API_KEY is not configured")

        url = f"{self._api_base}/models/{self._model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "tools": [{"google_search": {}}],
        }

        logger.info("Gemini rate query", extra={"model": self._model})
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport,
            ) as client:
                resp = await client.post(
                    url, json=payload, params={"key": self._api_key},
                )
        except httpx.RequestError as exc:
            logger.error("Gemini request error: %s", exc)
            raise OracleUnavailableError(f"Gemini request failed: {exc}") from exc

        if resp.status_code == 429:
            raise OracleRateLimitedError(
                f"Gemini rate limited (429): {resp.text[:200]}",
                status_code=429,
            )
        if not resp.is_success:
            logger.error("Gemini request failed: %s", resp.status_code)
            raise OracleUnavailableError(
                f"Gemini request failed ({resp.status_code}): {resp.text[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise OracleUnavailableError("Gemini returned a non-JSON body") from exc

        return self._to_response(data)

    @staticmethod
    def _to_response(data: dict[str, Any]) -> OracleResponse:
        candidates = data.get("candidates") or []
        if not candidates:
            return OracleResponse()

        first = candidates[0] or {}
        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(
            part["text"] for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        chunks = (first.get("groundingMetadata") or {}).get("groundingChunks")
        return OracleResponse(raw_text=text, citations=extract_citations(chunks))


# ---------------------------------------------------------------------------
# Factory — selects provider based on config
# ---------------------------------------------------------------------------

_oracle: Oracle | None = None


def get_oracle() -> Oracle:
    """Return the configured oracle (cached after first call)."""
    global _oracle
    if _oracle is not None:
        return _oracle

    if settings.ORACLE_MOCK:
        logger.info("Using MockOracle for rate queries")
        _oracle = MockOracle()
    else:
        logger.info("Using GeminiOracle (live API, model=%s)", settings.GEMINI_MODEL)
        _oracle = GeminiOracle(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            api_base=settings.GEMINI_API_BASE,
            timeout=settings.ORACLE_TIMEOUT_SECONDS,
        )
    return _oracle


def set_oracle(oracle: Oracle | None) -> None:
    """Override the oracle (used in tests)."""
    global _oracle
    _oracle = oracle
