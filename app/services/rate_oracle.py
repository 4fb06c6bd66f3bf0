"""
Oracle query builder and response parser.

The oracle is a search-grounded language model: it answers in prose and
is asked to end its answer with a fenced JSON block. Extraction order:

  1. Fenced ```json block, else any JSON-looking object mentioning "rate"
  2. Regex scan of the prose for a grouped decimal number
  3. The JSON block is stripped from the summary shown to users

Parsing never raises; it returns ``ParsedRate`` or ``ParseFailure``.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol, Union

from app.core.errors import OracleMalformedResponseError
from app.schemas.rate import Citation, ExchangeQuote, OracleResponse
from app.services.quotes import format_timestamp

logger = logging.getLogger(__name__)

FENCED_JSON_RE = re.compile(r"```json\n([\s\S]*?)\n```")
LOOSE_JSON_RE = re.compile(r'{[\s\S]*"rate"[\s\S]*}')
STRIP_FENCED_RE = re.compile(r"```json[\s\S]*```")
YEAR_RE = re.compile(r"202[0-9]")
NUMBER_RE = re.compile(r"\d{1,3}(?:,\d{3})*(?:\.\d+)?")

# Regex candidates at or above this are treated as noise
MAX_REGEX_RATE = 10000
EXCLUDED_NUMBERS = (2024.0, 2025.0)


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------


def build_prompt(source: str, target: str, domestic: str) -> str:
    """Build the natural-language request for one currency pair."""
    domestic_search = domestic in (source, target)

    lines = [
        f"Search for the latest real-time exchange rate from {source} to {target}.",
    ]
    if domestic_search:
        lines.append(
            "Look for both the Official CBN rate and the Parallel Market "
            "(Black Market) rate."
        )
    lines.append("")
    lines.append("I need you to extract the effective calculation rate.")
    if domestic_search:
        lines.append(
            "If a parallel market rate exists and is widely used (e.g. black "
            "market rate), use that as the primary 'rate'. Provide the official "
            "rate separately if found."
        )
    lines.extend([
        "",
        "Return the response in a structured text format, and END your response "
        "with a JSON block strictly adhering to this schema:",
        "",
        "```json",
        "{",
        '  "rate": 1234.56,',
        '  "parallelRate": 1250.00,',
        '  "summary": "Brief 1-sentence summary of market status."',
        "}",
        "```",
        "",
        "(Note: 'parallelRate' is optional, set to null if not applicable. "
        "'rate' must be a number).",
    ])
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Parse result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedRate:
    rate: float
    parallel_rate: float | None
    summary: str


@dataclass(frozen=True)
class ParseFailure:
    reason: str
    summary: str


ParseResult = Union[ParsedRate, ParseFailure]


def _to_float(value: Any) -> float | None:
    """Finite float or None; json.loads lets NaN and Infinity through."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _parse_json_block(text: str) -> dict | None:
    match = FENCED_JSON_RE.search(text) or LOOSE_JSON_RE.search(text)
    if match is None:
        return None

    payload = match.group(1) if match.groups() else match.group(0)
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.warning("Oracle JSON block unparseable, falling back to regex: %s", exc)
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _scan_for_rate(text: str) -> float:
    """First grouped decimal in the prose that looks like a rate, else 0."""
    clean = YEAR_RE.sub("", text)
    for token in NUMBER_RE.findall(clean):
        candidate = float(token.replace(",", ""))
        if (
            0 < candidate < MAX_REGEX_RATE
            and not candidate.is_integer()
            and candidate not in EXCLUDED_NUMBERS
        ):
            return candidate
    return 0.0


def parse_oracle_text(text: str) -> ParseResult:
    """Extract rate, parallel rate and summary from the oracle's prose."""
    rate = 0.0
    parallel_rate: float | None = None
    summary = text

    parsed = _parse_json_block(text)
    if parsed is not None:
        if parsed.get("rate"):
            rate = _to_float(parsed["rate"]) or 0.0
        if parsed.get("parallelRate"):
            parallel_rate = _to_float(parsed["parallelRate"])
        if parsed.get("summary"):
            summary = str(parsed["summary"])

    if not rate:
        rate = _scan_for_rate(text)

    summary = STRIP_FENCED_RE.sub("", summary, count=1).strip()

    if rate <= 0:
        return ParseFailure(reason="no usable rate in oracle response", summary=summary)
    return ParsedRate(rate=rate, parallel_rate=parallel_rate, summary=summary)


def extract_citations(grounding_chunks: list[Any] | None) -> list[Citation]:
    """Keep only grounding chunks carrying a web title and URI."""
    citations: list[Citation] = []
    for chunk in grounding_chunks or []:
        if not isinstance(chunk, dict):
            continue
        web = chunk.get("web")
        if not isinstance(web, dict):
            continue
        title, uri = web.get("title"), web.get("uri")
        if title and uri:
            citations.append(Citation(title=title, uri=uri))
    return citations


# ---------------------------------------------------------------------------
# Oracle query
# ---------------------------------------------------------------------------


class Oracle(Protocol):
    async def query(self, prompt: str) -> OracleResponse: ...


async def query_rate(
    oracle: Oracle,
    source: str,
    target: str,
    domestic: str,
    now: datetime | None = None,
) -> ExchangeQuote:
    """
    Ask the oracle for one pair and build a fresh quote.

    ``now`` stamps the quote; defaults to the current time.

    Raises OracleMalformedResponseError when no rate could be extracted;
    transport and rate-limit errors from the oracle propagate unchanged.
    """
    response = await oracle.query(build_prompt(source, target, domestic))
    result = parse_oracle_text(response.raw_text)

    if isinstance(result, ParseFailure):
        raise OracleMalformedResponseError(
            f"{source}-{target}: {result.reason}"
        )

    return ExchangeQuote(
        rate=result.rate,
        parallel_rate=result.parallel_rate,
        summary=result.summary,
        sources=response.citations,
        last_updated=format_timestamp(now or datetime.now(timezone.utc)),
    )
