"""Web-scale search adapter backed by Exa."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from app.clients.exa import ExaClient, ExaError
from app.models.signal import RawSignal, SignalType, SourceType
from pipelines.cancellation import CancellationToken
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.extraction import (
    EntityExtractor,
    default_extractor,
    detect_signal_types,
    extract_company_name,
)
from pipelines.sources.base import SourceFetch, origin_of, parse_timestamp

logger = logging.getLogger("pipelines.sources.exa_search")

SEARCH_SIGNAL_CONFIDENCE = 0.70
QUERIES_PER_TYPE = 2
MAX_RESULTS_PER_QUERY = 10
DEFAULT_FRESHNESS_HOURS = 72

SIGNAL_QUERIES: dict[SignalType, tuple[str, ...]] = {
    SignalType.FUNDING: (
        "startup raises funding round",
        "series A B C funding announcement",
        "company secures investment",
        "venture capital funding round",
    ),
    SignalType.HIRING: (
        "company hiring engineers",
        "startup expanding team",
        "company job openings growth",
    ),
    SignalType.PRODUCT_LAUNCH: (
        "company launches new product",
        "startup announces new feature",
        "product launch announcement",
    ),
    SignalType.LEADERSHIP_CHANGE: (
        "company appoints new CEO CTO",
        "startup hires executive",
        "new VP Director hired",
    ),
    SignalType.EXPANSION: (
        "company expands to new market",
        "startup opens new office",
        "international expansion announcement",
    ),
    SignalType.PARTNERSHIP: (
        "strategic partnership announcement",
        "company partners with",
        "integration partnership launch",
    ),
    SignalType.ACQUISITION: (
        "company acquired by",
        "acquisition announcement",
        "M&A deal closed",
    ),
    SignalType.TECH_ADOPTION: (
        "company adopts new technology",
        "migrates to cloud platform",
        "implements new tech stack",
    ),
}


class ExaSearchSource:
    """Runs canned Exa queries for a signal type.

    Without an API key the adapter logs a warning and returns nothing.
    """

    name = "search"

    def __init__(
        self,
        client: ExaClient | None,
        *,
        limiter: RateLimiter | None = None,
        extractor: EntityExtractor = default_extractor,
        queries: Mapping[SignalType, Sequence[str]] = SIGNAL_QUERIES,
        base_url: str = "https://api.exa.ai",
    ) -> None:
        self._client = client
        self._limiter = limiter
        self._extractor = extractor
        self._queries = queries
        self._origin = origin_of(base_url)

    async def fetch(
        self,
        signal_type: SignalType,
        *,
        token: CancellationToken | None = None,
        max_results: int | None = None,
        queries: list[str] | None = None,
        freshness_hours: int | None = None,
    ) -> SourceFetch:
        if self._client is None:
            logger.warning("exa_search.disabled", extra={"reason": "EXA_API_KEY not configured"})
            return SourceFetch.empty()

        hours = freshness_hours or DEFAULT_FRESHNESS_HOURS
        start_date = datetime.now(UTC) - timedelta(hours=hours)
        per_query = min(max_results or MAX_RESULTS_PER_QUERY, MAX_RESULTS_PER_QUERY)
        selected = list(queries or self._queries.get(signal_type, ()))[:QUERIES_PER_TYPE]

        signals: list[RawSignal] = []
        errors: list[str] = []
        seen_urls: set[str] = set()
        for query in selected:
            if self._limiter is not None:
                await self._limiter.wait(self._origin, token)
            if token is not None:
                token.raise_if_cancelled()
            try:
                results = await self._client.search(
                    query=query,
                    num_results=per_query,
                    start_published_date=start_date,
                    timeout=token.cap_timeout(30.0) if token is not None else None,
                )
            except ExaError as exc:
                logger.warning("exa_search.query_failed", extra={"query": query[:120], "code": exc.code})
                errors.append(f"Exa search failed for '{query}': {exc.code}")
                continue
            for result in results:
                signal = self._to_signal(result, signal_type)
                if signal is None or signal.source_url in seen_urls:
                    continue
                seen_urls.add(signal.source_url)
                signals.append(signal)
        return SourceFetch(signals=signals, errors=errors, found=bool(signals))

    def _to_signal(self, result: Mapping[str, Any], signal_type: SignalType) -> RawSignal | None:
        title = str(result.get("title") or "").strip()
        url = result.get("url")
        if not title or not url:
            return None
        text = str(result.get("text") or "")
        highlights = [str(item) for item in result.get("highlights") or []]
        snippet = " ".join(highlights) or text[:300]
        if signal_type not in detect_signal_types(title, f"{snippet} {text}"):
            return None
        company_name = extract_company_name(title, url)
        if not company_name:
            return None
        return RawSignal(
            signal_type=signal_type,
            source=SourceType.SEARCH,
            source_url=url,
            company_name=company_name,
            headline=title,
            snippet=snippet,
            raw_content=text or None,
            entities=self._extractor.extract(f"{title} {text}", signal_type),
            published_at=parse_timestamp(result.get("publishedDate")),
            confidence=SEARCH_SIGNAL_CONFIDENCE,
        )
