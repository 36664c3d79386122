"""Syndicated RSS/Atom feed reader keyed by signal type."""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

import httpx

from app.config import settings
from app.models.signal import RawSignal, SignalType, SourceType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.extraction import (
    EntityExtractor,
    default_extractor,
    detect_signal_types,
    extract_company_name,
    html_to_text,
)
from pipelines.sources.base import SourceFetch, origin_of, parse_timestamp
from pipelines.sources.http import FEED_HEADERS, SourceFetchError, request_with_retries

logger = logging.getLogger("pipelines.sources.news_feed")

FEED_SIGNAL_CONFIDENCE = 0.75
MAX_FEEDS_PER_TYPE = 3
ATOM_NS = "{http://www.w3.org/2005/Atom}"

SIGNAL_FEEDS: dict[SignalType, tuple[str, ...]] = {
    SignalType.FUNDING: (
        "https://techcrunch.com/category/fundings-exits/feed/",
        "https://news.crunchbase.com/feed/",
        "https://www.prnewswire.com/rss/financial-services-latest-news.rss",
        "https://feeds.feedburner.com/venturebeat/SZYF",
    ),
    SignalType.HIRING: ("https://www.techjobs.com/rss/latest",),
    SignalType.PRODUCT_LAUNCH: (
        "https://www.producthunt.com/feed",
        "https://techcrunch.com/category/startups/feed/",
        "https://feeds.feedburner.com/TheNextWeb",
    ),
    SignalType.LEADERSHIP_CHANGE: ("https://www.prnewswire.com/rss/management-changes-latest-news.rss",),
    SignalType.EXPANSION: ("https://www.prnewswire.com/rss/business-expansion-latest-news.rss",),
    SignalType.PARTNERSHIP: (
        "https://www.prnewswire.com/rss/strategic-alliances-latest-news.rss",
        "https://techcrunch.com/category/enterprise/feed/",
    ),
    SignalType.ACQUISITION: (
        "https://techcrunch.com/category/fundings-exits/feed/",
        "https://www.prnewswire.com/rss/mergers-and-acquisitions-latest-news.rss",
    ),
    SignalType.TECH_ADOPTION: (
        "https://techcrunch.com/category/enterprise/feed/",
        "https://feeds.feedburner.com/venturebeat/SZYF",
    ),
}


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str | None
    content: str
    published_at: datetime | None


def _text(element: ET.Element | None) -> str:
    if element is None:
        return ""
    return "".join(element.itertext()).strip()


def parse_feed(document: str | bytes, *, max_items: int | None = None) -> list[FeedItem]:
    """Extract items from an RSS 2.0 or Atom document."""
    root = ET.fromstring(document)
    limit = max_items or settings.feed_max_items
    items: list[FeedItem] = []
    for node in root.iter("item"):
        items.append(
            FeedItem(
                title=_text(node.find("title")),
                link=_text(node.find("link")) or None,
                content=html_to_text(_text(node.find("description"))),
                published_at=parse_timestamp(_text(node.find("pubDate"))),
            )
        )
    for node in root.iter(f"{ATOM_NS}entry"):
        link = node.find(f"{ATOM_NS}link")
        summary = node.find(f"{ATOM_NS}summary")
        if summary is None:
            summary = node.find(f"{ATOM_NS}content")
        published = node.find(f"{ATOM_NS}published")
        if published is None:
            published = node.find(f"{ATOM_NS}updated")
        items.append(
            FeedItem(
                title=_text(node.find(f"{ATOM_NS}title")),
                link=link.get("href") if link is not None else None,
                content=html_to_text(_text(summary)),
                published_at=parse_timestamp(_text(published)),
            )
        )
    return items[:limit]


def _recency_key(signal: RawSignal) -> float:
    return signal.published_at.timestamp() if signal.published_at else 0.0


class NewsFeedSource:
    """Reads the curated feeds for a signal type and keeps attributable items."""

    name = "feed"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        limiter: RateLimiter | None = None,
        extractor: EntityExtractor = default_extractor,
        feeds: Mapping[SignalType, Sequence[str]] = SIGNAL_FEEDS,
        retries: int | None = None,
        retry_delay: float = 0.5,
    ) -> None:
        self._client = http_client
        self._limiter = limiter
        self._extractor = extractor
        self._feeds = feeds
        self._retries = retries
        self._retry_delay = retry_delay

    async def fetch(
        self,
        signal_type: SignalType,
        *,
        token: CancellationToken | None = None,
        max_results: int | None = None,
        queries: list[str] | None = None,
        freshness_hours: int | None = None,
    ) -> SourceFetch:
        feed_urls = list(self._feeds.get(signal_type, ()))[:MAX_FEEDS_PER_TYPE]
        if not feed_urls:
            return SourceFetch.empty()
        outcomes = await asyncio.gather(
            *(self.fetch_feed(url, signal_type, token=token) for url in feed_urls),
            return_exceptions=True,
        )
        signals: list[RawSignal] = []
        errors: list[str] = []
        for url, outcome in zip(feed_urls, outcomes, strict=True):
            if isinstance(outcome, RunCancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.exception("news_feed.unhandled_exception", extra={"url": url}, exc_info=outcome)
                errors.append(f"Feed {url} failed: {outcome}")
                continue
            feed_signals, error = outcome
            signals.extend(feed_signals)
            if error:
                errors.append(error)
        signals.sort(key=_recency_key, reverse=True)
        cap = max_results or settings.feed_max_per_type
        return SourceFetch(signals=signals[:cap], errors=errors, found=bool(signals))

    async def fetch_feed(
        self,
        url: str,
        signal_type: SignalType,
        *,
        token: CancellationToken | None = None,
    ) -> tuple[list[RawSignal], str | None]:
        if self._limiter is not None:
            await self._limiter.wait(origin_of(url), token)
        try:
            response = await request_with_retries(
                self._client,
                "GET",
                url,
                token=token,
                retries=self._retries,
                base_delay=self._retry_delay,
                headers=FEED_HEADERS,
            )
        except SourceFetchError as exc:
            return [], f"Feed {url} unavailable: {exc.code}"
        if response.status_code >= 400:
            return [], f"Feed {url} returned HTTP {response.status_code}"
        try:
            items = parse_feed(response.content)
        except ET.ParseError as exc:
            logger.warning("news_feed.parse_failed", extra={"url": url, "error": str(exc)})
            return [], f"Feed {url} is not valid RSS/Atom"
        return [signal for item in items if (signal := self._to_signal(item, url, signal_type))], None

    def _to_signal(self, item: FeedItem, feed_url: str, signal_type: SignalType) -> RawSignal | None:
        if signal_type not in detect_signal_types(item.title, item.content):
            return None
        company_name = extract_company_name(item.title)
        if not company_name:
            return None
        return RawSignal(
            signal_type=signal_type,
            source=SourceType.FEED,
            source_url=item.link or feed_url,
            company_name=company_name,
            headline=item.title,
            snippet=item.content[:500],
            raw_content=item.content or None,
            entities=self._extractor.extract(f"{item.title} {item.content}", signal_type),
            published_at=item.published_at,
            confidence=FEED_SIGNAL_CONFIDENCE,
        )
