"""Direct crawl of a company's own careers, news and about pages."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from app.config import settings
from app.models.crawl import CompanyRef
from app.models.signal import RawSignal, SignalEntities, SignalType, SourceType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.extraction import EntityExtractor, default_extractor, extract_hiring_roles
from pipelines.sources.base import SourceFetch, normalize_domain
from pipelines.sources.http import HTML_HEADERS, SourceFetchError, request_with_retries

logger = logging.getLogger("pipelines.sources.company_site")

SITE_SIGNAL_CONFIDENCE = 0.85
MIN_KEYWORD_MATCHES = 2
MAX_PAGE_CHARS = 10_000

_NEWS_TYPES = (SignalType.FUNDING, SignalType.PRODUCT_LAUNCH, SignalType.PARTNERSHIP, SignalType.EXPANSION)


@dataclass(frozen=True)
class CompanyPage:
    path: str
    signal_types: tuple[SignalType, ...]


COMPANY_PAGES = (
    CompanyPage("/careers", (SignalType.HIRING,)),
    CompanyPage("/jobs", (SignalType.HIRING,)),
    CompanyPage("/about/careers", (SignalType.HIRING,)),
    CompanyPage("/news", _NEWS_TYPES),
    CompanyPage("/press", _NEWS_TYPES),
    CompanyPage("/newsroom", _NEWS_TYPES),
    CompanyPage("/blog", (SignalType.PRODUCT_LAUNCH, SignalType.TECH_ADOPTION)),
    CompanyPage("/about", (SignalType.EXPANSION, SignalType.LEADERSHIP_CHANGE)),
    CompanyPage("/team", (SignalType.LEADERSHIP_CHANGE, SignalType.HIRING)),
    CompanyPage("/leadership", (SignalType.LEADERSHIP_CHANGE,)),
)

SIGNAL_KEYWORDS: dict[SignalType, tuple[str, ...]] = {
    SignalType.FUNDING: ("raised", "funding", "series", "investment", "investors", "capital", "million", "billion"),
    SignalType.HIRING: ("hiring", "join us", "open positions", "careers", "we're growing", "job opening", "apply now"),
    SignalType.PRODUCT_LAUNCH: ("introducing", "announcing", "new feature", "launch", "now available", "release"),
    SignalType.LEADERSHIP_CHANGE: ("joins as", "appointed", "new ceo", "new cto", "welcomes", "promoted to"),
    SignalType.EXPANSION: ("expanding", "new office", "new market", "international", "global expansion"),
    SignalType.PARTNERSHIP: ("partner", "integration", "collaboration", "alliance", "teams up"),
    SignalType.ACQUISITION: ("acquired", "acquisition", "merger", "acquires"),
    SignalType.TECH_ADOPTION: ("migrating", "adopting", "implementing", "powered by", "built on"),
}


@dataclass(frozen=True)
class PageContent:
    url: str
    title: str
    text: str


def parse_page(url: str, markup: str) -> PageContent:
    soup = BeautifulSoup(markup, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(["script", "style", "noscript", "svg"]):
        tag.decompose()
    text = " ".join(soup.get_text(" ", strip=True).split())
    return PageContent(url=url, title=title, text=text[:MAX_PAGE_CHARS])


def detect_page_signals(text: str, candidates: Sequence[SignalType]) -> list[SignalType]:
    lowered = text.lower()
    detected = []
    for signal_type in candidates:
        matches = sum(1 for keyword in SIGNAL_KEYWORDS[signal_type] if keyword in lowered)
        if matches >= MIN_KEYWORD_MATCHES:
            detected.append(signal_type)
    return detected


def extract_snippet(text: str, signal_type: SignalType) -> str:
    """Context window around the first keyword hit for the signal type."""
    lowered = text.lower()
    for keyword in SIGNAL_KEYWORDS[signal_type]:
        index = lowered.find(keyword)
        if index != -1:
            return text[max(0, index - 100) : index + 200].strip()
    return text[:300]


class CompanySiteSource:
    """Crawls a fixed set of paths on the company's own domain."""

    name = "company_site"
    label = "Company site"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        limiter: RateLimiter | None = None,
        extractor: EntityExtractor = default_extractor,
        pages: Sequence[CompanyPage] = COMPANY_PAGES,
        target_signals: Sequence[SignalType] | None = None,
        retries: int | None = 1,
        user_agent: str | None = None,
    ) -> None:
        self._client = http_client
        self._limiter = limiter
        self._extractor = extractor
        self._retries = retries
        self._headers = {**HTML_HEADERS, "User-Agent": user_agent or settings.site_crawl_user_agent}
        targets = set(target_signals) if target_signals else None
        self._pages = [page for page in pages if targets is None or targets.intersection(page.signal_types)]

    def origin(self, company: CompanyRef) -> str:
        return normalize_domain(company.domain)

    async def fetch(self, company: CompanyRef, *, token: CancellationToken | None = None) -> SourceFetch:
        domain = normalize_domain(company.domain)
        signals: list[RawSignal] = []
        unreachable = 0
        for index, page in enumerate(self._pages):
            # The orchestrator gates the first request to this origin.
            if index and self._limiter is not None:
                await self._limiter.wait(domain, token)
            url = f"https://{domain}{page.path}"
            try:
                content = await self._fetch_page(url, token=token)
            except RunCancelledError:
                raise
            except SourceFetchError as exc:
                unreachable += 1
                logger.debug("company_site.page_failed", extra={"url": url, "code": exc.code})
                continue
            if content is None or not content.text:
                continue
            for signal_type in detect_page_signals(content.text, page.signal_types):
                signals.append(self._build_signal(company, domain, page, content, signal_type))

        if self._pages and unreachable == len(self._pages):
            return SourceFetch(errors=[f"Company site unreachable: {domain}"])
        return SourceFetch(signals=signals, found=bool(signals))

    async def _fetch_page(self, url: str, *, token: CancellationToken | None) -> PageContent | None:
        response = await request_with_retries(
            self._client, "GET", url, token=token, retries=self._retries, headers=self._headers
        )
        if not response.is_success:
            return None
        content_type = response.headers.get("content-type", "text/html")
        if "html" not in content_type and "text" not in content_type:
            return None
        return parse_page(url, response.text)

    def _build_signal(
        self,
        company: CompanyRef,
        domain: str,
        page: CompanyPage,
        content: PageContent,
        signal_type: SignalType,
    ) -> RawSignal:
        snippet = extract_snippet(content.text, signal_type)
        if signal_type is SignalType.HIRING:
            entities = SignalEntities(roles=extract_hiring_roles(content.text))
        else:
            entities = self._extractor.extract(snippet, signal_type)
        return RawSignal(
            signal_type=signal_type,
            source=SourceType.COMPANY_SITE,
            source_url=content.url,
            company_name=company.name,
            domain=domain,
            headline=content.title or f"{company.name} - {page.path.strip('/')}",
            snippet=snippet,
            raw_content=content.text[:2000],
            entities=entities,
            confidence=SITE_SIGNAL_CONFIDENCE,
        )
