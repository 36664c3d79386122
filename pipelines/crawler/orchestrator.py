"""Fans company-targeted source adapters out across a list of companies."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable, Sequence

import httpx

from app.config import settings
from app.models.crawl import (
    BatchCrawlResult,
    CompanyRef,
    CrawlResult,
    CrawlSignalSummary,
    CrawlStats,
    GrowthSignal,
    HiringVelocity,
    JobPosting,
    TermCount,
)
from app.models.signal import RawSignal
from app.observability.metrics import MetricsReporter, metrics
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.extraction import canonical_tech
from pipelines.sources.base import CompanySource, normalize_domain
from pipelines.sources.company_site import CompanySiteSource
from pipelines.sources.greenhouse import GreenhouseSource
from pipelines.sources.lever import LeverSource

logger = logging.getLogger("pipelines.crawler.orchestrator")

ResultCallback = Callable[[int, CrawlResult], Awaitable[None] | None]

AGGRESSIVE_MIN_OPENINGS = 20
MODERATE_MIN_OPENINGS = 10
STABLE_MIN_OPENINGS = 3
TOP_N = 20


def classify_growth(openings: int) -> GrowthSignal:
    if openings >= AGGRESSIVE_MIN_OPENINGS:
        return "aggressive"
    if openings >= MODERATE_MIN_OPENINGS:
        return "moderate"
    if openings >= STABLE_MIN_OPENINGS:
        return "stable"
    return "contracting"


def analyze_hiring_velocity(jobs: Sequence[JobPosting], company_domain: str | None = None) -> HiringVelocity:
    by_department = Counter(job.department for job in jobs)
    by_seniority = Counter(job.seniority for job in jobs)
    tech_stack = list(dict.fromkeys(tech for job in jobs for tech in job.tech_stack))
    domain = company_domain or (jobs[0].company_domain if jobs else "")
    return HiringVelocity(
        company_domain=domain,
        total_openings=len(jobs),
        by_department=dict(by_department),
        by_seniority=dict(by_seniority),
        growth_signal=classify_growth(len(jobs)),
        tech_stack=tech_stack,
    )


def default_company_sources(
    http_client: httpx.AsyncClient,
    limiter: RateLimiter,
    *,
    include_site: bool | None = None,
) -> list[CompanySource]:
    sources: list[CompanySource] = [
        GreenhouseSource(http_client, limiter=limiter),
        LeverSource(http_client, limiter=limiter),
    ]
    if settings.crawl_include_company_site if include_site is None else include_site:
        sources.append(CompanySiteSource(http_client, limiter=limiter))
    return sources


class CrawlOrchestrator:
    """Runs every company-targeted adapter for each company, paced per origin."""

    def __init__(
        self,
        sources: Sequence[CompanySource],
        *,
        limiter: RateLimiter,
        token: CancellationToken | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._sources = list(sources)
        self._limiter = limiter
        self._token = token
        self._metrics = metrics_reporter or metrics

    async def crawl_company(self, company: CompanyRef) -> CrawlResult:
        """Collect jobs and signals for one company; adapter failures never abort the others."""
        jobs: list[JobPosting] = []
        signals: list[RawSignal] = []
        errors: list[str] = []
        found: dict[str, bool] = {}

        for source in self._sources:
            label = getattr(source, "label", source.name)
            if self._token is not None:
                self._token.raise_if_cancelled()
            try:
                await self._limiter.wait(source.origin(company), self._token)
                fetched = await source.fetch(company, token=self._token)
            except RunCancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "crawl.adapter_failed",
                    extra={"source": source.name, "domain": company.domain, "error": type(exc).__name__},
                )
                self._metrics.increment("crawl.adapter_failed", tags={"source": source.name})
                errors.append(f"{label}: {exc}")
                found[source.name] = False
                continue
            jobs.extend(fetched.jobs)
            signals.extend(fetched.signals)
            errors.extend(f"{label}: {message}" for message in fetched.errors)
            found[source.name] = fetched.found

        domain = normalize_domain(company.domain)
        return CrawlResult(
            company=company,
            jobs=jobs,
            signals=signals,
            hiring_velocity=analyze_hiring_velocity(jobs, domain) if jobs else None,
            sources=found,
            errors=errors,
        )

    async def batch_crawl_companies(
        self,
        companies: Sequence[CompanyRef],
        *,
        max_concurrent: int | None = None,
        on_result: ResultCallback | None = None,
    ) -> BatchCrawlResult:
        """Crawl companies in fixed windows, finishing each window before starting the next.

        Always returns one result per input company, in input order.
        `on_result` fires as each company finishes, so within a window it sees
        completion order. On cancellation every result delivered so far has
        already been passed to `on_result` before `RunCancelledError` propagates.
        """
        window = max_concurrent or settings.crawl_max_concurrent
        if window < 1:
            raise ValueError("max_concurrent must be >= 1")
        start = time.perf_counter()
        results: list[CrawlResult] = []

        for offset in range(0, len(companies), window):
            batch = companies[offset : offset + window]
            outcomes = await asyncio.gather(
                *(
                    self._crawl_and_notify(index, company, on_result)
                    for index, company in enumerate(batch, start=offset)
                ),
                return_exceptions=True,
            )
            cancelled: RunCancelledError | None = None
            for index, (company, outcome) in enumerate(zip(batch, outcomes, strict=True), start=offset):
                if isinstance(outcome, RunCancelledError):
                    cancelled = outcome
                    continue
                if isinstance(outcome, BaseException):
                    outcome = self._failed_result(company, outcome)
                    await self._notify(on_result, index, outcome)
                results.append(outcome)
            if cancelled is not None:
                raise cancelled

        duration_ms = (time.perf_counter() - start) * 1000
        stats = CrawlStats(
            companies_crawled=len(companies),
            total_jobs=sum(len(result.jobs) for result in results),
            total_signals=sum(len(result.signals) for result in results),
            errors=sum(1 for result in results if result.errors),
            duration_ms=round(duration_ms, 2),
        )
        self._metrics.timing("crawl.batch_duration_ms", duration_ms, tags={"companies": len(companies)})
        logger.info(
            "crawl.batch_complete",
            extra={
                "companies": stats.companies_crawled,
                "jobs": stats.total_jobs,
                "signals": stats.total_signals,
                "errors": stats.errors,
                "duration_ms": f"{duration_ms:.2f}",
            },
        )
        return BatchCrawlResult(results=results, stats=stats)

    async def _crawl_and_notify(
        self, index: int, company: CompanyRef, on_result: ResultCallback | None
    ) -> CrawlResult:
        try:
            result = await self.crawl_company(company)
        except RunCancelledError:
            raise
        except Exception as exc:
            result = self._failed_result(company, exc)
        await self._notify(on_result, index, result)
        return result

    @staticmethod
    def _failed_result(company: CompanyRef, exc: BaseException) -> CrawlResult:
        logger.error("crawl.company_failed", extra={"domain": company.domain, "error": type(exc).__name__})
        return CrawlResult(company=company, errors=[f"Crawl failed: {exc}"])

    @staticmethod
    async def _notify(callback: ResultCallback | None, index: int, result: CrawlResult) -> None:
        if callback is None:
            return
        try:
            outcome = callback(index, result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("crawl.callback_failed", extra={"domain": result.company.domain})


def filter_by_hiring_pattern(
    results: Iterable[CrawlResult],
    *,
    min_openings: int | None = None,
    departments: Sequence[str] | None = None,
    seniorities: Sequence[str] | None = None,
    tech_stack: Sequence[str] | None = None,
    growth_signals: Sequence[GrowthSignal] | None = None,
    pain_points: Sequence[str] | None = None,
) -> list[CrawlResult]:
    """Keep results satisfying every supplied criterion."""

    def matches(result: CrawlResult) -> bool:
        if min_openings is not None and len(result.jobs) < min_openings:
            return False
        if departments and not any(job.department in departments for job in result.jobs):
            return False
        if seniorities and not any(job.seniority in seniorities for job in result.jobs):
            return False
        if tech_stack:
            found = {canonical_tech(tech) for job in result.jobs for tech in job.tech_stack}
            if not any(canonical_tech(tech) in found for tech in tech_stack):
                return False
        if growth_signals:
            velocity = result.hiring_velocity
            growth = velocity.growth_signal if velocity else classify_growth(len(result.jobs))
            if growth not in growth_signals:
                return False
        if pain_points:
            found_points = {point.lower() for job in result.jobs for point in job.pain_points}
            if not any(point.lower() in found_points for point in pain_points):
                return False
        return True

    return [result for result in results if matches(result)]


def aggregate_crawl_signals(results: Iterable[CrawlResult], *, top_n: int = TOP_N) -> CrawlSignalSummary:
    """Run-level reporting maps; not used on the ranking path."""
    by_type: Counter[str] = Counter()
    by_company: dict[str, list[RawSignal]] = {}
    tech_counts: Counter[str] = Counter()
    pain_counts: Counter[str] = Counter()
    for result in results:
        by_company[result.company.domain] = list(result.signals)
        by_type.update(signal.signal_type.value for signal in result.signals)
        for job in result.jobs:
            tech_counts.update(job.tech_stack)
            pain_counts.update(job.pain_points)
    return CrawlSignalSummary(
        by_type=dict(by_type.most_common()),
        by_company=by_company,
        top_tech_stack=[TermCount(term=term, count=count) for term, count in tech_counts.most_common(top_n)],
        top_pain_points=[TermCount(term=term, count=count) for term, count in pain_counts.most_common(top_n)],
    )
