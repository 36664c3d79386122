"""Shared flow for public job-board APIs: slug probing, pacing and normalization."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from app.models.crawl import CompanyRef, JobPosting
from app.models.signal import RawSignal, SignalEntities, SignalType, SourceType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.sources.base import SourceFetch, normalize_domain, slug_candidates
from pipelines.sources.http import JSON_HEADERS, SourceFetchError, request_with_retries

logger = logging.getLogger("pipelines.sources.job_board")

JOB_SIGNAL_CONFIDENCE = 0.95


def job_to_signal(job: JobPosting) -> RawSignal:
    """One hiring observation per posting."""
    location = f" in {job.location}" if job.location else ""
    snippet = f"{job.company_name} is hiring a {job.title}{location}."
    if job.pain_points:
        snippet = f"{snippet} Signals: {', '.join(job.pain_points)}"
    return RawSignal(
        id=f"sig_{job.id}",
        signal_type=SignalType.HIRING,
        source=SourceType.JOB_BOARD,
        source_url=job.source_url,
        company_name=job.company_name,
        domain=job.company_domain,
        headline=f"Hiring: {job.title}",
        snippet=snippet,
        raw_content=job.description[:2000] or None,
        entities=SignalEntities(roles=[job.title], locations=[job.location] if job.location else []),
        published_at=job.posted_at,
        confidence=JOB_SIGNAL_CONFIDENCE,
    )


class JobBoardSource(ABC):
    """Template for boards that expose postings under a per-company slug."""

    name: str = "job_board"
    host: str = ""
    label: str = "Job board"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        limiter: RateLimiter | None = None,
        retries: int | None = None,
        retry_delay: float = 0.5,
    ) -> None:
        self._client = http_client
        self._limiter = limiter
        self._retries = retries
        self._retry_delay = retry_delay

    def origin(self, company: CompanyRef) -> str:
        return self.host

    @abstractmethod
    def lookup_url(self, slug: str) -> str:
        ...

    @abstractmethod
    def postings_url(self, slug: str) -> str:
        ...

    @abstractmethod
    def parse_postings(self, payload: Any, company: CompanyRef) -> list[JobPosting]:
        ...

    async def find_board(self, domain: str, *, token: CancellationToken | None = None) -> str | None:
        """Return the first candidate slug the board answers for."""
        for index, slug in enumerate(slug_candidates(domain)):
            # The orchestrator gates the first request to this board.
            if index and self._limiter is not None:
                await self._limiter.wait(self.host, token)
            try:
                response = await request_with_retries(
                    self._client,
                    "HEAD",
                    self.lookup_url(slug),
                    token=token,
                    retries=1,
                    headers=JSON_HEADERS,
                )
            except SourceFetchError as exc:
                logger.debug("job_board.lookup_failed", extra={"source": self.name, "slug": slug, "code": exc.code})
                continue
            if response.is_success:
                return slug
        return None

    async def fetch(self, company: CompanyRef, *, token: CancellationToken | None = None) -> SourceFetch:
        domain = normalize_domain(company.domain)
        try:
            slug = await self.find_board(domain, token=token)
            if slug is None:
                return SourceFetch.empty()
            if self._limiter is not None:
                await self._limiter.wait(self.host, token)
            response = await request_with_retries(
                self._client,
                "GET",
                self.postings_url(slug),
                token=token,
                retries=self._retries,
                base_delay=self._retry_delay,
                headers=JSON_HEADERS,
            )
        except RunCancelledError:
            raise
        except SourceFetchError as exc:
            logger.warning("job_board.unavailable", extra={"source": self.name, "domain": domain, "code": exc.code})
            return SourceFetch(errors=[str(exc)], found=True)

        if response.status_code == 404:
            return SourceFetch.empty()
        if response.status_code >= 400:
            return SourceFetch(errors=[f"{self.label} API error: {response.status_code}"], found=True)

        try:
            jobs = self.parse_postings(response.json(), company)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "job_board.parse_failed",
                extra={"source": self.name, "domain": domain, "error": type(exc).__name__},
            )
            return SourceFetch(errors=[f"{self.label} returned malformed postings"], found=True)

        logger.info("job_board.fetched", extra={"source": self.name, "domain": domain, "jobs": len(jobs)})
        return SourceFetch(signals=[job_to_signal(job) for job in jobs], jobs=jobs, found=True)


def require_sequence(payload: Any, key: str | None = None) -> Sequence[Mapping[str, Any]]:
    items = payload.get(key) if key is not None and isinstance(payload, Mapping) else payload
    if not isinstance(items, list):
        raise ValueError(f"expected a list of postings{f' under {key!r}' if key else ''}")
    if not all(isinstance(item, Mapping) for item in items):
        raise TypeError("postings must be JSON objects")
    return items
