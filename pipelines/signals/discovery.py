"""Market-wide signal discovery agents."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import httpx
from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from app.clients.exa import ExaClient
from app.config import settings
from app.models.crawl import CompanyRef
from app.models.signal import AggregatedSignal, RawSignal, SignalType
from app.observability.metrics import MetricsReporter, metrics
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.crawler.orchestrator import CrawlOrchestrator
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.aggregation import dedupe_and_aggregate
from pipelines.signals.enrichment import DomainResolver, enrich_with_domains
from pipelines.sources.base import SignalSource
from pipelines.sources.company_site import CompanySiteSource
from pipelines.sources.exa_search import ExaSearchSource
from pipelines.sources.http import build_client
from pipelines.sources.news_feed import NewsFeedSource

logger = logging.getLogger("pipelines.signals.discovery")

FEED = "feed"
SEARCH = "search"
COMPANY_SITE = "company_site"


@dataclass(frozen=True)
class AgentConfig:
    name: str
    signal_types: tuple[SignalType, ...]
    sources: tuple[str, ...]
    search_queries: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    max_results: int = 20
    freshness_hours: int = 72


DEFAULT_AGENTS: tuple[AgentConfig, ...] = (
    AgentConfig(
        name="funding-hunter",
        signal_types=(SignalType.FUNDING, SignalType.ACQUISITION),
        sources=(FEED, SEARCH),
        search_queries=("startup funding round announcement", "company raises series funding"),
        keywords=("raises", "funding", "series", "investment", "acquired"),
        max_results=30,
        freshness_hours=48,
    ),
    AgentConfig(
        name="growth-detector",
        signal_types=(SignalType.HIRING, SignalType.EXPANSION),
        sources=(FEED, SEARCH, COMPANY_SITE),
        search_queries=("company hiring expansion", "startup team growth"),
        keywords=("hiring", "growing", "expansion", "new office"),
        max_results=30,
        freshness_hours=72,
    ),
    AgentConfig(
        name="product-watcher",
        signal_types=(SignalType.PRODUCT_LAUNCH, SignalType.TECH_ADOPTION),
        sources=(FEED, SEARCH),
        search_queries=("company launches new product feature", "startup product announcement"),
        keywords=("launch", "announces", "introducing", "new feature"),
        max_results=30,
        freshness_hours=48,
    ),
    AgentConfig(
        name="leadership-tracker",
        signal_types=(SignalType.LEADERSHIP_CHANGE,),
        sources=(FEED, SEARCH),
        search_queries=("company appoints new CEO CTO executive", "startup hires new leadership"),
        keywords=("appoints", "hires", "joins as", "new CEO", "new CTO"),
        max_results=20,
        freshness_hours=72,
    ),
    AgentConfig(
        name="partnership-monitor",
        signal_types=(SignalType.PARTNERSHIP,),
        sources=(FEED, SEARCH),
        search_queries=("strategic partnership announcement", "company integration partnership"),
        keywords=("partners with", "partnership", "integration", "collaboration"),
        max_results=20,
        freshness_hours=72,
    ),
)


@dataclass
class AgentRun:
    agent: str
    signals: list[RawSignal] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    sources_queried: int = 0
    duration_ms: float = 0.0


class DiscoveryStats(BaseModel):
    agents_run: int = 0
    total_raw_signals: int = 0
    unique_signals: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    duration_ms: float = 0.0

    model_config = ConfigDict(frozen=True, extra="forbid")


class DiscoveryResult(BaseModel):
    signals: list[AggregatedSignal] = Field(default_factory=list)
    stats: DiscoveryStats = Field(default_factory=DiscoveryStats)
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


def default_signal_sources(
    http_client: httpx.AsyncClient,
    limiter: RateLimiter,
    *,
    exa_client: ExaClient | None = None,
) -> dict[str, SignalSource]:
    return {
        FEED: NewsFeedSource(http_client, limiter=limiter),
        SEARCH: ExaSearchSource(exa_client, limiter=limiter, base_url=settings.exa_base_url),
    }


class SignalDiscovery:
    """Runs discovery agents against the query-driven sources and merges what they find.

    Company sites are only crawled through `research_companies`, which needs
    an explicit company list.
    """

    def __init__(
        self,
        sources: Mapping[str, SignalSource],
        *,
        limiter: RateLimiter,
        site_source: CompanySiteSource | None = None,
        resolver: DomainResolver | None = None,
        agents: Sequence[AgentConfig] = DEFAULT_AGENTS,
        token: CancellationToken | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._sources = dict(sources)
        self._limiter = limiter
        self._site_source = site_source
        self._resolver = resolver
        self._agents = list(agents)
        self._token = token
        self._metrics = metrics_reporter or metrics

    @property
    def agents(self) -> list[AgentConfig]:
        return list(self._agents)

    async def run_agent(self, config: AgentConfig) -> AgentRun:
        start = time.perf_counter()
        run = AgentRun(agent=config.name)
        per_type_search = max(1, config.max_results // max(len(config.signal_types), 1))

        for signal_type in config.signal_types:
            for source_name in config.sources:
                source = self._sources.get(source_name)
                if source is None:
                    continue
                if source_name == FEED:
                    options = {"max_results": max(1, config.max_results // 2)}
                else:
                    options = {
                        "max_results": per_type_search,
                        "queries": list(config.search_queries) or None,
                        "freshness_hours": config.freshness_hours,
                    }
                try:
                    fetched = await source.fetch(signal_type, token=self._token, **options)
                except RunCancelledError:
                    raise
                except Exception as exc:
                    logger.warning(
                        "discovery.source_failed",
                        extra={"agent": config.name, "source": source_name, "error": type(exc).__name__},
                    )
                    run.errors.append(f"{config.name}/{source_name} failed for {signal_type.value}: {exc}")
                    continue
                run.sources_queried += 1
                run.signals.extend(fetched.signals)
                run.errors.extend(f"{config.name}/{source_name}: {message}" for message in fetched.errors)

        run.duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self._metrics.timing("discovery.agent_duration_ms", run.duration_ms, tags={"agent": config.name})
        logger.info(
            "discovery.agent_completed",
            extra={"agent": config.name, "signals": len(run.signals), "errors": len(run.errors)},
        )
        return run

    async def discover(
        self,
        signal_types: Sequence[SignalType] | None = None,
        max_results: int | None = None,
        enrich_domains: bool = True,
    ) -> DiscoveryResult:
        """Run every agent covering the requested types and return ranked, merged signals."""
        start = time.perf_counter()
        wanted = set(signal_types) if signal_types else None
        agents = [agent for agent in self._agents if wanted is None or wanted.intersection(agent.signal_types)]

        outcomes = await asyncio.gather(*(self.run_agent(agent) for agent in agents), return_exceptions=True)
        raw: list[RawSignal] = []
        errors: list[str] = []
        for agent, outcome in zip(agents, outcomes, strict=True):
            if isinstance(outcome, RunCancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error("discovery.agent_failed", extra={"agent": agent.name, "error": type(outcome).__name__})
                errors.append(f"{agent.name} failed: {outcome}")
                continue
            raw.extend(outcome.signals)
            errors.extend(outcome.errors)

        if wanted is not None:
            raw = [signal for signal in raw if signal.signal_type in wanted]
        aggregated = dedupe_and_aggregate(raw)
        if enrich_domains:
            aggregated = await enrich_with_domains(aggregated, self._resolver)
        limit = settings.discovery_max_results if max_results is None else max_results
        aggregated = aggregated[:limit]

        duration_ms = (time.perf_counter() - start) * 1000
        stats = DiscoveryStats(
            agents_run=len(agents),
            total_raw_signals=len(raw),
            unique_signals=len(aggregated),
            by_type=dict(Counter(signal.signal_type.value for signal in aggregated).most_common()),
            duration_ms=round(duration_ms, 2),
        )
        self._metrics.timing("discovery.duration_ms", duration_ms, tags={"agents": len(agents)})
        logger.info(
            "discovery.completed",
            extra={"agents": stats.agents_run, "raw": stats.total_raw_signals, "unique": stats.unique_signals},
        )
        return DiscoveryResult(signals=aggregated, stats=stats, errors=errors)

    async def research_companies(
        self,
        companies: Sequence[CompanyRef],
        signal_types: Sequence[SignalType] | None = None,
        *,
        max_concurrent: int | None = None,
    ) -> list[AggregatedSignal]:
        """Crawl the given companies' own sites and aggregate what they announce."""
        if self._site_source is None:
            raise ValueError("research_companies requires a company site source")
        crawler = CrawlOrchestrator(
            [self._site_source], limiter=self._limiter, token=self._token, metrics_reporter=self._metrics
        )
        batch = await crawler.batch_crawl_companies(companies, max_concurrent=max_concurrent)
        wanted = set(signal_types) if signal_types else None
        raw = [
            signal
            for result in batch.results
            for signal in result.signals
            if wanted is None or signal.signal_type in wanted
        ]
        return dedupe_and_aggregate(raw)


def build_discovery(
    http_client: httpx.AsyncClient,
    *,
    exa_client: ExaClient | None = None,
    resolver: DomainResolver | None = None,
    limiter: RateLimiter | None = None,
    token: CancellationToken | None = None,
    site_signal_types: Sequence[SignalType] | None = None,
) -> SignalDiscovery:
    limiter = limiter or RateLimiter()
    return SignalDiscovery(
        default_signal_sources(http_client, limiter, exa_client=exa_client),
        limiter=limiter,
        site_source=CompanySiteSource(http_client, limiter=limiter, target_signals=site_signal_types),
        resolver=resolver,
        token=token,
    )


async def run_discovery(
    signal_types: Sequence[SignalType] | None,
    *,
    max_results: int | None = None,
    timeout_seconds: float | None = None,
) -> DiscoveryResult:
    token = CancellationToken.with_timeout(timeout_seconds)
    async with build_client() as http_client:
        exa_client = ExaClient.from_settings(http_client=http_client)
        discovery = build_discovery(http_client, exa_client=exa_client, token=token)
        return await discovery.discover(signal_types, max_results=max_results)


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Discover buying signals across news feeds and web search.")
    parser.add_argument(
        "--types",
        nargs="*",
        choices=[signal_type.value for signal_type in SignalType],
        default=None,
        help="Signal types to discover (all agents when omitted).",
    )
    parser.add_argument("--max-results", type=int, default=None, help="Maximum aggregated signals to keep.")
    parser.add_argument("--timeout", type=float, default=None, help="Cancel discovery after this many seconds.")
    parser.add_argument("--output", type=Path, default=None, help="Where to write the result JSON.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for signal discovery."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv or sys.argv[1:])
    signal_types = [SignalType(value) for value in args.types] if args.types else None
    try:
        result = asyncio.run(
            run_discovery(signal_types, max_results=args.max_results, timeout_seconds=args.timeout)
        )
    except RunCancelledError as exc:
        logger.error("Signal discovery stopped: %s (code=%s)", exc, exc.code)
        return 1

    payload = result.model_dump_json(indent=2)
    if args.output is None:
        sys.stdout.write(payload + "\n")
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload + "\n", encoding="utf-8")
        logger.info("Wrote %s signals to %s", len(result.signals), args.output)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
