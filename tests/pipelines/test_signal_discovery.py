from __future__ import annotations

from typing import Any

import pytest

from app.models.crawl import CompanyRef
from app.models.signal import RawSignal, SignalType, SourceType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.signals.discovery import (
    DEFAULT_AGENTS,
    FEED,
    SEARCH,
    AgentConfig,
    SignalDiscovery,
    parse_args,
)
from pipelines.sources.base import SourceFetch
from tests.helpers.metrics_stub import StubMetrics


def signal(company: str, signal_type: SignalType, source: SourceType, url: str) -> RawSignal:
    return RawSignal(
        signal_type=signal_type,
        source=source,
        source_url=url,
        company_name=company,
        headline=f"{company} {signal_type.value} news",
        confidence=0.7,
    )


class FakeSignalSource:
    def __init__(
        self,
        name: str,
        source_type: SourceType,
        companies: dict[SignalType, list[str]] | None = None,
        *,
        error: Exception | None = None,
        adapter_errors: list[str] | None = None,
    ) -> None:
        self.name = name
        self.source_type = source_type
        self.companies = companies or {}
        self.error = error
        self.adapter_errors = adapter_errors or []
        self.calls: list[dict[str, Any]] = []

    async def fetch(self, signal_type, *, token=None, max_results=None, queries=None, freshness_hours=None):
        self.calls.append(
            {"type": signal_type, "max_results": max_results, "queries": queries, "freshness_hours": freshness_hours}
        )
        if self.error is not None:
            raise self.error
        signals = [
            signal(company, signal_type, self.source_type, f"https://{self.name}.example.com/{company.lower()}")
            for company in self.companies.get(signal_type, [])
        ]
        return SourceFetch(signals=signals, errors=list(self.adapter_errors), found=bool(signals))


class FakeSiteSource:
    name = "company_site"
    label = "Company site"

    def origin(self, company: CompanyRef) -> str:
        return company.domain

    async def fetch(self, company: CompanyRef, *, token: CancellationToken | None = None) -> SourceFetch:
        return SourceFetch(
            signals=[
                signal(company.name, SignalType.FUNDING, SourceType.COMPANY_SITE, f"https://{company.domain}/news/1"),
                signal(company.name, SignalType.PARTNERSHIP, SourceType.COMPANY_SITE, f"https://{company.domain}/news/2"),
            ],
            found=True,
        )


FUNDING_AGENT = AgentConfig(
    name="funding",
    signal_types=(SignalType.FUNDING, SignalType.ACQUISITION),
    sources=(FEED, SEARCH, "company_site"),
    search_queries=("startup raises",),
    max_results=10,
    freshness_hours=24,
)
PARTNER_AGENT = AgentConfig(
    name="partners",
    signal_types=(SignalType.PARTNERSHIP,),
    sources=(FEED,),
    max_results=6,
)


def make_discovery(sources, **kwargs) -> SignalDiscovery:
    kwargs.setdefault("agents", [FUNDING_AGENT, PARTNER_AGENT])
    kwargs.setdefault("metrics_reporter", StubMetrics())
    return SignalDiscovery(sources, limiter=RateLimiter(0), **kwargs)


def test_default_agents_cover_every_signal_type():
    covered = {signal_type for agent in DEFAULT_AGENTS for signal_type in agent.signal_types}

    assert covered == set(SignalType)
    assert [agent.name for agent in DEFAULT_AGENTS] == [
        "funding-hunter",
        "growth-detector",
        "product-watcher",
        "leadership-tracker",
        "partnership-monitor",
    ]


@pytest.mark.asyncio
async def test_agent_splits_budget_between_feed_and_search():
    feed = FakeSignalSource("feed", SourceType.FEED, {SignalType.FUNDING: ["Acme"]})
    search = FakeSignalSource("search", SourceType.SEARCH, {SignalType.ACQUISITION: ["Globex"]})
    discovery = make_discovery({FEED: feed, SEARCH: search})

    run = await discovery.run_agent(FUNDING_AGENT)

    assert run.sources_queried == 4
    assert [call["type"] for call in feed.calls] == [SignalType.FUNDING, SignalType.ACQUISITION]
    assert feed.calls[0]["max_results"] == 5
    assert feed.calls[0]["queries"] is None
    assert search.calls[0] == {
        "type": SignalType.FUNDING,
        "max_results": 5,
        "queries": ["startup raises"],
        "freshness_hours": 24,
    }
    assert sorted(item.company_name for item in run.signals) == ["Acme", "Globex"]
    assert run.errors == []


@pytest.mark.asyncio
async def test_discover_merges_corroborating_sources_across_agents():
    feed = FakeSignalSource(
        "feed",
        SourceType.FEED,
        {SignalType.FUNDING: ["Acme"], SignalType.PARTNERSHIP: ["Initech"]},
    )
    search = FakeSignalSource("search", SourceType.SEARCH, {SignalType.FUNDING: ["Acme"]})
    stub = StubMetrics()
    discovery = make_discovery({FEED: feed, SEARCH: search}, metrics_reporter=stub)

    result = await discovery.discover()

    assert result.stats.agents_run == 2
    assert result.stats.total_raw_signals == 3
    assert result.stats.unique_signals == 2
    assert result.stats.by_type == {"funding": 1, "partnership": 1}
    acme = next(item for item in result.signals if item.company_name == "Acme")
    assert acme.source_count == 2
    assert stub.metric_names("timing").count("discovery.agent_duration_ms") == 2
    assert "discovery.duration_ms" in stub.metric_names("timing")


@pytest.mark.asyncio
async def test_discover_runs_only_agents_covering_requested_types():
    feed = FakeSignalSource(
        "feed",
        SourceType.FEED,
        {SignalType.FUNDING: ["Acme"], SignalType.PARTNERSHIP: ["Initech"]},
    )
    discovery = make_discovery({FEED: feed})

    result = await discovery.discover([SignalType.PARTNERSHIP])

    assert result.stats.agents_run == 1
    assert [call["type"] for call in feed.calls] == [SignalType.PARTNERSHIP]
    assert [item.company_name for item in result.signals] == ["Initech"]


@pytest.mark.asyncio
async def test_source_failures_are_collected_not_raised():
    feed = FakeSignalSource("feed", SourceType.FEED, error=RuntimeError("feed down"))
    search = FakeSignalSource(
        "search",
        SourceType.SEARCH,
        {SignalType.FUNDING: ["Acme"]},
        adapter_errors=["SEARCH_NOT_CONFIGURED"],
    )
    discovery = make_discovery({FEED: feed, SEARCH: search}, agents=[FUNDING_AGENT])

    result = await discovery.discover(enrich_domains=False)

    assert [item.company_name for item in result.signals] == ["Acme"]
    assert "funding/feed failed for funding: feed down" in result.errors
    assert "funding/search: SEARCH_NOT_CONFIGURED" in result.errors


@pytest.mark.asyncio
async def test_discover_truncates_to_max_results():
    feed = FakeSignalSource("feed", SourceType.FEED, {SignalType.FUNDING: ["Acme", "Globex", "Initech"]})
    discovery = make_discovery({FEED: feed}, agents=[FUNDING_AGENT])

    result = await discovery.discover(max_results=2)

    assert len(result.signals) == 2
    assert result.stats.total_raw_signals == 3
    assert result.stats.unique_signals == 2


@pytest.mark.asyncio
async def test_cancellation_propagates_from_sources():
    feed = FakeSignalSource("feed", SourceType.FEED, error=RunCancelledError())
    discovery = make_discovery({FEED: feed}, agents=[PARTNER_AGENT])

    with pytest.raises(RunCancelledError):
        await discovery.discover()


@pytest.mark.asyncio
async def test_research_companies_crawls_sites_and_filters_types():
    discovery = make_discovery({}, site_source=FakeSiteSource())
    companies = [CompanyRef(domain="acme.com", name="Acme"), CompanyRef(domain="globex.com", name="Globex")]

    signals = await discovery.research_companies(companies, [SignalType.PARTNERSHIP])

    assert sorted(item.company_name for item in signals) == ["Acme", "Globex"]
    assert {item.signal_type for item in signals} == {SignalType.PARTNERSHIP}


@pytest.mark.asyncio
async def test_research_companies_requires_site_source():
    with pytest.raises(ValueError):
        await make_discovery({}).research_companies([CompanyRef(domain="acme.com", name="Acme")])


def test_cli_parses_signal_types():
    args = parse_args(["--types", "funding", "hiring", "--max-results", "25"])

    assert args.types == ["funding", "hiring"]
    assert args.max_results == 25
