from __future__ import annotations

from contextlib import contextmanager

from app.api.routes.research import get_discovery_runner, get_research_runner
from app.main import app
from app.models.crawl import CompanyRef
from app.models.signal import SignalType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.rate_limiter import RateLimiter
from pipelines.research.planner import ResearchPlanError
from pipelines.research.runner import run_research
from pipelines.signals.discovery import DiscoveryResult, DiscoveryStats
from pipelines.sources.base import SourceFetch
from tests.helpers.metrics_stub import StubMetrics


class EmptyBoard:
    name = "empty_board"
    label = "Empty board"

    def origin(self, company: CompanyRef) -> str:
        return "empty-board.test"

    async def fetch(self, company: CompanyRef, *, token: CancellationToken | None = None) -> SourceFetch:
        return SourceFetch.empty()


@contextmanager
def _override(dependency, provider):
    app.dependency_overrides[dependency] = lambda: provider
    try:
        yield
    finally:
        app.dependency_overrides.pop(dependency, None)


def test_health_endpoints(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["search"] in {"configured", "not configured"}


def test_research_returns_structured_result(client):
    calls: list[dict] = []

    async def runner(query, companies, **kwargs):
        calls.append({"query": query, "companies": companies, **kwargs})
        return await run_research(
            query,
            companies,
            token=kwargs["token"],
            sources=[EmptyBoard()],
            limiter=RateLimiter(0),
            metrics_reporter=StubMetrics(),
        )

    payload = {
        "query": "B2B SaaS hiring their first sales team",
        "companies": [{"domain": "acme.com", "name": "Acme"}],
        "timeout_seconds": 30,
    }
    with _override(get_research_runner, runner):
        response = client.post("/api/research", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["query"] == payload["query"]
    assert body["execution"]["status"] == "completed"
    assert body["intent"]["criteria"]["hiring_signals"]["departments"] == ["sales"]
    assert body["candidates"] == []
    assert calls[0]["companies"] == [CompanyRef(domain="acme.com", name="Acme")]
    assert isinstance(calls[0]["token"], CancellationToken)


def test_research_plan_error_maps_to_422(client):
    async def runner(query, companies, **kwargs):
        raise ResearchPlanError("Invalid research plan: plan contains a dependency cycle")

    with _override(get_research_runner, runner):
        response = client.post("/api/research", json={"query": "anything", "companies": []})

    assert response.status_code == 422
    assert "dependency cycle" in response.json()["detail"]


def test_research_rejects_empty_query(client):
    response = client.post("/api/research", json={"query": "", "companies": []})

    assert response.status_code == 422


def test_discover_passes_filters_to_runner(client):
    calls: list[dict] = []

    async def runner(signal_types, **kwargs):
        calls.append({"signal_types": signal_types, **kwargs})
        return DiscoveryResult(stats=DiscoveryStats(agents_run=1))

    with _override(get_discovery_runner, runner):
        response = client.post("/api/signals/discover", json={"signal_types": ["funding"], "max_results": 5})

    assert response.status_code == 200
    assert response.json()["stats"]["agents_run"] == 1
    assert calls == [{"signal_types": [SignalType.FUNDING], "max_results": 5, "timeout_seconds": None}]


def test_discover_timeout_maps_to_504(client):
    async def runner(signal_types, **kwargs):
        raise RunCancelledError("Research run cancelled: deadline exceeded")

    with _override(get_discovery_runner, runner):
        response = client.post("/api/signals/discover", json={})

    assert response.status_code == 504


def test_discover_rejects_unknown_signal_type(client):
    response = client.post("/api/signals/discover", json={"signal_types": ["rumor"]})

    assert response.status_code == 422
