from __future__ import annotations

from datetime import UTC, datetime

import httpx
import pytest

from app.models.crawl import CompanyRef
from pipelines.rate_limiter import RateLimiter
from pipelines.sources.lever import LeverSource

POSTINGS = [
    {
        "id": "abc",
        "text": "Account Executive",
        "hostedUrl": "https://jobs.lever.co/acme/abc",
        "categories": {"team": "Sales", "location": "New York"},
        "workplaceType": "remote",
        "createdAt": 1736510400000,
        "descriptionPlain": "Be our first sales hire. We use Salesforce and HubSpot.",
        "lists": [{"text": "Requirements", "content": "<li>3+ years closing</li><li>SaaS experience</li>"}],
    }
]


def _source(handler) -> LeverSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LeverSource(client, limiter=RateLimiter(0), retries=1, retry_delay=0)


@pytest.mark.asyncio
async def test_fetch_parses_lever_postings():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "api.lever.co"
        assert request.url.path == "/v0/postings/acme"
        if request.method == "HEAD":
            return httpx.Response(200)
        assert request.url.params["mode"] == "json"
        return httpx.Response(200, json=POSTINGS)

    fetched = await _source(handler).fetch(CompanyRef(domain="acme.com", name="Acme"))

    job = fetched.jobs[0]
    assert job.id == "lever_abc"
    assert job.department == "sales"
    assert job.seniority == "mid"
    assert job.remote is True
    assert job.location == "New York"
    assert job.tech_stack == ["salesforce", "hubspot"]
    assert job.pain_points == ["building from scratch"]
    assert job.requirements == ["3+ years closing", "SaaS experience"]
    assert job.posted_at == datetime(2025, 1, 10, 12, tzinfo=UTC)
    assert job.source_url == "https://jobs.lever.co/acme/abc"
    assert fetched.signals[0].id == "sig_lever_abc"


@pytest.mark.asyncio
async def test_slug_lookup_tries_hyphenless_variant():
    checked: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        slug = request.url.path.rsplit("/", 1)[-1]
        if request.method == "HEAD":
            checked.append(slug)
            return httpx.Response(200 if slug == "acmerobotics" else 404)
        return httpx.Response(200, json=[])

    fetched = await _source(handler).fetch(CompanyRef(domain="acme-robotics.io", name="Acme Robotics"))

    assert checked == ["acme-robotics", "acmerobotics"]
    assert fetched.found is True
    assert fetched.jobs == []


@pytest.mark.asyncio
async def test_follow_up_requests_wait_on_the_limiter():
    log: list[str] = []

    class RecordingLimiter(RateLimiter):
        async def wait(self, origin, token=None):
            log.append(f"wait {origin}")
            await super().wait(origin, token)

    def handler(request: httpx.Request) -> httpx.Response:
        slug = request.url.path.rsplit("/", 1)[-1]
        log.append(f"{request.method} {slug}")
        if request.method == "HEAD":
            return httpx.Response(200 if slug == "acmerobotics" else 404)
        return httpx.Response(200, json=[])

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    source = LeverSource(client, limiter=RecordingLimiter(0), retries=1, retry_delay=0)

    await source.fetch(CompanyRef(domain="acme-robotics.io", name="Acme Robotics"))

    assert log == [
        "HEAD acme-robotics",
        "wait lever.co",
        "HEAD acmerobotics",
        "wait lever.co",
        "GET acmerobotics",
    ]


@pytest.mark.asyncio
async def test_no_board_returns_empty():
    fetched = await _source(lambda request: httpx.Response(404)).fetch(CompanyRef(domain="acme.com", name="Acme"))

    assert fetched.found is False
    assert fetched.errors == []
