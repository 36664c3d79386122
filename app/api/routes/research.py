"""API endpoints for research runs and market-wide signal discovery."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.config import settings
from app.models.crawl import CompanyRef
from app.models.research import ResearchResult
from app.models.signal import SignalType
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.research.planner import ResearchPlanError
from pipelines.research.runner import run_research
from pipelines.signals.discovery import DiscoveryResult, run_discovery

router = APIRouter()
logger = logging.getLogger(__name__)

ResearchRunner = Callable[..., Awaitable[ResearchResult]]
DiscoveryRunner = Callable[..., Awaitable[DiscoveryResult]]


class ResearchRequest(BaseModel):
    """Query plus the companies to research."""

    query: str = Field(..., min_length=1, max_length=500)
    companies: list[CompanyRef] = Field(default_factory=list, max_length=200)
    timeout_seconds: float | None = Field(default=None, gt=0)


class DiscoverRequest(BaseModel):
    signal_types: list[SignalType] | None = None
    max_results: int = Field(default=100, ge=1, le=500)
    timeout_seconds: float | None = Field(default=None, gt=0)


def get_research_runner() -> ResearchRunner:
    return run_research


def get_discovery_runner() -> DiscoveryRunner:
    return run_discovery


@router.post("/research", response_model=ResearchResult)
async def create_research(
    payload: ResearchRequest,
    runner: ResearchRunner = Depends(get_research_runner),
) -> ResearchResult:
    """Run a research query synchronously and return the ranked result."""
    timeout = payload.timeout_seconds or settings.research_timeout_seconds
    try:
        return await runner(payload.query, payload.companies, token=CancellationToken.with_timeout(timeout))
    except ResearchPlanError as exc:
        logger.error("research.api_error", extra={"code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


@router.post("/signals/discover", response_model=DiscoveryResult)
async def discover_signals(
    payload: DiscoverRequest,
    runner: DiscoveryRunner = Depends(get_discovery_runner),
) -> DiscoveryResult:
    """Run the discovery agents covering the requested signal types."""
    try:
        return await runner(
            payload.signal_types,
            max_results=payload.max_results,
            timeout_seconds=payload.timeout_seconds,
        )
    except RunCancelledError as exc:
        logger.error("discovery.api_error", extra={"code": exc.code})
        raise HTTPException(status_code=_map_error_code(exc.code), detail=str(exc)) from exc


def _map_error_code(code: str) -> int:
    if code == "INVALID_PLAN":
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if code == "RUN_CANCELLED":
        return status.HTTP_504_GATEWAY_TIMEOUT
    return status.HTTP_500_INTERNAL_SERVER_ERROR
