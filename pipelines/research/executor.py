"""Executes research plans in dependency order and streams progress."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.models.crawl import CompanyRef, CrawlResult
from app.models.research import (
    CandidateReasoning,
    EventType,
    IntermediateResults,
    ParsedIntent,
    ProgressEvent,
    ResearchExecution,
    ResearchPlan,
    ResearchStep,
    StepState,
)
from app.models.signal import AggregatedSignal, utc_now
from app.observability.metrics import MetricsReporter, metrics
from pipelines.cancellation import CancellationToken, RunCancelledError
from pipelines.crawler.orchestrator import CrawlOrchestrator, filter_by_hiring_pattern
from pipelines.research.ranker import rank_candidates
from pipelines.signals.aggregation import dedupe_and_aggregate

logger = logging.getLogger("pipelines.research.executor")

ProgressCallback = Callable[[ProgressEvent], Awaitable[None] | None]

STEP_CATEGORIES = {"crawl_jobs": "searching", "filter": "analyzing", "rank": "reasoning"}


class ProgressEmitter:
    """Delivers progress events to an optional callback without letting it affect control flow."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback

    async def emit(self, event_type: EventType, step_id: str | None = None, **data: Any) -> None:
        if self._callback is None:
            return
        event = ProgressEvent(type=event_type, step_id=step_id, data=data)
        try:
            outcome = self._callback(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("research.progress_callback_failed", extra={"event": event_type, "step_id": step_id})


@dataclass
class ExecutionContext:
    """Intermediate results accumulated while the plan runs."""

    companies: Sequence[CompanyRef]
    intent: ParsedIntent
    crawl_results: list[CrawlResult] = field(default_factory=list)
    active_results: list[CrawlResult] = field(default_factory=list)
    filtered_results: list[CrawlResult] = field(default_factory=list)
    candidates: list[CandidateReasoning] = field(default_factory=list)
    signals: list[AggregatedSignal] = field(default_factory=list)
    raw_signal_count: int = 0


@dataclass(frozen=True)
class PlanOutcome:
    execution: ResearchExecution
    context: ExecutionContext


StepHandler = Callable[[ResearchStep, ExecutionContext], Awaitable[None]]


class PlanExecutor:
    """Runs plan steps once their dependencies have finished.

    A failed step is recorded and downstream steps still run on whatever
    partial data exists. Cancellation marks the interrupted step and every
    step not yet started as `cancelled`.
    """

    def __init__(
        self,
        crawler: CrawlOrchestrator,
        *,
        on_update: ProgressCallback | None = None,
        token: CancellationToken | None = None,
        max_concurrent: int | None = None,
        metrics_reporter: MetricsReporter | None = None,
    ) -> None:
        self._crawler = crawler
        self._emitter = ProgressEmitter(on_update)
        self._token = token
        self._max_concurrent = max_concurrent
        self._metrics = metrics_reporter or metrics
        self._handlers: dict[str, StepHandler] = {
            "crawl_jobs": self._crawl_jobs,
            "filter": self._filter,
            "rank": self._rank,
        }

    async def execute(self, plan: ResearchPlan, companies: Sequence[CompanyRef]) -> PlanOutcome:
        started_at = utc_now()
        context = ExecutionContext(companies=companies, intent=plan.intent)
        states: dict[str, StepState] = {step.id: StepState() for step in plan.steps}
        current: list[str] = []
        sorter = plan.sorter()
        sorter.prepare()
        running: dict[asyncio.Task[None], str] = {}

        while sorter.is_active():
            for step_id in sorter.get_ready():
                if self._is_cancelled():
                    continue
                current.append(step_id)
                task = asyncio.create_task(self._run_step(plan.step(step_id), context, states))
                running[task] = step_id
            if not running:
                break
            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                sorter.done(running.pop(task))

        cancelled = self._is_cancelled() or any(state.status == "cancelled" for state in states.values())
        if cancelled:
            for step_id, state in states.items():
                if state.status == "pending":
                    states[step_id] = StepState(status="cancelled", error="Run cancelled before step started")
                    await self._emitter.emit("step_cancelled", step_id, status="cancelled")
            logger.warning("research.cancelled", extra={"plan_id": plan.id})

        execution = ResearchExecution(
            plan_id=plan.id,
            status="cancelled" if cancelled else "completed",
            steps=states,
            current_step=current[-1] if current else None,
            intermediate_results=IntermediateResults(
                companies_found=len(context.active_results),
                signals_found=context.raw_signal_count,
                candidates_after_filter=len(context.filtered_results),
            ),
            started_at=started_at,
            completed_at=utc_now(),
        )
        return PlanOutcome(execution=execution, context=context)

    def _is_cancelled(self) -> bool:
        return self._token is not None and self._token.cancelled

    async def _run_step(self, step: ResearchStep, context: ExecutionContext, states: dict[str, StepState]) -> None:
        category = STEP_CATEGORIES.get(step.type, "searching")
        step_started = utc_now()
        states[step.id] = StepState(status="running", started_at=step_started)
        await self._emitter.emit(
            "step_started",
            step.id,
            id=step.id,
            type=category,
            status="running",
            title=step.description,
            description=f"Executing {step.type}...",
            progress=0,
        )
        start = time.perf_counter()
        try:
            if self._token is not None:
                self._token.raise_if_cancelled()
            await self._handlers[step.type](step, context)
        except RunCancelledError as exc:
            states[step.id] = self._finished("cancelled", step_started, str(exc))
            await self._emitter.emit(
                "step_cancelled", step.id, id=step.id, type=category, status="cancelled", title=step.description
            )
            return
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error(
                "research.step_failed",
                extra={"step_id": step.id, "step_type": step.type, "error": type(exc).__name__},
                exc_info=exc,
            )
            self._metrics.increment("research.step_failed", tags={"step": step.type})
            states[step.id] = self._finished("failed", step_started, message)
            await self._emitter.emit(
                "step_failed",
                step.id,
                id=step.id,
                type=category,
                status="failed",
                title=step.description,
                description=message,
            )
            return

        duration_ms = (time.perf_counter() - start) * 1000
        self._metrics.timing("research.step_duration_ms", duration_ms, tags={"step": step.type})
        states[step.id] = self._finished("completed", step_started)
        await self._emitter.emit(
            "step_completed",
            step.id,
            id=step.id,
            type=category,
            status="completed",
            title=step.description,
            description="Completed",
            progress=100,
        )

    @staticmethod
    def _finished(status: str, started_at: datetime, error: str | None = None) -> StepState:
        return StepState(status=status, started_at=started_at, completed_at=utc_now(), error=error)

    async def _crawl_jobs(self, step: ResearchStep, context: ExecutionContext) -> None:
        total = len(context.companies)
        delivered: dict[int, CrawlResult] = {}

        async def record(index: int, result: CrawlResult) -> None:
            delivered[index] = result
            await self._emitter.emit(
                "step_progress",
                step.id,
                progress=round(len(delivered) / total * 100) if total else 100,
                detail=f"Crawled {result.company.name}: {len(result.jobs)} jobs found",
            )

        try:
            batch = await self._crawler.batch_crawl_companies(
                context.companies,
                max_concurrent=self._max_concurrent,
                on_result=record,
            )
        except RunCancelledError:
            self._store_crawl([delivered[index] for index in sorted(delivered)], context)
            raise
        self._store_crawl(batch.results, context)

    @staticmethod
    def _store_crawl(results: Sequence[CrawlResult], context: ExecutionContext) -> None:
        context.crawl_results = list(results)
        context.active_results = [result for result in results if result.jobs]
        raw_signals = [signal for result in results for signal in result.signals]
        context.raw_signal_count = len(raw_signals)
        context.signals = dedupe_and_aggregate(raw_signals)

    async def _filter(self, step: ResearchStep, context: ExecutionContext) -> None:
        params = step.params
        context.filtered_results = filter_by_hiring_pattern(
            context.active_results,
            min_openings=params.get("min_openings"),
            departments=params.get("departments") or None,
            seniorities=params.get("seniorities") or None,
            tech_stack=params.get("tech_stack") or None,
        )

    async def _rank(self, step: ResearchStep, context: ExecutionContext) -> None:
        context.candidates = rank_candidates(context.filtered_results, context.intent)
