"""Entry point for a research run: parse, plan, execute, summarize."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path

import httpx
from pydantic import TypeAdapter, ValidationError

from app.config import settings
from app.models.crawl import CompanyRef
from app.models.research import ResearchResult, ResearchSummary
from app.observability.metrics import MetricsReporter, metrics
from pipelines.cancellation import CancellationToken
from pipelines.crawler.orchestrator import CrawlOrchestrator, aggregate_crawl_signals, default_company_sources
from pipelines.rate_limiter import RateLimiter
from pipelines.research.executor import ExecutionContext, PlanExecutor, ProgressCallback, ProgressEmitter
from pipelines.research.intent import parse_query_intent
from pipelines.research.planner import ResearchPlanError, create_research_plan
from pipelines.sources.base import CompanySource
from pipelines.sources.http import build_client

logger = logging.getLogger("pipelines.research.runner")

TOP_SIGNAL_TYPES = 5
TOP_TECH_TERMS = 10

_COMPANY_LIST = TypeAdapter(list[CompanyRef])


class ResearchInputError(RuntimeError):
    """Raised when the CLI cannot load its company list."""

    def __init__(self, message: str, code: str = "INVALID_INPUT") -> None:
        super().__init__(message)
        self.code = code


def build_summary(context: ExecutionContext) -> ResearchSummary:
    """Totals cover every company with postings; signal types and tech cover the qualified ones."""
    report = aggregate_crawl_signals(context.filtered_results)
    common_tech = [entry.term for entry in report.top_tech_stack[:TOP_TECH_TERMS]]
    high_confidence = sum(1 for candidate in context.candidates if candidate.confidence == "high")

    insights = [f"Found {len(context.active_results)} companies with active job postings"]
    if high_confidence:
        insights.append(f"{high_confidence} high-confidence matches")
    if common_tech:
        insights.append(f"Most common tech: {', '.join(common_tech[:3])}")

    return ResearchSummary(
        total_found=len(context.active_results),
        qualified=len(context.filtered_results),
        top_signals=list(report.by_type)[:TOP_SIGNAL_TYPES],
        common_tech_stack=common_tech,
        insights=insights,
    )


async def run_research(
    query: str,
    companies: Sequence[CompanyRef],
    on_update: ProgressCallback | None = None,
    *,
    token: CancellationToken | None = None,
    http_client: httpx.AsyncClient | None = None,
    sources: Sequence[CompanySource] | None = None,
    limiter: RateLimiter | None = None,
    max_concurrent: int | None = None,
    max_candidates: int | None = None,
    metrics_reporter: MetricsReporter | None = None,
) -> ResearchResult:
    """Run one research query over a list of companies.

    Source and step failures surface in the execution trace instead of
    raising, so callers always receive a well-formed result. A cancelled or
    timed-out run returns what had been gathered when it stopped.
    """
    start = time.perf_counter()
    reporter = metrics_reporter or metrics
    emitter = ProgressEmitter(on_update)
    token = token or CancellationToken.with_timeout(settings.research_timeout_seconds)
    limiter = limiter or RateLimiter()

    await emitter.emit("step_started", "parse", id="parse", type="thinking", title="Understanding your request", progress=0)
    intent = parse_query_intent(query)
    await emitter.emit(
        "step_completed",
        "parse",
        id="parse",
        type="thinking",
        title="Understanding your request",
        description=intent.understanding,
        progress=100,
    )

    await emitter.emit("step_started", "plan", id="plan", type="thinking", title="Planning research approach", progress=0)
    plan = create_research_plan(intent)
    await emitter.emit(
        "step_completed",
        "plan",
        id="plan",
        type="thinking",
        title="Planning research approach",
        description=f"{len(plan.steps)} research steps planned",
        progress=100,
    )

    owns_client = http_client is None and sources is None
    client = http_client if http_client is not None else (build_client() if owns_client else None)
    try:
        if sources is None:
            sources = default_company_sources(client, limiter)
        crawler = CrawlOrchestrator(sources, limiter=limiter, token=token, metrics_reporter=reporter)
        executor = PlanExecutor(
            crawler,
            on_update=on_update,
            token=token,
            max_concurrent=max_concurrent,
            metrics_reporter=reporter,
        )
        outcome = await executor.execute(plan, companies)
    finally:
        if owns_client and client is not None:
            await client.aclose()

    context = outcome.context
    limit = settings.research_max_candidates if max_candidates is None else max_candidates
    duration_ms = (time.perf_counter() - start) * 1000
    result = ResearchResult(
        query=query,
        intent=intent,
        execution=outcome.execution,
        candidates=context.candidates[:limit],
        signals=context.signals,
        summary=build_summary(context),
        duration_ms=round(duration_ms, 2),
    )
    reporter.timing("research.run_duration_ms", duration_ms, tags={"status": outcome.execution.status})
    logger.info(
        "research.completed",
        extra={
            "status": outcome.execution.status,
            "companies": len(companies),
            "candidates": len(result.candidates),
            "duration_ms": f"{duration_ms:.2f}",
        },
    )
    await emitter.emit("result", None, result=result.model_dump(mode="json"))
    return result


def load_companies(path: Path) -> list[CompanyRef]:
    """Read a JSON list of `{"domain": ..., "name": ...}` objects."""
    try:
        return _COMPANY_LIST.validate_json(path.read_bytes())
    except FileNotFoundError as exc:
        raise ResearchInputError(f"Company list not found: {path}", code="INPUT_NOT_FOUND") from exc
    except ValidationError as exc:
        raise ResearchInputError(f"Company list is invalid: {exc.errors()[0]['msg']}") from exc


def _log_event(event) -> None:
    if event.type == "result":
        return
    logger.info("research.progress", extra={"event": event.type, "step_id": event.step_id, **event.data})


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Research companies matching a free-text query.")
    parser.add_argument("--query", required=True, help="What to look for, e.g. 'B2B SaaS hiring their first sales team'.")
    parser.add_argument("--companies", type=Path, required=True, help="JSON file listing companies to research.")
    parser.add_argument("--output", type=Path, default=None, help="Where to write the result JSON (stdout when omitted).")
    parser.add_argument("--timeout", type=float, default=None, help="Cancel the run after this many seconds.")
    parser.add_argument("--max-concurrent", type=int, default=None, help="Companies crawled per window.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for a single research run."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv or sys.argv[1:])
    try:
        companies = load_companies(args.companies)
        token = CancellationToken.with_timeout(
            args.timeout if args.timeout is not None else settings.research_timeout_seconds
        )
        result = asyncio.run(
            run_research(
                args.query,
                companies,
                _log_event,
                token=token,
                max_concurrent=args.max_concurrent,
            )
        )
    except (ResearchInputError, ResearchPlanError) as exc:
        logger.error("Research run failed: %s (code=%s)", exc, exc.code)
        return 1

    payload = result.model_dump_json(indent=2)
    if args.output is None:
        sys.stdout.write(payload + "\n")
    else:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload + "\n", encoding="utf-8")
        logger.info("Wrote research result to %s", args.output)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
