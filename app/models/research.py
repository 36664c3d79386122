"""Intent, plan, execution and ranking records for research runs."""

from __future__ import annotations

from datetime import datetime
from graphlib import CycleError, TopologicalSorter
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from app.models.crawl import Department, Seniority
from app.models.signal import AggregatedSignal, new_id, utc_now

StepType = Literal["crawl_jobs", "filter", "rank"]
StepStatus = Literal["pending", "running", "completed", "failed", "cancelled"]
ExecutionStatus = Literal["executing", "completed", "cancelled"]
ConfidenceBucket = Literal["high", "medium", "low"]
EventType = Literal["step_started", "step_progress", "step_completed", "step_failed", "step_cancelled", "result"]


class HiringCriteria(BaseModel):
    departments: list[Department] = Field(default_factory=list)
    seniorities: list[Seniority] = Field(default_factory=list)
    is_first_hire: bool = False
    min_openings: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResearchCriteria(BaseModel):
    company_type: str | None = None
    funding_stage: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)
    hiring_signals: HiringCriteria = Field(default_factory=HiringCriteria)
    recency_days: int | None = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ParsedIntent(BaseModel):
    """Structured interpretation of a free-text research query."""

    original_query: str
    understanding: str
    criteria: ResearchCriteria = Field(default_factory=ResearchCriteria)
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResearchStep(BaseModel):
    id: str = Field(..., min_length=1)
    type: StepType
    description: str
    source: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResearchPlan(BaseModel):
    """Immutable DAG of research steps."""

    id: str = Field(default_factory=new_id)
    intent: ParsedIntent
    steps: list[ResearchStep] = Field(..., min_length=1)
    estimated_seconds: int = 30
    created_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _validate_graph(self) -> ResearchPlan:
        ids = [step.id for step in self.steps]
        if len(set(ids)) != len(ids):
            raise ValueError("step ids must be unique")
        known = set(ids)
        for step in self.steps:
            missing = [dep for dep in step.depends_on if dep not in known]
            if missing:
                raise ValueError(f"step {step.id} depends on unknown steps: {', '.join(missing)}")
        try:
            self.sorter().prepare()
        except CycleError as exc:
            raise ValueError(f"plan contains a dependency cycle: {exc.args[1]}") from exc
        return self

    def sorter(self) -> TopologicalSorter[str]:
        """Fresh topological sorter over the step graph."""
        return TopologicalSorter({step.id: set(step.depends_on) for step in self.steps})

    def step(self, step_id: str) -> ResearchStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)


class StepState(BaseModel):
    status: StepStatus = "pending"
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class IntermediateResults(BaseModel):
    companies_found: int = 0
    signals_found: int = 0
    candidates_after_filter: int = 0

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResearchExecution(BaseModel):
    """Trace of a plan execution."""

    plan_id: str
    status: ExecutionStatus
    steps: dict[str, StepState]
    current_step: str | None = None
    intermediate_results: IntermediateResults = Field(default_factory=IntermediateResults)
    started_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class MatchedCriterion(BaseModel):
    criterion: str
    evidence: str
    source: str
    source_url: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class CandidateReasoning(BaseModel):
    """Ranked, presentation-ready outreach candidate."""

    company_domain: str
    company_name: str
    score: int = Field(..., ge=0, le=100)
    confidence: ConfidenceBucket
    matched_criteria: list[MatchedCriterion] = Field(default_factory=list)
    unmatched_criteria: list[str] = Field(default_factory=list)
    why_now: str
    reasoning: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class ProgressEvent(BaseModel):
    """Observational update streamed to run callers."""

    type: EventType
    step_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class ResearchSummary(BaseModel):
    total_found: int = 0
    qualified: int = 0
    top_signals: list[str] = Field(default_factory=list)
    common_tech_stack: list[str] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResearchResult(BaseModel):
    """Terminal artifact of a research run."""

    id: str = Field(default_factory=new_id)
    query: str
    intent: ParsedIntent
    execution: ResearchExecution
    candidates: list[CandidateReasoning] = Field(default_factory=list)
    signals: list[AggregatedSignal] = Field(default_factory=list)
    summary: ResearchSummary = Field(default_factory=ResearchSummary)
    completed_at: datetime = Field(default_factory=utc_now)
    duration_ms: float = 0.0

    model_config = ConfigDict(frozen=True, extra="forbid")
