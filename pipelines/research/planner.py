"""Turns a parsed intent into a research plan."""

from __future__ import annotations

from pydantic import ValidationError

from app.models.research import ParsedIntent, ResearchPlan, ResearchStep

ESTIMATED_SECONDS = 30


class ResearchPlanError(RuntimeError):
    """Raised when a plan cannot be assembled into a valid step graph."""

    def __init__(self, message: str, code: str = "INVALID_PLAN") -> None:
        super().__init__(message)
        self.code = code


def create_research_plan(intent: ParsedIntent) -> ResearchPlan:
    """Three-stage plan: crawl job boards, filter by criteria, rank survivors."""
    criteria = intent.criteria
    hiring = criteria.hiring_signals
    steps = [
        ResearchStep(
            id="crawl_jobs",
            type="crawl_jobs",
            description="Scanning job boards for hiring signals",
            source="greenhouse,lever,company_site",
            params={"departments": list(hiring.departments), "min_openings": hiring.min_openings},
        ),
        ResearchStep(
            id="filter_candidates",
            type="filter",
            description="Filtering companies by your criteria",
            params={
                "tech_stack": list(criteria.tech_stack),
                "departments": list(hiring.departments),
                "seniorities": list(hiring.seniorities),
                "min_openings": hiring.min_openings,
                "is_first_hire": hiring.is_first_hire,
            },
            depends_on=["crawl_jobs"],
        ),
        ResearchStep(
            id="rank_candidates",
            type="rank",
            description="Analyzing and ranking candidates",
            depends_on=["filter_candidates"],
        ),
    ]
    return build_plan(intent, steps)


def build_plan(intent: ParsedIntent, steps: list[ResearchStep]) -> ResearchPlan:
    try:
        return ResearchPlan(intent=intent, steps=steps, estimated_seconds=ESTIMATED_SECONDS)
    except ValidationError as exc:
        raise ResearchPlanError(f"Invalid research plan: {exc.errors()[0]['msg']}") from exc
