from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.models.research import ResearchPlan, ResearchStep
from pipelines.research.intent import parse_query_intent
from pipelines.research.planner import ResearchPlanError, build_plan, create_research_plan


def test_plan_has_three_ordered_steps_parameterized_from_intent():
    intent = parse_query_intent("B2B SaaS hiring their first sales team using HubSpot")

    plan = create_research_plan(intent)

    assert [step.id for step in plan.steps] == ["crawl_jobs", "filter_candidates", "rank_candidates"]
    assert [step.type for step in plan.steps] == ["crawl_jobs", "filter", "rank"]
    assert plan.step("filter_candidates").depends_on == ["crawl_jobs"]
    assert plan.step("rank_candidates").depends_on == ["filter_candidates"]
    assert plan.step("filter_candidates").params["tech_stack"] == ["hubspot"]
    assert plan.step("filter_candidates").params["departments"] == ["sales"]
    assert plan.step("filter_candidates").params["is_first_hire"] is True
    assert list(plan.sorter().static_order()) == ["crawl_jobs", "filter_candidates", "rank_candidates"]


def test_cyclic_plan_is_rejected():
    intent = parse_query_intent("anything")
    steps = [
        ResearchStep(id="a", type="crawl_jobs", description="a", depends_on=["b"]),
        ResearchStep(id="b", type="filter", description="b", depends_on=["a"]),
    ]

    with pytest.raises(ResearchPlanError) as excinfo:
        build_plan(intent, steps)
    assert excinfo.value.code == "INVALID_PLAN"
    assert "cycle" in str(excinfo.value)


def test_unknown_dependency_is_rejected():
    intent = parse_query_intent("anything")
    steps = [ResearchStep(id="rank", type="rank", description="rank", depends_on=["missing"])]

    with pytest.raises(ResearchPlanError, match="unknown steps: missing"):
        build_plan(intent, steps)


def test_duplicate_step_ids_are_rejected():
    intent = parse_query_intent("anything")
    steps = [
        ResearchStep(id="crawl", type="crawl_jobs", description="one"),
        ResearchStep(id="crawl", type="crawl_jobs", description="two"),
    ]

    with pytest.raises(ValidationError):
        ResearchPlan(intent=intent, steps=steps)


def test_unknown_step_lookup_raises_key_error():
    plan = create_research_plan(parse_query_intent("anything"))

    with pytest.raises(KeyError):
        plan.step("nope")
