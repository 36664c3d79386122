from __future__ import annotations

from app.models.crawl import CompanyRef, CrawlResult, JobPosting
from pipelines.crawler.orchestrator import analyze_hiring_velocity
from pipelines.research.intent import parse_query_intent
from pipelines.research.ranker import rank_candidates, reason_about_candidate


def job(index: int, **overrides) -> JobPosting:
    fields = {
        "id": f"lever_{index}",
        "company_domain": "acme.com",
        "company_name": "Acme",
        "title": "Account Executive",
        "department": "sales",
        "source_type": "lever",
        "source_url": f"https://jobs.lever.co/acme/{index}",
    }
    fields.update(overrides)
    return JobPosting(**fields)


def crawl_result(jobs: list[JobPosting], name: str = "Acme", domain: str = "acme.com") -> CrawlResult:
    return CrawlResult(
        company=CompanyRef(domain=domain, name=name),
        jobs=jobs,
        hiring_velocity=analyze_hiring_velocity(jobs, domain) if jobs else None,
    )


def test_strong_match_scores_high_with_evidence():
    intent = parse_query_intent("B2B SaaS hiring their first sales team using HubSpot")
    jobs = [job(0, tech_stack=["hubspot"], pain_points=["building from scratch"])]
    jobs += [job(index) for index in range(1, 4)]

    candidate = reason_about_candidate(crawl_result(jobs), intent)

    # 50 base + 15 department + 10 tech + 15 first team + 5 pain points; stable velocity adds nothing
    assert candidate.score == 95
    assert candidate.confidence == "high"
    criteria = [match.criterion for match in candidate.matched_criteria]
    assert criteria == ["Hiring sales", "Uses hubspot", "Building first team", "Growth indicators"]
    assert candidate.matched_criteria[0].source_url == "https://jobs.lever.co/acme/0"
    assert candidate.unmatched_criteria == []
    assert candidate.why_now == "Acme is building their first team"
    assert "All specified criteria met." in candidate.reasoning


def test_aggressive_hiring_adds_twenty_and_score_is_clamped():
    intent = parse_query_intent("hiring their first sales team using HubSpot")
    jobs = [job(index, tech_stack=["hubspot"], pain_points=["founding team"]) for index in range(25)]

    candidate = reason_about_candidate(crawl_result(jobs), intent)

    assert candidate.score == 100
    assert candidate.why_now.startswith("Acme is aggressively hiring with 25 open roles")


def test_missing_criteria_are_listed_and_confidence_low():
    intent = parse_query_intent("companies hiring their first engineering team using Kubernetes")
    jobs = [job(0)]

    candidate = reason_about_candidate(crawl_result(jobs), intent)

    assert candidate.score == 50
    assert candidate.confidence == "low"
    assert candidate.unmatched_criteria == [
        "Not hiring in engineering",
        "No evidence of kubernetes",
        "No first-team hiring found",
    ]
    assert candidate.why_now == "Acme is actively hiring and shows buying intent"


def test_medium_confidence_band():
    intent = parse_query_intent("companies with a sales team using HubSpot")
    jobs = [job(0, tech_stack=["hubspot"])]

    candidate = reason_about_candidate(crawl_result(jobs), intent)

    assert candidate.score == 75
    assert len(candidate.matched_criteria) == 2
    assert candidate.confidence == "medium"


def test_rank_orders_by_descending_score():
    intent = parse_query_intent("companies with a sales team")
    weak = crawl_result([job(0, department="engineering")], name="Globex", domain="globex.com")
    strong = crawl_result([job(index) for index in range(12)])

    ranked = rank_candidates([weak, strong], intent)

    assert [candidate.company_name for candidate in ranked] == ["Acme", "Globex"]
    assert ranked[0].score > ranked[1].score
