"""Scores crawl results against a parsed intent and explains the score."""

from __future__ import annotations

from collections.abc import Iterable

from app.models.crawl import CrawlResult
from app.models.research import CandidateReasoning, ConfidenceBucket, MatchedCriterion, ParsedIntent
from pipelines.signals.extraction import FIRST_TEAM_PAIN_POINTS, canonical_tech

BASE_SCORE = 50
DEPARTMENT_BONUS = 15
TECH_BONUS = 10
AGGRESSIVE_BONUS = 20
MODERATE_BONUS = 10
FIRST_TEAM_BONUS = 15
PAIN_POINT_BONUS = 5


def _confidence_bucket(matched: int, score: int) -> ConfidenceBucket:
    if matched >= 3 and score >= 75:
        return "high"
    if matched <= 1 or score < 50:
        return "low"
    return "medium"


def _is_first_team_point(point: str) -> bool:
    lowered = point.lower()
    return lowered in FIRST_TEAM_PAIN_POINTS or "first" in lowered or "founding" in lowered


def reason_about_candidate(result: CrawlResult, intent: ParsedIntent) -> CandidateReasoning:
    criteria = intent.criteria
    hiring = criteria.hiring_signals
    matched: list[MatchedCriterion] = []
    unmatched: list[str] = []
    score = BASE_SCORE

    if hiring.departments:
        wanted = "/".join(hiring.departments)
        matching_jobs = [job for job in result.jobs if job.department in hiring.departments]
        if matching_jobs:
            score += DEPARTMENT_BONUS
            matched.append(
                MatchedCriterion(
                    criterion=f"Hiring {wanted}",
                    evidence=f"{len(matching_jobs)} open {wanted} positions",
                    source=matching_jobs[0].source_type,
                    source_url=matching_jobs[0].source_url,
                )
            )
        else:
            unmatched.append(f"Not hiring in {wanted}")

    if criteria.tech_stack:
        found = {canonical_tech(tech) for job in result.jobs for tech in job.tech_stack}
        overlap = [tech for tech in criteria.tech_stack if canonical_tech(tech) in found]
        if overlap:
            score += TECH_BONUS
            matched.append(
                MatchedCriterion(
                    criterion=f"Uses {', '.join(overlap)}",
                    evidence="Found in job requirements",
                    source="job postings",
                )
            )
        else:
            unmatched.append(f"No evidence of {', '.join(criteria.tech_stack)}")

    velocity = result.hiring_velocity
    if velocity is not None:
        if velocity.growth_signal == "aggressive":
            score += AGGRESSIVE_BONUS
            matched.append(
                MatchedCriterion(
                    criterion="Aggressive hiring",
                    evidence=f"{velocity.total_openings} open positions",
                    source="hiring analysis",
                )
            )
        elif velocity.growth_signal == "moderate":
            score += MODERATE_BONUS

    first_team_evidence: str | None = None
    if hiring.is_first_hire:
        for job in result.jobs:
            point = next((point for point in job.pain_points if _is_first_team_point(point)), None)
            if point:
                first_team_evidence = point
                score += FIRST_TEAM_BONUS
                matched.append(
                    MatchedCriterion(
                        criterion="Building first team",
                        evidence=f'Job description mentions "{point}"',
                        source=job.source_type,
                        source_url=job.source_url,
                    )
                )
                break
        else:
            unmatched.append("No first-team hiring found")

    pain_points = list(dict.fromkeys(point for job in result.jobs for point in job.pain_points))
    if pain_points:
        score += PAIN_POINT_BONUS
        matched.append(
            MatchedCriterion(
                criterion="Growth indicators",
                evidence=", ".join(pain_points[:3]),
                source="job descriptions",
            )
        )

    score = max(0, min(100, score))
    confidence = _confidence_bucket(len(matched), score)

    name = result.company.name
    reasons: list[str] = []
    if velocity is not None and velocity.growth_signal == "aggressive":
        reasons.append(f"aggressively hiring with {velocity.total_openings} open roles")
    if first_team_evidence:
        reasons.append("building their first team")
    if "scaling challenges" in pain_points:
        reasons.append("facing scaling challenges")
    why_now = (
        f"{name} is {' and '.join(reasons)}" if reasons else f"{name} is actively hiring and shows buying intent"
    )
    gaps = f"Potential gaps: {', '.join(unmatched)}." if unmatched else "All specified criteria met."
    reasoning = f"{name} scored {score}/100 based on {len(matched)} matched criteria. {why_now}. {gaps}"

    return CandidateReasoning(
        company_domain=result.company.domain,
        company_name=name,
        score=score,
        confidence=confidence,
        matched_criteria=matched,
        unmatched_criteria=unmatched,
        why_now=why_now,
        reasoning=reasoning,
    )


def rank_candidates(results: Iterable[CrawlResult], intent: ParsedIntent) -> list[CandidateReasoning]:
    """Score every result and order by descending score (stable for ties)."""
    candidates = [reason_about_candidate(result, intent) for result in results]
    candidates.sort(key=lambda candidate: candidate.score, reverse=True)
    return candidates
