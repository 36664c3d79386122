"""Rule-based parsing of free-text research queries."""

from __future__ import annotations

import re

from app.models.crawl import Department, Seniority
from app.models.research import HiringCriteria, ParsedIntent, ResearchCriteria
from pipelines.signals.extraction import canonical_tech

INTENT_CONFIDENCE = 0.8
SPREE_MIN_OPENINGS = 10

COMPANY_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("B2B SaaS", ("b2b saas", "b2b software")),
    ("Fintech", ("fintech",)),
    ("Healthcare", ("healthcare", "healthtech")),
    ("E-commerce", ("e-commerce", "ecommerce")),
    ("AI/ML", ("ai ", "ai-", "artificial intelligence", "machine learning")),
)

INTENT_TECH_TERMS = (
    "react", "vue", "angular", "node", "python", "java", "golang", "ruby",
    "aws", "gcp", "azure", "kubernetes", "docker",
    "salesforce", "hubspot", "segment", "snowflake", "databricks",
    "openai", "langchain", "llm",
)
_INTENT_TECH_PATTERNS = tuple(
    (term, re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?:\.js|js)?(?![a-z0-9])")) for term in INTENT_TECH_TERMS
)

DEPARTMENT_PHRASES: tuple[tuple[Department, tuple[str, ...]], ...] = (
    ("sales", ("hiring sales", "sales team", "sales hire", "sales rep", "account executive")),
    ("engineering", ("hiring engineer", "engineering team", "hiring developer", "engineering hire")),
    ("marketing", ("hiring market", "marketing team", "marketing hire")),
    ("product", ("hiring product", "product team", "product manager")),
)

SENIORITY_PATTERNS: tuple[tuple[Seniority, re.Pattern[str]], ...] = (
    ("c_level", re.compile(r"\b(?:cto|ceo|cfo|coo|cro|chief)\b")),
    ("vp", re.compile(r"\b(?:vps?|vice presidents?)\b")),
    ("director", re.compile(r"\bdirectors?\b")),
    ("manager", re.compile(r"\b(?:managers?|head of)\b")),
)

FIRST_HIRE_PHRASES = ("first sales", "first hire", "first team", "first engineer", "founding team", "founding engineer")
SPREE_PHRASES = ("aggressively hiring", "hiring spree", "hiring aggressively")

RECENCY_RULES: tuple[tuple[int, tuple[str, ...]], ...] = (
    (30, ("recently", "just raised", "last month", "past month", "last 30 days")),
    (180, ("last 6 months", "past 6 months", "last six months", "past six months")),
    (365, ("this year", "last year", "past year", "last 12 months")),
)

FUNDING_STAGES = (("seed", "seed"), ("series a", "series_a"), ("series b", "series_b"), ("series c", "series_c"))


def _any_phrase(text: str, phrases: tuple[str, ...]) -> bool:
    return any(phrase in text for phrase in phrases)


def _recency_label(days: int) -> str:
    if days % 365 == 0:
        return "12 months" if days == 365 else f"{days // 365} years"
    if days % 30 == 0 and days > 30:
        return f"{days // 30} months"
    return f"{days} days"


def parse_query_intent(query: str) -> ParsedIntent:
    """Turn a query into structured criteria with keyword tests."""
    lowered = f" {query.lower()} "

    company_type = next((label for label, needles in COMPANY_TYPES if _any_phrase(lowered, needles)), None)

    funding_stage = [stage for needle, stage in FUNDING_STAGES if needle in lowered]
    if not funding_stage and _any_phrase(lowered, ("raised", "funding", "funded")):
        funding_stage = ["recent_funding"]

    tech_stack = list(
        dict.fromkeys(canonical_tech(term) for term, pattern in _INTENT_TECH_PATTERNS if pattern.search(lowered))
    )

    departments = [department for department, phrases in DEPARTMENT_PHRASES if _any_phrase(lowered, phrases)]
    seniorities = [seniority for seniority, pattern in SENIORITY_PATTERNS if pattern.search(lowered)]
    is_first_hire = _any_phrase(lowered, FIRST_HIRE_PHRASES)
    min_openings = SPREE_MIN_OPENINGS if _any_phrase(lowered, SPREE_PHRASES) else None
    recency_days = next((days for days, phrases in RECENCY_RULES if _any_phrase(lowered, phrases)), None)

    parts: list[str] = []
    if company_type:
        parts.append(f"{company_type} companies")
    if funding_stage:
        parts.append(f"with {' or '.join(funding_stage)} funding")
    if departments:
        parts.append(f"hiring in {', '.join(departments)}")
    if seniorities:
        parts.append(f"hiring {', '.join(seniorities)} roles")
    if is_first_hire:
        parts.append("building their first team")
    if min_openings:
        parts.append(f"with at least {min_openings} open roles")
    if tech_stack:
        parts.append(f"using {', '.join(tech_stack)}")
    if recency_days:
        parts.append(f"in the last {_recency_label(recency_days)}")
    understanding = (
        f"Looking for {', '.join(parts)}" if parts else "Looking for companies matching your criteria"
    )

    return ParsedIntent(
        original_query=query,
        understanding=understanding,
        criteria=ResearchCriteria(
            company_type=company_type,
            funding_stage=funding_stage,
            tech_stack=tech_stack,
            hiring_signals=HiringCriteria(
                departments=departments,
                seniorities=seniorities,
                is_first_hire=is_first_hire,
                min_openings=min_openings,
            ),
            recency_days=recency_days,
        ),
        confidence=INTENT_CONFIDENCE,
    )
