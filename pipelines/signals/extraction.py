"""Keyword and regex heuristics shared by the source adapters.

Everything here is best effort. The patterns both miss and over-match, which is
why every signal carries a confidence score that downstream code discounts.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol

from bs4 import BeautifulSoup

from app.models.crawl import Department, Seniority
from app.models.signal import SignalEntities, SignalType

TECH_TERMS = (
    # Languages
    "javascript", "typescript", "python", "java", "golang", "ruby", "rust", "c++", "c#", "php",
    "swift", "kotlin", "scala",
    # Frontend
    "react", "vue", "angular", "next.js", "svelte", "tailwind",
    # Backend
    "node.js", "nodejs", "express", "django", "flask", "fastapi", "rails", "spring",
    # Databases
    "postgresql", "postgres", "mysql", "mongodb", "redis", "elasticsearch", "dynamodb",
    # Cloud
    "aws", "gcp", "azure", "kubernetes", "docker", "terraform", "vercel", "netlify",
    # Tools
    "github", "gitlab", "jira", "figma", "datadog", "sentry",
    # Data
    "snowflake", "databricks", "spark", "kafka", "airflow", "dbt",
    # CRM/Sales
    "salesforce", "hubspot", "segment", "amplitude", "mixpanel", "intercom", "zendesk",
    # AI
    "openai", "langchain", "llm", "pytorch", "tensorflow",
)


# Spellings folded onto one stored term, for job text and research queries alike.
TECH_ALIASES = {
    "node": "node.js",
    "nodejs": "node.js",
    "postgres": "postgresql",
    "k8s": "kubernetes",
    "nextjs": "next.js",
}


def canonical_tech(term: str) -> str:
    lowered = term.strip().lower()
    return TECH_ALIASES.get(lowered, lowered)


def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9+#])", re.IGNORECASE)


_TECH_PATTERNS = tuple((term, _term_pattern(term)) for term in TECH_TERMS)

PAIN_POINT_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"scale\s+(?:from|to)\s+\d+", re.IGNORECASE), "scaling challenges"),
    (re.compile(r"scaling\s+(?:our|the)\s+(?:team|platform|infrastructure)", re.IGNORECASE), "scaling challenges"),
    (re.compile(r"growing\s+(?:team|company|rapidly)", re.IGNORECASE), "rapid growth"),
    (re.compile(r"first\s+(?:hire|engineer|sales|marketing|designer)", re.IGNORECASE), "building from scratch"),
    (re.compile(r"founding\s+(?:engineer|team|member|designer|account)", re.IGNORECASE), "founding team"),
    (
        re.compile(r"improve\s+(?:our|the)\s+(?:process|system|infrastructure)", re.IGNORECASE),
        "process improvement needed",
    ),
    (re.compile(r"technical\s+debt", re.IGNORECASE), "technical debt"),
    (re.compile(r"legacy\s+(?:system|code|infrastructure)", re.IGNORECASE), "legacy systems"),
    (re.compile(r"greenfield", re.IGNORECASE), "greenfield project"),
    (re.compile(r"\b0\s+to\s+1\b", re.IGNORECASE), "zero to one"),
    (re.compile(r"series\s+[a-d]\b", re.IGNORECASE), "startup stage"),
    (re.compile(r"enterprise\s+(?:customer|client|sale)", re.IGNORECASE), "enterprise motion"),
)

FIRST_TEAM_PAIN_POINTS = ("building from scratch", "founding team")

_DEPARTMENT_RULES: tuple[tuple[Department, tuple[str, ...]], ...] = (
    ("engineering", ("engineer", "develop", "tech", "infrastructure", "data", "security")),
    ("sales", ("sales", "account", "business dev", "revenue")),
    ("marketing", ("market", "growth", "brand", "content", "communications")),
    ("product", ("product", "design", "ux")),
    ("operations", ("operation", "support", "success", "customer")),
    ("finance", ("finance", "legal", "accounting")),
    ("hr", ("people", "hr", "recruit", "talent")),
)

_SENIORITY_RULES: tuple[tuple[Seniority, re.Pattern[str]], ...] = (
    ("intern", re.compile(r"\bintern(?:ship)?\b", re.IGNORECASE)),
    ("c_level", re.compile(r"\b(?:chief|cto|ceo|cfo|coo|cro|cmo)\b", re.IGNORECASE)),
    ("vp", re.compile(r"\b(?:vp|svp|evp|vice president)\b", re.IGNORECASE)),
    ("director", re.compile(r"\bdirector\b", re.IGNORECASE)),
    ("manager", re.compile(r"\b(?:manager|head of)\b", re.IGNORECASE)),
    ("lead", re.compile(r"\b(?:staff|principal|lead|iii)\b", re.IGNORECASE)),
    ("senior", re.compile(r"\b(?:senior|sr\.?|ii)(?=\s|$|,)", re.IGNORECASE)),
    ("entry", re.compile(r"\b(?:junior|jr\.?|associate|entry|graduate|new grad)\b", re.IGNORECASE)),
)

SIGNAL_PATTERNS: dict[SignalType, tuple[re.Pattern[str], ...]] = {
    SignalType.FUNDING: (
        re.compile(r"rais(?:es|ed|ing|e)?\s+[$€£][\d.,]+\s*(?:million|billion|mn|bn|m|b)\b", re.IGNORECASE),
        re.compile(r"series\s+[a-z]\s+(?:funding|round|investment)", re.IGNORECASE),
        re.compile(r"seed\s+(?:funding|round|investment)", re.IGNORECASE),
        re.compile(r"secur(?:es|ed|ing|e)\s+(?:[$€£][\d.,]+\s*\w*\s+(?:in\s+)?)?(?:funding|investment)", re.IGNORECASE),
    ),
    SignalType.HIRING: (
        re.compile(r"hiring\s+(?:spree|wave|expansion|push)", re.IGNORECASE),
        re.compile(r"(?:adding|growing|hiring)\s+\d+\s+(?:new\s+)?(?:employees|engineers|people|staff)", re.IGNORECASE),
        re.compile(r"open(?:ing|s)?\s+\d+\s+(?:new\s+)?(?:positions|roles|jobs)", re.IGNORECASE),
    ),
    SignalType.PRODUCT_LAUNCH: (
        re.compile(r"launch(?:es|ed|ing)?\s+(?:its\s+|a\s+)?(?:new\s+)?(?:product|feature|platform|app)", re.IGNORECASE),
        re.compile(r"announc(?:es|ed|ing)\s+(?:its\s+|a\s+)?(?:new\s+)?(?:product|feature|platform)", re.IGNORECASE),
        re.compile(r"introduc(?:es|ed|ing)\s+(?:a\s+)?new\s+", re.IGNORECASE),
        re.compile(r"now\s+(?:generally\s+)?available", re.IGNORECASE),
    ),
    SignalType.LEADERSHIP_CHANGE: (
        re.compile(r"appoint(?:s|ed)?\s+(?:\w+\s+){0,3}?(?:as\s+)?(?:new\s+)?(?:ceo|cto|cfo|coo|vp|director|chief)", re.IGNORECASE),
        re.compile(r"hire(?:s|d)?\s+(?:new\s+)?(?:ceo|cto|cfo|coo|vp|director|chief)", re.IGNORECASE),
        re.compile(r"joins?\s+as\s+(?:new\s+)?(?:ceo|cto|cfo|coo|vp|director|chief)", re.IGNORECASE),
        re.compile(r"names?\s+(?:\w+\s+){0,3}?(?:as\s+)?(?:new\s+)?(?:ceo|cto|cfo|coo|vp|director|chief)", re.IGNORECASE),
    ),
    SignalType.EXPANSION: (
        re.compile(r"expand(?:s|ed|ing)?\s+(?:to|into)\s+", re.IGNORECASE),
        re.compile(r"open(?:s|ed|ing)?\s+(?:a\s+|its\s+)?(?:new\s+)?(?:office|headquarters|hq)", re.IGNORECASE),
        re.compile(r"enter(?:s|ed|ing)?\s+(?:the\s+)?(?:\w+\s+)?market", re.IGNORECASE),
    ),
    SignalType.PARTNERSHIP: (
        re.compile(r"partner(?:s|ed|ing)?\s+with", re.IGNORECASE),
        re.compile(r"strategic\s+(?:partnership|alliance)", re.IGNORECASE),
        re.compile(r"integrat(?:es|ed|ing)\s+with", re.IGNORECASE),
        re.compile(r"collaborat(?:es|ed|ing)\s+with", re.IGNORECASE),
    ),
    SignalType.ACQUISITION: (
        re.compile(r"acquir(?:es|ed|ing)\b", re.IGNORECASE),
        re.compile(r"acquisition\s+of", re.IGNORECASE),
        re.compile(r"merg(?:es|ed|ing)\s+with", re.IGNORECASE),
        re.compile(r"(?:has\s+been|gets?)\s+acquired", re.IGNORECASE),
    ),
    SignalType.TECH_ADOPTION: (
        re.compile(r"adopt(?:s|ed|ing)\s+(?:new\s+)?(?:technology|platform|tool)", re.IGNORECASE),
        re.compile(r"migrat(?:es|ed|ing)\s+to", re.IGNORECASE),
        re.compile(r"implement(?:s|ed|ing)\s+(?:a\s+)?new\s+", re.IGNORECASE),
        re.compile(r"powered\s+by", re.IGNORECASE),
    ),
}

_COMPANY_VERBS = (
    r"raises?|raised|secures?|secured|lands?|closes?|launch(?:es|ed)?|announces?|announced|appoints?|appointed|"
    r"names?|named|hires?|hired|expands?|expanded|opens?|partners?|partnered|teams up|acquires?|acquired|"
    r"adopts?|adopted|introduces?|unveils?|debuts?|migrates?|integrates?"
)
COMPANY_NAME_PATTERNS = (
    re.compile(rf"^([A-Z][A-Za-z0-9&.'\- ]*?)\s+(?i:{_COMPANY_VERBS})\b"),
    re.compile(r"^([A-Z][A-Za-z0-9&.'\- ]*?),\s+(?i:a|an|the)\s+"),
)
_COMPANY_URL_PATTERN = re.compile(r"/(?:company|companies|org|organization|business)/([a-z0-9-]+)", re.IGNORECASE)
MAX_COMPANY_NAME_LENGTH = 50

AMOUNT_PATTERN = re.compile(r"[$€£]\s?[\d.,]+\s*(?:million|billion|mn|bn|m|b|k)\b", re.IGNORECASE)
INVESTOR_PATTERN = re.compile(
    r"(?i:led by|from|including|and)\s+((?:[A-Z][\w&'.-]*\s+){1,4}?(?:Capital|Ventures|Partners))\b"
)
ROLE_PATTERN = re.compile(
    r"(?:hiring|seeking|looking for)\s+((?:[A-Za-z-]+\s+){0,4}?(?:engineer|developer|manager|director|vp|lead))s?\b",
    re.IGNORECASE,
)
PERSON_PATTERN = re.compile(
    r"(?i:appoints?|appointed|hires?|hired|names?|named|welcomes?|welcomed|promotes?|promoted)\s+([A-Z][a-z]+\s+[A-Z][a-z]+)"
)
LOCATION_PATTERN = re.compile(
    r"(?i:expands?\s+(?:to|into)|expanding\s+(?:to|into)|opens?\s+(?:a\s+|an\s+|its\s+)?(?:new\s+)?(?:office|headquarters|hq)\s+in)"
    r"\s+(?:the\s+)?([A-Z][A-Za-z]+(?:\s+[A-Z][A-Za-z]+)?)"
)
SITE_ROLE_PATTERN = re.compile(
    r"(?:hiring|open[^.]{0,40}?positions?)[^.]{0,80}?(?:engineer|developer|designer|manager|director|vp|lead)",
    re.IGNORECASE,
)
_SITE_ROLE_PREFIX = re.compile(r"^(?:we(?:'re| are)\s+)?(?:hiring|open[^:]*?positions?)\s*(?:for|:)?\s*", re.IGNORECASE)
_LEADING_ARTICLE = re.compile(r"^(?:a|an|the|our|new)\s+", re.IGNORECASE)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        cleaned = " ".join(value.split())
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        ordered.append(cleaned)
    return ordered


def html_to_text(markup: str | None) -> str:
    """Collapse an HTML fragment or document to visible text."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return " ".join(soup.get_text(" ", strip=True).split())


def html_list_items(markup: str | None, *, limit: int = 20) -> list[str]:
    """Text of the `<li>` elements in an HTML fragment."""
    if not markup:
        return []
    soup = BeautifulSoup(markup, "html.parser")
    items = (" ".join(item.get_text(" ", strip=True).split()) for item in soup.find_all("li"))
    return _unique(items)[:limit]


def extract_tech_stack(text: str) -> list[str]:
    if not text:
        return []
    return _unique(canonical_tech(term) for term, pattern in _TECH_PATTERNS if pattern.search(text))


def extract_pain_points(text: str) -> list[str]:
    if not text:
        return []
    return _unique(point for pattern, point in PAIN_POINT_PATTERNS if pattern.search(text))


def map_department(name: str | None) -> Department:
    if not name:
        return "other"
    lowered = name.lower()
    for department, needles in _DEPARTMENT_RULES:
        if any(needle in lowered for needle in needles):
            return department
    return "other"


def detect_seniority(title: str) -> Seniority:
    for seniority, pattern in _SENIORITY_RULES:
        if pattern.search(title or ""):
            return seniority
    return "mid"


def detect_signal_types(title: str, content: str = "") -> list[SignalType]:
    """Every signal type whose patterns match the item, in declaration order."""
    text = f"{title} {content}"
    return [
        signal_type
        for signal_type, patterns in SIGNAL_PATTERNS.items()
        if any(pattern.search(text) for pattern in patterns)
    ]


def extract_company_name(title: str, url: str | None = None) -> str | None:
    """Attribute a headline to a company, or None when it cannot be attributed."""
    headline = (title or "").strip()
    for pattern in COMPANY_NAME_PATTERNS:
        match = pattern.match(headline)
        if match:
            name = match.group(1).strip(" .,-")
            if name and len(name) < MAX_COMPANY_NAME_LENGTH:
                return name
    if url:
        match = _COMPANY_URL_PATTERN.search(url)
        if match:
            return " ".join(part.capitalize() for part in match.group(1).split("-") if part)
    return None


def extract_hiring_roles(text: str) -> list[str]:
    """Role phrases from careers-page copy."""
    roles = []
    for match in SITE_ROLE_PATTERN.finditer(text or ""):
        role = _SITE_ROLE_PREFIX.sub("", match.group(0)).strip(" :,-")
        role = _LEADING_ARTICLE.sub("", role)
        if role:
            roles.append(role)
    return _unique(roles)


class EntityExtractor(Protocol):
    """Pluggable entity extraction capability."""

    def extract(self, text: str, signal_type: SignalType | None = None) -> SignalEntities:
        ...


class RegexEntityExtractor:
    """Default extractor built on the regex heuristics above.

    With a signal type only the entities relevant to it are pulled out;
    without one every pattern runs.
    """

    _FIELDS_BY_TYPE: dict[SignalType, tuple[str, ...]] = {
        SignalType.FUNDING: ("amount", "investors"),
        SignalType.HIRING: ("roles",),
        SignalType.LEADERSHIP_CHANGE: ("people",),
        SignalType.EXPANSION: ("locations",),
        SignalType.ACQUISITION: ("amount",),
    }

    def extract(self, text: str, signal_type: SignalType | None = None) -> SignalEntities:
        if not text:
            return SignalEntities()
        if signal_type is None:
            fields = ("amount", "investors", "roles", "people", "locations")
        else:
            fields = self._FIELDS_BY_TYPE.get(signal_type, ())
        values: dict[str, object] = {}
        if "amount" in fields:
            match = AMOUNT_PATTERN.search(text)
            if match:
                values["amount"] = match.group(0).strip()
        if "investors" in fields:
            values["investors"] = _unique(match.group(1) for match in INVESTOR_PATTERN.finditer(text))
        if "roles" in fields:
            values["roles"] = _unique(
                _LEADING_ARTICLE.sub("", match.group(1).strip()) for match in ROLE_PATTERN.finditer(text)
            )
        if "people" in fields:
            values["people"] = _unique(match.group(1) for match in PERSON_PATTERN.finditer(text))
        if "locations" in fields:
            values["locations"] = _unique(match.group(1) for match in LOCATION_PATTERN.finditer(text))
        return SignalEntities(**values)


default_extractor = RegexEntityExtractor()
