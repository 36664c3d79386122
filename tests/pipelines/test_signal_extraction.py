from __future__ import annotations

import pytest

from app.models.signal import SignalType
from pipelines.signals.extraction import (
    RegexEntityExtractor,
    canonical_tech,
    detect_seniority,
    detect_signal_types,
    extract_company_name,
    extract_hiring_roles,
    extract_pain_points,
    extract_tech_stack,
    html_list_items,
    html_to_text,
    map_department,
)

FUNDING_HEADLINE = "Acme raises $20M Series B led by Sequoia Capital"


def test_funding_headline_is_classified_and_attributed():
    assert detect_signal_types(FUNDING_HEADLINE) == [SignalType.FUNDING]
    assert extract_company_name(FUNDING_HEADLINE) == "Acme"


def test_leadership_headline_detected():
    assert SignalType.LEADERSHIP_CHANGE in detect_signal_types("Globex appoints Jane Doe as new CTO")


def test_company_name_from_appositive_and_url():
    assert extract_company_name("Stripe, the payments company, expands to Brazil") == "Stripe"
    assert (
        extract_company_name("Weekly roundup of news", "https://news.example.com/company/acme-robotics/story")
        == "Acme Robotics"
    )


def test_unattributable_or_overlong_names_are_rejected():
    assert extract_company_name("no capital letter raises money") is None
    assert extract_company_name("A" * 60 + " raises $5M") is None


def test_funding_entities_only_pull_amount_and_investors():
    entities = RegexEntityExtractor().extract(FUNDING_HEADLINE + " and is hiring engineers", SignalType.FUNDING)

    assert entities.amount == "$20M"
    assert entities.investors == ["Sequoia Capital"]
    assert entities.roles == []


def test_untyped_extraction_runs_every_pattern():
    entities = RegexEntityExtractor().extract("Acme raises $5M and is hiring backend engineers")

    assert entities.amount == "$5M"
    assert entities.roles == ["backend engineer"]
    assert entities.investors == []


@pytest.mark.parametrize(
    ("text", "signal_type", "field", "expected"),
    [
        ("Globex appoints Jane Doe as CTO", SignalType.LEADERSHIP_CHANGE, "people", ["Jane Doe"]),
        ("Initech expands to Germany", SignalType.EXPANSION, "locations", ["Germany"]),
        ("Initech opens new office in New York", SignalType.EXPANSION, "locations", ["New York"]),
    ],
)
def test_typed_entity_fields(text, signal_type, field, expected):
    entities = RegexEntityExtractor().extract(text, signal_type)

    assert getattr(entities, field) == expected


def test_empty_text_yields_empty_entities():
    assert RegexEntityExtractor().extract("", SignalType.FUNDING).is_empty()


def test_tech_stack_uses_word_boundaries():
    text = "We use React, Node.js, PostgreSQL and AWS. JavaScript experience and Go are a plus."

    stack = extract_tech_stack(text)

    assert stack[:1] == ["javascript"]
    assert {"react", "node.js", "postgresql", "aws"} <= set(stack)
    assert "java" not in stack
    assert "postgres" not in stack


def test_tech_spellings_fold_onto_one_term():
    assert extract_tech_stack("Experience with NodeJS and Postgres") == ["node.js", "postgresql"]
    assert canonical_tech(" Node ") == "node.js"
    assert canonical_tech("K8s") == "kubernetes"
    assert canonical_tech("python") == "python"


def test_pain_points_map_phrases_to_labels():
    text = "You'll be our first engineer and help scale to 100 customers while paying down technical debt."

    assert extract_pain_points(text) == ["scaling challenges", "building from scratch", "technical debt"]


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Software Engineering Intern", "intern"),
        ("Chief Technology Officer", "c_level"),
        ("VP of Sales", "vp"),
        ("Director of Engineering", "director"),
        ("Engineering Manager", "manager"),
        ("Staff Engineer", "lead"),
        ("Senior Software Engineer", "senior"),
        ("Junior Developer", "entry"),
        ("Software Engineer", "mid"),
    ],
)
def test_detect_seniority(title, expected):
    assert detect_seniority(title) == expected


@pytest.mark.parametrize(
    ("name", "expected"),
    [("Engineering", "engineering"), ("Sales", "sales"), ("Customer Success", "operations"), (None, "other")],
)
def test_map_department(name, expected):
    assert map_department(name) == expected


def test_html_helpers_strip_markup():
    assert html_to_text("<p>Hello <b>world</b></p><script>var x = 1;</script>") == "Hello world"
    assert html_list_items("<ul><li>Python</li><li> AWS </li><li>Python</li></ul>") == ["Python", "AWS"]


def test_careers_copy_roles():
    assert extract_hiring_roles("We're hiring a Senior Backend Engineer to join us.") == ["Senior Backend Engineer"]
