"""Lever public postings adapter (https://api.lever.co/v0/postings/{slug})."""

from __future__ import annotations

from typing import Any

from app.models.crawl import CompanyRef, JobPosting
from pipelines.signals.extraction import (
    detect_seniority,
    extract_pain_points,
    extract_tech_stack,
    html_list_items,
    html_to_text,
    map_department,
)
from pipelines.sources.base import normalize_domain, parse_timestamp
from pipelines.sources.job_board import JobBoardSource, require_sequence

LEVER_API = "https://api.lever.co/v0/postings"


class LeverSource(JobBoardSource):
    name = "lever"
    host = "lever.co"
    label = "Lever"

    def lookup_url(self, slug: str) -> str:
        return f"{LEVER_API}/{slug}"

    def postings_url(self, slug: str) -> str:
        return f"{LEVER_API}/{slug}?mode=json"

    def parse_postings(self, payload: Any, company: CompanyRef) -> list[JobPosting]:
        domain = normalize_domain(company.domain)
        jobs: list[JobPosting] = []
        for item in require_sequence(payload):
            categories = item.get("categories") or {}
            lists = item.get("lists") or []
            description = " ".join(
                part
                for part in (
                    item.get("descriptionPlain") or html_to_text(item.get("description")),
                    item.get("additionalPlain") or html_to_text(item.get("additional")),
                    *(html_to_text(entry.get("content")) for entry in lists),
                )
                if part
            )
            requirements = [req for entry in lists for req in html_list_items(entry.get("content"))]
            location = categories.get("location")
            title = item["text"]
            jobs.append(
                JobPosting(
                    id=f"lever_{item['id']}",
                    company_domain=domain,
                    company_name=company.name,
                    title=title,
                    department=map_department(categories.get("department") or categories.get("team")),
                    seniority=detect_seniority(title),
                    location=location,
                    remote="remote" in (location or "").lower() or item.get("workplaceType") == "remote",
                    description=description,
                    requirements=requirements[:20],
                    tech_stack=extract_tech_stack(description),
                    pain_points=extract_pain_points(description),
                    posted_at=parse_timestamp(item.get("createdAt")),
                    source_type="lever",
                    source_url=item.get("hostedUrl") or f"https://jobs.lever.co/{domain}",
                )
            )
        return jobs
