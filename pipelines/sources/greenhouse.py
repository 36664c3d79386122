"""Greenhouse public job-board adapter.

Postings live at https://boards-api.greenhouse.io/v1/boards/{slug}/jobs and
need no authentication.
"""

from __future__ import annotations

import html
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

GREENHOUSE_API = "https://boards-api.greenhouse.io/v1/boards"


class GreenhouseSource(JobBoardSource):
    name = "greenhouse"
    host = "greenhouse.io"
    label = "Greenhouse"

    def lookup_url(self, slug: str) -> str:
        return f"{GREENHOUSE_API}/{slug}/jobs"

    def postings_url(self, slug: str) -> str:
        return f"{GREENHOUSE_API}/{slug}/jobs?content=true"

    def parse_postings(self, payload: Any, company: CompanyRef) -> list[JobPosting]:
        domain = normalize_domain(company.domain)
        jobs: list[JobPosting] = []
        for item in require_sequence(payload, "jobs"):
            # Greenhouse entity-encodes the HTML body.
            markup = html.unescape(item.get("content") or "")
            description = html_to_text(markup)
            departments = item.get("departments") or []
            department_name = departments[0].get("name") if departments else None
            location = (item.get("location") or {}).get("name")
            title = item["title"]
            jobs.append(
                JobPosting(
                    id=f"gh_{item['id']}",
                    company_domain=domain,
                    company_name=company.name,
                    title=title,
                    department=map_department(department_name),
                    seniority=detect_seniority(title),
                    location=location,
                    remote="remote" in (location or "").lower(),
                    description=description,
                    requirements=html_list_items(markup),
                    tech_stack=extract_tech_stack(description),
                    pain_points=extract_pain_points(description),
                    posted_at=parse_timestamp(item.get("updated_at")),
                    source_type="greenhouse",
                    source_url=item.get("absolute_url") or f"https://boards.greenhouse.io/{domain}",
                )
            )
        return jobs
