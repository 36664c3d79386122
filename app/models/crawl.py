"""Job-board and crawl outcome models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

from app.models.signal import RawSignal, utc_now

Department = Literal["engineering", "sales", "marketing", "product", "operations", "finance", "hr", "other"]
Seniority = Literal["intern", "entry", "mid", "senior", "lead", "manager", "director", "vp", "c_level"]
GrowthSignal = Literal["aggressive", "moderate", "stable", "contracting"]
JobSource = Literal["greenhouse", "lever"]


class CompanyRef(BaseModel):
    """Company identity used to target crawls."""

    domain: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


class JobPosting(BaseModel):
    """Normalized job-board listing."""

    id: str
    company_domain: str
    company_name: str
    title: str
    department: Department = "other"
    seniority: Seniority = "mid"
    location: str | None = None
    remote: bool = False
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    tech_stack: list[str] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    posted_at: datetime | None = None
    source_type: JobSource
    source_url: str

    model_config = ConfigDict(frozen=True, extra="forbid")


class HiringVelocity(BaseModel):
    """Coarse hiring posture derived from open job counts."""

    company_domain: str
    total_openings: int = Field(..., ge=0)
    by_department: dict[str, int] = Field(default_factory=dict)
    by_seniority: dict[str, int] = Field(default_factory=dict)
    growth_signal: GrowthSignal
    tech_stack: list[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True, extra="forbid")


class CrawlResult(BaseModel):
    """One company's outcome from a crawl pass."""

    company: CompanyRef
    jobs: list[JobPosting] = Field(default_factory=list)
    signals: list[RawSignal] = Field(default_factory=list)
    hiring_velocity: HiringVelocity | None = None
    sources: dict[str, bool] = Field(default_factory=dict)
    crawled_at: datetime = Field(default_factory=utc_now)
    errors: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class CrawlStats(BaseModel):
    companies_crawled: int
    total_jobs: int
    total_signals: int
    errors: int
    duration_ms: float

    model_config = ConfigDict(frozen=True, extra="forbid")


class BatchCrawlResult(BaseModel):
    results: list[CrawlResult]
    stats: CrawlStats

    model_config = ConfigDict(frozen=True, extra="forbid")


class TermCount(BaseModel):
    term: str
    count: int


class CrawlSignalSummary(BaseModel):
    """Run-level reporting over crawl results."""

    by_type: dict[str, int] = Field(default_factory=dict)
    by_company: dict[str, list[RawSignal]] = Field(default_factory=dict)
    top_tech_stack: list[TermCount] = Field(default_factory=list)
    top_pain_points: list[TermCount] = Field(default_factory=list)
