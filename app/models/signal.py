"""Signal records produced by source adapters and the aggregation engine."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.config import ConfigDict


def new_id() -> str:
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SignalType(str, Enum):
    """Business events that make a company worth contacting."""

    FUNDING = "funding"
    HIRING = "hiring"
    PRODUCT_LAUNCH = "product_launch"
    LEADERSHIP_CHANGE = "leadership_change"
    EXPANSION = "expansion"
    PARTNERSHIP = "partnership"
    ACQUISITION = "acquisition"
    TECH_ADOPTION = "tech_adoption"


class SourceType(str, Enum):
    """Origin kinds a raw observation can come from."""

    FEED = "feed"
    SEARCH = "search"
    COMPANY_SITE = "company_site"
    JOB_BOARD = "job_board"
    PRESS = "press"
    SOCIAL = "social"
    FILING = "filing"


class SignalEntities(BaseModel):
    """Best-effort entities pulled out of signal text."""

    amount: str | None = None
    investors: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    people: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")

    def is_empty(self) -> bool:
        return not (self.amount or self.investors or self.roles or self.people or self.locations)


class RawSignal(BaseModel):
    """A single source's observation about a company."""

    id: str = Field(default_factory=new_id)
    signal_type: SignalType
    source: SourceType
    source_url: str
    company_name: str = Field(..., min_length=1)
    domain: str | None = None
    headline: str
    snippet: str = ""
    raw_content: str | None = None
    entities: SignalEntities = Field(default_factory=SignalEntities)
    published_at: datetime | None = None
    discovered_at: datetime = Field(default_factory=utc_now)
    confidence: float = Field(..., ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("published_at", "discovered_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


class SourceReference(BaseModel):
    """Evidence pointer preserved on an aggregated signal."""

    type: SourceType
    url: str
    snippet: str = ""
    published_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class AggregatedSignal(BaseModel):
    """Company-scoped signal after merging every observation sharing its key."""

    id: str = Field(default_factory=new_id)
    signal_type: SignalType
    company_name: str
    domain: str = ""
    headline: str
    summary: str = ""
    sources: list[SourceReference]
    entities: SignalEntities = Field(default_factory=SignalEntities)
    source_count: int = Field(..., ge=1)
    confidence: float = Field(..., ge=0.0, le=1.0)
    freshness: float = Field(..., ge=0.0, description="Hours since the oldest contributing publication.")
    discovered_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_sources(self) -> AggregatedSignal:
        if not self.sources:
            raise ValueError("aggregated signal requires at least one source")
        if self.source_count != len(self.sources):
            raise ValueError("source_count must equal the number of sources")
        return self

    @property
    def rank_score(self) -> float:
        return self.confidence / max(self.freshness, 1.0)

    def with_domain(self, domain: str) -> AggregatedSignal:
        """Return a copy carrying a resolved company domain."""
        return self.model_copy(update={"domain": domain})
