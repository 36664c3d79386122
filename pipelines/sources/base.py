"""Common contracts for source adapters."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Protocol
from urllib.parse import urlsplit

from app.models.crawl import CompanyRef, JobPosting
from app.models.signal import RawSignal, SignalType
from pipelines.cancellation import CancellationToken

_TLD_SUFFIX = re.compile(r"\.(?:com|io|co|ai|app|dev)$", re.IGNORECASE)


@dataclass(frozen=True)
class SourceFetch:
    """Outcome of one adapter call.

    `found` records whether the target exists on the source at all, which is
    distinct from having produced any signals.
    """

    signals: list[RawSignal] = field(default_factory=list)
    jobs: list[JobPosting] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    found: bool = False

    @classmethod
    def empty(cls) -> SourceFetch:
        return cls()

    @classmethod
    def failed(cls, message: str) -> SourceFetch:
        return cls(errors=[message])


class CompanySource(Protocol):
    """Adapter that looks a single company up on one source."""

    name: str

    def origin(self, company: CompanyRef) -> str:
        ...

    async def fetch(self, company: CompanyRef, *, token: CancellationToken | None = None) -> SourceFetch:
        ...


class SignalSource(Protocol):
    """Adapter that runs canned queries for one signal type."""

    name: str

    async def fetch(
        self,
        signal_type: SignalType,
        *,
        token: CancellationToken | None = None,
        max_results: int | None = None,
        queries: list[str] | None = None,
        freshness_hours: int | None = None,
    ) -> SourceFetch:
        ...


def normalize_domain(domain: str) -> str:
    value = domain.strip().lower()
    if "://" in value:
        value = urlsplit(value).netloc
    value = value.split("/")[0].split(":")[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def slug_candidates(domain: str) -> list[str]:
    """Deterministic board-slug guesses for a company domain, in lookup order."""
    host = normalize_domain(domain)
    without_tld = _TLD_SUFFIX.sub("", host)
    candidates = [without_tld, without_tld.replace("-", ""), host.split(".")[0]]
    ordered: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in ordered:
            ordered.append(candidate)
    return ordered


def origin_of(url: str) -> str:
    return normalize_domain(urlsplit(url).netloc or url)


def parse_timestamp(value: Any) -> datetime | None:
    """Accept ISO-8601 strings, RFC 2822 dates or epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
