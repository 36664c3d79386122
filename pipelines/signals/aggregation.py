"""Deduplication and aggregation of raw signals into corroborated records.

Two passes run in sequence:

* `deduplicate_signals` drops repeated copies of the *same evidence*: same
  company/type key and the same canonical source URL (or, without a URL, the
  same normalized headline). A feed and a site crawl that both surface one
  press release count once.
* `aggregate_signals` groups the surviving observations by company/type and
  merges them. Distinct evidence for one key is corroboration and raises the
  aggregate confidence.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from urllib.parse import urlsplit, urlunsplit

from app.models.signal import (
    AggregatedSignal,
    RawSignal,
    SignalEntities,
    SourceReference,
    utc_now,
)

logger = logging.getLogger("pipelines.signals.aggregation")

CORROBORATION_STEP = 0.05
CORROBORATION_CAP = 0.2
DEFAULT_FRESHNESS_HOURS = 72.0
_TRACKING_PARAM = re.compile(r"^(?:utm_[a-z]+|ref|source|fbclid|gclid)=", re.IGNORECASE)
_NON_WORD = re.compile(r"[^a-z0-9]+")


def signal_key(signal: RawSignal) -> str:
    """Grouping key: lower-cased company name plus signal type."""
    return f"{signal.company_name.strip().lower()}-{signal.signal_type.value}"


def canonical_url(url: str) -> str:
    """Normalize a URL so trivially different links to one page compare equal."""
    parts = urlsplit(url.strip())
    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    query = "&".join(
        param for param in parts.query.split("&") if param and not _TRACKING_PARAM.match(param)
    )
    path = parts.path.rstrip("/") or "/"
    return urlunsplit(("https" if parts.scheme in ("http", "https") else parts.scheme, host, path, query, ""))


def evidence_fingerprint(signal: RawSignal) -> str:
    if signal.source_url:
        return canonical_url(signal.source_url)
    return _NON_WORD.sub(" ", signal.headline.lower()).strip()


def deduplicate_signals(signals: Iterable[RawSignal]) -> list[RawSignal]:
    """Collapse identical evidence, keeping the higher-confidence copy in first-seen position."""
    kept: dict[tuple[str, str], RawSignal] = {}
    dropped = 0
    for signal in signals:
        key = (signal_key(signal), evidence_fingerprint(signal))
        existing = kept.get(key)
        if existing is None:
            kept[key] = signal
            continue
        dropped += 1
        if signal.confidence > existing.confidence:
            kept[key] = signal
    if dropped:
        logger.info("signals.deduplicated", extra={"dropped": dropped, "kept": len(kept)})
    return list(kept.values())


def combined_confidence(confidences: Sequence[float]) -> float:
    """Average member confidence plus a capped corroboration bonus, bounded to [0, 1]."""
    if not confidences:
        raise ValueError("at least one confidence is required")
    average = sum(confidences) / len(confidences)
    bonus = min(CORROBORATION_CAP, CORROBORATION_STEP * len(confidences))
    return max(0.0, min(1.0, average + bonus))


def freshness_hours(signals: Iterable[RawSignal], now: datetime) -> float:
    published = [signal.published_at for signal in signals if signal.published_at is not None]
    if not published:
        return DEFAULT_FRESHNESS_HOURS
    oldest = min(published)
    return max(0.0, (now - oldest).total_seconds() / 3600)


def _union(values: Iterable[Iterable[str]]) -> list[str]:
    seen: set[str] = set()
    merged: list[str] = []
    for group in values:
        for value in group:
            key = value.strip().lower()
            if key and key not in seen:
                seen.add(key)
                merged.append(value.strip())
    return merged


def merge_entities(members: Sequence[RawSignal]) -> SignalEntities:
    return SignalEntities(
        amount=next((member.entities.amount for member in members if member.entities.amount), None),
        investors=_union(member.entities.investors for member in members),
        roles=_union(member.entities.roles for member in members),
        people=_union(member.entities.people for member in members),
        locations=_union(member.entities.locations for member in members),
    )


def _aggregate_group(members: Sequence[RawSignal], now: datetime) -> AggregatedSignal:
    ordered = sorted(members, key=lambda member: member.confidence, reverse=True)
    primary = ordered[0]
    return AggregatedSignal(
        signal_type=primary.signal_type,
        company_name=primary.company_name,
        domain=next((member.domain for member in ordered if member.domain), ""),
        headline=primary.headline,
        summary=primary.snippet,
        sources=[
            SourceReference(
                type=member.source,
                url=member.source_url,
                snippet=member.snippet,
                published_at=member.published_at,
            )
            for member in ordered
        ],
        entities=merge_entities(ordered),
        source_count=len(ordered),
        confidence=combined_confidence([member.confidence for member in ordered]),
        freshness=freshness_hours(ordered, now),
        discovered_at=now,
    )


def aggregate_signals(signals: Iterable[RawSignal], *, now: datetime | None = None) -> list[AggregatedSignal]:
    """Group raw signals by company/type and rank the merged records.

    Output is ordered by descending confidence / max(freshness, 1).
    """
    reference = now or utc_now()
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=UTC)
    groups: dict[str, list[RawSignal]] = {}
    for signal in signals:
        groups.setdefault(signal_key(signal), []).append(signal)
    aggregated = [_aggregate_group(members, reference) for members in groups.values()]
    aggregated.sort(key=lambda item: item.rank_score, reverse=True)
    return aggregated


def dedupe_and_aggregate(signals: Iterable[RawSignal], *, now: datetime | None = None) -> list[AggregatedSignal]:
    return aggregate_signals(deduplicate_signals(signals), now=now)
