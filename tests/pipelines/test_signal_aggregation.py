from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.models.signal import RawSignal, SignalEntities, SignalType, SourceType
from pipelines.signals.aggregation import (
    aggregate_signals,
    canonical_url,
    combined_confidence,
    dedupe_and_aggregate,
    deduplicate_signals,
    signal_key,
)

NOW = datetime(2025, 1, 12, 12, tzinfo=UTC)


def raw(
    company: str = "Acme Inc",
    signal_type: SignalType = SignalType.FUNDING,
    *,
    source: SourceType = SourceType.FEED,
    url: str = "https://news.example.com/acme",
    confidence: float = 0.75,
    headline: str = "Acme Inc raises $10M",
    published_at: datetime | None = None,
    entities: SignalEntities | None = None,
) -> RawSignal:
    return RawSignal(
        signal_type=signal_type,
        source=source,
        source_url=url,
        company_name=company,
        headline=headline,
        snippet=headline,
        published_at=published_at,
        entities=entities or SignalEntities(),
        confidence=confidence,
    )


def test_feed_and_search_observations_corroborate():
    feed = raw(confidence=0.75, entities=SignalEntities(amount="$10M"))
    search = raw(
        source=SourceType.SEARCH,
        url="https://search.example.com/acme-funding",
        confidence=0.70,
        entities=SignalEntities(amount="$10M", investors=["Acme Ventures"]),
    )

    aggregated = dedupe_and_aggregate([feed, search], now=NOW)

    assert len(aggregated) == 1
    signal = aggregated[0]
    assert signal.source_count == 2
    assert signal.entities.amount == "$10M"
    assert signal.entities.investors == ["Acme Ventures"]
    assert signal.confidence > 0.75
    assert signal.confidence <= (0.75 + 0.70) / 2 + 0.1 + 1e-9
    assert signal.headline == feed.headline
    assert [source.type for source in signal.sources] == [SourceType.FEED, SourceType.SEARCH]


def test_signal_key_is_case_insensitive_company_plus_type():
    assert signal_key(raw(company="ACME Inc")) == "acme inc-funding"
    assert signal_key(raw(signal_type=SignalType.HIRING)) == "acme inc-hiring"


def test_different_types_for_same_company_stay_separate():
    aggregated = aggregate_signals([raw(), raw(signal_type=SignalType.HIRING)], now=NOW)

    assert sorted(signal.signal_type for signal in aggregated) == [SignalType.FUNDING, SignalType.HIRING]


@pytest.mark.parametrize("count", [1, 2, 3, 4, 5, 8])
def test_confidence_is_bounded(count):
    aggregated = aggregate_signals(
        [raw(url=f"https://news.example.com/{index}", confidence=1.0) for index in range(count)], now=NOW
    )

    assert 0.0 <= aggregated[0].confidence <= 1.0


def test_corroboration_bonus_is_monotonic_until_cap():
    values = [combined_confidence([0.6] * count) for count in range(1, 7)]

    assert values == sorted(values)
    assert values[0] == pytest.approx(0.65)
    assert values[3] == pytest.approx(0.8)
    assert values[5] == pytest.approx(0.8)


def test_combined_confidence_requires_members():
    with pytest.raises(ValueError):
        combined_confidence([])


def test_exact_duplicates_collapse_before_grouping():
    first = raw(url="https://www.news.example.com/acme/?utm_source=rss", confidence=0.7)
    copy = raw(url="http://news.example.com/acme", confidence=0.8)

    deduped = deduplicate_signals([first, copy])

    assert deduped == [copy]
    assert dedupe_and_aggregate([first, copy], now=NOW)[0].source_count == 1


def test_headline_fingerprint_used_without_url():
    first = raw(url="", headline="Acme Inc raises $10M!")
    second = raw(url="", headline="acme inc raises $10m", confidence=0.5)

    assert deduplicate_signals([first, second]) == [first]


def test_canonical_url_drops_tracking_and_trailing_slash():
    assert canonical_url("HTTP://WWW.Example.com/a/b/?ref=x&id=3#frag") == "https://example.com/a/b?id=3"


def test_freshness_uses_oldest_publication_and_defaults_to_72():
    dated = aggregate_signals(
        [
            raw(url="https://a.example.com", published_at=NOW - timedelta(hours=10)),
            raw(url="https://b.example.com", published_at=NOW - timedelta(hours=30)),
        ],
        now=NOW,
    )
    undated = aggregate_signals([raw()], now=NOW)

    assert dated[0].freshness == pytest.approx(30)
    assert undated[0].freshness == 72


def test_output_ranked_by_confidence_over_freshness():
    stale = raw(company="Globex", url="https://a.example.com", confidence=0.95, published_at=NOW - timedelta(hours=48))
    fresh = raw(company="Initech", url="https://b.example.com", confidence=0.7, published_at=NOW - timedelta(hours=2))

    ranked = aggregate_signals([stale, fresh], now=NOW)

    assert [signal.company_name for signal in ranked] == ["Initech", "Globex"]
