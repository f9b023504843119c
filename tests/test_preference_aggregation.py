"""Tests for the affinity aggregator and preference service."""

import math
from datetime import timedelta

import pytest

from app.domain.entities import RatingStats, ReadingStats, RecentActivity
from app.services.preference_service import AffinityAggregator, PreferenceConfig, PreferenceService
from tests.factories import (
    HORROR,
    NOW,
    SCIFI,
    USER_ID,
    FakeLibraryRepository,
    FakePreferenceCache,
    FakePurchaseRepository,
    make_record,
)


@pytest.fixture
def aggregator():
    return AffinityAggregator()


# ---------------------------------------------------------------------------
# Book weight
# ---------------------------------------------------------------------------
def test_book_weight_for_fresh_five_star_read_is_one(aggregator):
    record = make_record("b1", status="read", rating=5, days_ago=0)
    assert aggregator.calculate_book_weight(record, NOW) == pytest.approx(1.0)


def test_book_weight_unrated_want_to_read_without_dates(aggregator):
    """Status 0.3, neutral rating 0.5 and no reference date (recency 1.0)."""
    record = make_record("b1", status="want_to_read", rating=None, days_ago=None)
    assert aggregator.calculate_book_weight(record, NOW) == pytest.approx(0.15)


def test_book_weight_unknown_status_gets_minimum_weight(aggregator):
    record = make_record("b1", status="abandoned", rating=5, days_ago=0)
    assert aggregator.calculate_book_weight(record, NOW) == pytest.approx(0.1)


def test_book_weight_status_is_case_insensitive(aggregator):
    upper = make_record("b1", status="READING", rating=4, days_ago=3)
    lower = make_record("b1", status="reading", rating=4, days_ago=3)
    assert aggregator.calculate_book_weight(upper, NOW) == aggregator.calculate_book_weight(lower, NOW)


def test_book_weight_prefers_rated_at_for_rated_books(aggregator):
    record = make_record("b1", rating=5, days_ago=0)
    record.rated_at = NOW - timedelta(days=180)
    assert aggregator.calculate_book_weight(record, NOW) == pytest.approx(math.exp(-1))


def test_book_weight_is_deterministic(aggregator):
    record = make_record("b1", status="reading", rating=3, days_ago=42)
    weights = {aggregator.calculate_book_weight(record, NOW) for _ in range(5)}
    assert len(weights) == 1


def test_book_weight_strictly_decreases_with_age(aggregator):
    weights = [
        aggregator.calculate_book_weight(make_record("b1", rating=4, days_ago=d), NOW)
        for d in (0, 1, 30, 180, 720)
    ]
    assert all(a > b for a, b in zip(weights, weights[1:]))


def test_book_weight_strictly_increases_with_rating(aggregator):
    weights = [
        aggregator.calculate_book_weight(make_record("b1", rating=r, days_ago=10), NOW)
        for r in (1, 2, 3, 4, 5)
    ]
    assert all(a < b for a, b in zip(weights, weights[1:]))


# ---------------------------------------------------------------------------
# Category / author affinity
# ---------------------------------------------------------------------------
def test_category_affinity_is_normalized_and_sorted(aggregator, active_reader_records):
    affinities = aggregator.category_affinity(active_reader_records, NOW)

    assert affinities[0].name == "Fantasy"
    assert affinities[0].score == pytest.approx(1.0)
    assert all(0.0 <= a.score <= 1.0 for a in affinities)
    assert [a.score for a in affinities] == sorted((a.score for a in affinities), reverse=True)
    fantasy = affinities[0]
    assert fantasy.sample_count == 3
    assert fantasy.average_rating == pytest.approx(14 / 3)


def test_author_affinity_counts_books_read(aggregator, active_reader_records):
    affinities = {a.name: a for a in aggregator.author_affinity(active_reader_records, NOW)}

    assert affinities["Author A"].score == pytest.approx(1.0)
    assert affinities["Author A"].books_read == 2
    assert affinities["Author H"].sample_count == 2


def test_affinities_empty_without_records(aggregator):
    assert aggregator.category_affinity([], NOW) == []
    assert aggregator.author_affinity([], NOW) == []


# ---------------------------------------------------------------------------
# Format affinity
# ---------------------------------------------------------------------------
def test_format_affinity_counts_purchases_double(aggregator):
    records = [
        make_record("b1", paper=True),
        make_record("b2", paper=True),
        make_record("b3", paper=False, ebook=True),
    ]
    formats = aggregator.format_affinity(records, {"ebook": 1, "AUDIOBOOK": 1})
    by_format = {f.format: f for f in formats}

    assert by_format["paper"].total == 2
    assert by_format["ebook"].total == 3
    assert by_format["ebook"].from_purchases == 1
    assert by_format["audiobook"].total == 2
    assert formats[0].format == "ebook"
    assert formats[0].score == pytest.approx(1.0)
    assert by_format["paper"].score == pytest.approx(2 / 3)


def test_format_affinity_all_zero_without_activity(aggregator):
    formats = aggregator.format_affinity([], {})
    assert [f.format for f in formats] == ["paper", "ebook", "audiobook"]
    assert all(f.score == 0 for f in formats)


# ---------------------------------------------------------------------------
# Reading stats, negative signals, confidence
# ---------------------------------------------------------------------------
def test_reading_stats(aggregator):
    records = [
        make_record("b1", status="read", rating=5, days_ago=2, finished=True),
        make_record("b2", status="read", rating=4, days_ago=40),
        make_record("b3", status="reading", days_ago=1),
        make_record("b4", status="want_to_read", days_ago=100),
    ]
    stats = aggregator.reading_stats(records, NOW)

    assert stats.total_books == 4
    assert (stats.by_status.read, stats.by_status.reading, stats.by_status.want_to_read) == (2, 1, 1)
    assert stats.ratings.count == 2
    assert stats.ratings.average == 4.5
    assert stats.ratings.distribution == {1: 0, 2: 0, 3: 0, 4: 1, 5: 1}
    assert stats.recent_activity.books_added == 2
    assert stats.recent_activity.books_rated == 1
    assert stats.recent_activity.books_finished == 1


def test_single_low_rating_is_not_a_negative_signal(aggregator):
    records = [make_record("h1", rating=1, categories=(HORROR,))]
    signals = aggregator.negative_signals(records)
    assert signals.categories == []
    assert signals.authors == []


def test_repeated_low_ratings_become_negative_signals(aggregator, active_reader_records):
    signals = aggregator.negative_signals(active_reader_records)

    assert [c.id for c in signals.categories] == ["cat-horror"]
    assert signals.categories[0].score == pytest.approx(1.0)
    assert [a.name for a in signals.authors] == ["Author H"]


def test_negative_threshold_is_configurable():
    aggregator = AffinityAggregator(PreferenceConfig(min_negative_occurrences=1))
    records = [make_record("h1", rating=2, categories=(HORROR,)), make_record("s1", rating=5, categories=(SCIFI,))]
    signals = aggregator.negative_signals(records)
    assert [c.name for c in signals.categories] == ["Horror"]


def test_confidence_formula():
    stats = ReadingStats(
        total_books=10,
        ratings=RatingStats(count=10),
        recent_activity=RecentActivity(books_rated=2, books_finished=1),
    )
    # 0.5 * 0.5 + 0.3 * 0.2 + 0.2 * 0.6
    assert AffinityAggregator.calculate_confidence(stats) == 0.43


def test_confidence_saturates_at_one():
    stats = ReadingStats(
        total_books=80,
        ratings=RatingStats(count=40),
        recent_activity=RecentActivity(books_rated=10, books_finished=10),
    )
    assert AffinityAggregator.calculate_confidence(stats) == 1.0


def test_invalid_config_fails_fast():
    with pytest.raises(ValueError):
        PreferenceConfig(recency_decay_days=0)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
async def test_zero_activity_yields_empty_snapshot():
    service = PreferenceService(FakeLibraryRepository(), FakePurchaseRepository(), clock=lambda: NOW)
    prefs = await service.get_user_preferences(USER_ID)

    assert prefs.user_id == USER_ID
    assert prefs.calculated_at == NOW
    assert prefs.categories == []
    assert prefs.authors == []
    assert prefs.stats.total_books == 0
    assert prefs.data_quality.confidence == 0
    assert prefs.data_quality.has_enough_data is False
    assert prefs.data_quality.last_rating_at is None


async def test_snapshot_for_active_reader(preference_service):
    prefs = await preference_service.get_user_preferences(USER_ID)

    assert prefs.data_quality.has_enough_data is True
    assert prefs.data_quality.confidence == 0.39
    assert prefs.formats[0].format == "paper"
    assert [c.name for c in prefs.negative_signals.categories] == ["Horror"]
    assert prefs.data_quality.last_activity_at is not None


async def test_cached_snapshot_skips_recomputation(active_reader_records):
    library = FakeLibraryRepository({USER_ID: active_reader_records})
    cache = FakePreferenceCache()
    service = PreferenceService(library, FakePurchaseRepository(), cache=cache, clock=lambda: NOW)

    first = await service.get_user_preferences(USER_ID)
    second = await service.get_user_preferences(USER_ID)

    assert second is first
    assert library.record_loads == 1


async def test_cache_entry_ignored_after_activity_changes(active_reader_records):
    library = FakeLibraryRepository({USER_ID: list(active_reader_records)})
    service = PreferenceService(
        library, FakePurchaseRepository(), cache=FakePreferenceCache(), clock=lambda: NOW
    )

    before = await service.get_user_preferences(USER_ID)
    library.records[USER_ID].append(make_record("extra", rating=5))
    after = await service.get_user_preferences(USER_ID)

    assert after.stats.total_books == before.stats.total_books + 1
    assert library.record_loads == 2


async def test_partial_views_match_snapshot(preference_service):
    prefs = await preference_service.get_user_preferences(USER_ID)

    assert await preference_service.compute_category_affinity(USER_ID) == prefs.categories
    assert await preference_service.compute_author_affinity(USER_ID) == prefs.authors
    assert await preference_service.compute_format_affinity(USER_ID) == prefs.formats
    assert await preference_service.compute_reading_stats(USER_ID) == prefs.stats
    assert await preference_service.compute_negative_signals(USER_ID) == prefs.negative_signals
