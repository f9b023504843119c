"""User preference aggregation: raw bookshelf/purchase activity -> affinities.

Heuristics:
  - Higher rating = higher weight (rating / 5, neutral 0.5 when unrated)
  - More recent = higher weight (exponential decay over ``recency_decay_days``)
  - READ > READING > WANT_TO_READ (status weights)
  - Purchases count double toward format affinity

Every affinity list is normalized so that its strongest entry scores 1.0.
The :class:`AffinityAggregator` is a pure function of its inputs (records,
purchase counts and ``now``); :class:`PreferenceService` only loads those
inputs and hands them over, so the same activity always yields the same
snapshot.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

from app.core.config import Settings
from app.domain.entities import (
    FORMATS,
    AuthorAffinity,
    CategoryAffinity,
    DataQuality,
    FormatAffinity,
    LibraryRecord,
    NegativeSignals,
    RatingStats,
    ReadingStats,
    ReadingStatus,
    RecentActivity,
    StatusCounts,
    UserPreferences,
)
from app.domain.repositories import ILibraryRepository, IPreferenceCache, IPurchaseRepository
from app.domain.services import IPreferenceService

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0

# Purchases are a stronger format signal than merely shelving a book
PURCHASE_FORMAT_MULTIPLIER = 2


@dataclass(frozen=True)
class PreferenceConfig:
    recency_decay_days: float = 180.0
    negative_rating_threshold: int = 2
    # a single bad read should not blacklist a whole category/author
    min_negative_occurrences: int = 2
    recent_activity_days: int = 30
    min_samples_for_reliability: int = 3
    status_weights: dict[str, float] = field(
        default_factory=lambda: {
            ReadingStatus.READ.value: 1.0,
            ReadingStatus.READING.value: 0.6,
            ReadingStatus.WANT_TO_READ.value: 0.3,
        }
    )
    unknown_status_weight: float = 0.1
    neutral_rating_weight: float = 0.5

    def __post_init__(self):
        if self.recency_decay_days <= 0:
            raise ValueError("recency_decay_days must be positive")
        if self.min_negative_occurrences < 1:
            raise ValueError("min_negative_occurrences must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "PreferenceConfig":
        return cls(
            recency_decay_days=settings.recency_decay_days,
            negative_rating_threshold=settings.negative_rating_threshold,
            min_negative_occurrences=settings.min_negative_occurrences,
            recent_activity_days=settings.recent_activity_days,
            min_samples_for_reliability=settings.min_samples_for_reliability,
        )


def _status_key(status) -> str:
    value = getattr(status, "value", status)
    return value.lower() if isinstance(value, str) else ""


@dataclass
class _Bucket:
    """Running totals for one category/author id while aggregating."""

    id: str
    name: str
    total_weight: float = 0.0
    count: int = 0
    books_read: int = 0
    rating_sum: int = 0
    rated_count: int = 0
    slug: Optional[str] = None
    parent_id: Optional[str] = None

    def add(self, weight: float, record: LibraryRecord) -> None:
        self.total_weight += weight
        self.count += 1
        if _status_key(record.status) == ReadingStatus.READ.value:
            self.books_read += 1
        if record.rating is not None:
            self.rating_sum += record.rating
            self.rated_count += 1

    @property
    def average_rating(self) -> Optional[float]:
        return self.rating_sum / self.rated_count if self.rated_count else None


# ======================================================================
# Pure aggregation
# ======================================================================
class AffinityAggregator:
    """Turns a user's library records into normalized affinity signals."""

    def __init__(self, config: Optional[PreferenceConfig] = None):
        self.config = config or PreferenceConfig()

    # -- Single-record weight --
    def calculate_book_weight(self, record: LibraryRecord, now: datetime) -> float:
        """weight = statusWeight * ratingWeight * recencyWeight"""
        status_weight = self.config.status_weights.get(
            _status_key(record.status), self.config.unknown_status_weight
        )

        if record.rating is not None:
            rating_weight = record.rating / 5
        else:
            rating_weight = self.config.neutral_rating_weight

        reference = record.updated_at
        if record.rating is not None and record.rated_at is not None:
            reference = record.rated_at
        if reference is None:
            recency_weight = 1.0
        else:
            days_since = max((now - reference).total_seconds() / SECONDS_PER_DAY, 0.0)
            recency_weight = math.exp(-days_since / self.config.recency_decay_days)

        return status_weight * rating_weight * recency_weight

    # -- Category / author affinities --
    def category_affinity(
        self, records: list[LibraryRecord], now: datetime
    ) -> list[CategoryAffinity]:
        buckets: dict[str, _Bucket] = {}
        for record in records:
            weight = self.calculate_book_weight(record, now)
            for cat in record.categories:
                bucket = buckets.get(cat.id)
                if bucket is None:
                    bucket = _Bucket(id=cat.id, name=cat.name, slug=cat.slug, parent_id=cat.parent_id)
                    buckets[cat.id] = bucket
                bucket.add(weight, record)

        results = [
            CategoryAffinity(
                id=b.id,
                name=b.name,
                score=score,
                sample_count=b.count,
                average_rating=b.average_rating,
                slug=b.slug,
                parent_id=b.parent_id,
            )
            for b, score in self._normalize(buckets.values())
        ]
        results.sort(key=lambda a: -a.score)
        return results

    def author_affinity(
        self, records: list[LibraryRecord], now: datetime
    ) -> list[AuthorAffinity]:
        buckets: dict[str, _Bucket] = {}
        for record in records:
            weight = self.calculate_book_weight(record, now)
            for author in record.authors:
                bucket = buckets.setdefault(author.id, _Bucket(id=author.id, name=author.name))
                bucket.add(weight, record)

        results = [
            AuthorAffinity(
                id=b.id,
                name=b.name,
                score=score,
                sample_count=b.count,
                average_rating=b.average_rating,
                books_read=b.books_read,
            )
            for b, score in self._normalize(buckets.values())
        ]
        results.sort(key=lambda a: -a.score)
        return results

    @staticmethod
    def _normalize(buckets: Iterable[_Bucket]) -> list[tuple[_Bucket, float]]:
        """Scale by the strongest bucket and drop anything that ends up at zero."""
        buckets = list(buckets)
        if not buckets:
            return []
        max_weight = max(b.total_weight for b in buckets)
        scored = [(b, b.total_weight / max_weight if max_weight > 0 else 0.0) for b in buckets]
        return [(b, s) for b, s in scored if s > 0]

    # -- Format affinity --
    def format_affinity(
        self, records: list[LibraryRecord], purchase_counts: dict[str, int]
    ) -> list[FormatAffinity]:
        bookshelf = {fmt: 0 for fmt in FORMATS}
        purchases = {fmt: 0 for fmt in FORMATS}

        for record in records:
            for fmt in FORMATS:
                if record.formats.offers(fmt):
                    bookshelf[fmt] += 1

        for fmt, count in purchase_counts.items():
            key = (fmt or "").lower()
            if key in purchases:
                purchases[key] = count

        totals = {
            fmt: bookshelf[fmt] + purchases[fmt] * PURCHASE_FORMAT_MULTIPLIER for fmt in FORMATS
        }
        max_total = max(totals.values())

        results = [
            FormatAffinity(
                format=fmt,
                score=totals[fmt] / max_total if max_total > 0 else 0.0,
                from_bookshelf=bookshelf[fmt],
                from_purchases=purchases[fmt],
                total=totals[fmt],
            )
            for fmt in FORMATS
        ]
        results.sort(key=lambda f: -f.score)
        return results

    # -- Reading statistics --
    def reading_stats(self, records: list[LibraryRecord], now: datetime) -> ReadingStats:
        by_status = StatusCounts()
        ratings = RatingStats()
        recent = RecentActivity()
        cutoff = now - timedelta(days=self.config.recent_activity_days)
        rating_sum = 0

        for record in records:
            key = _status_key(record.status)
            if key == ReadingStatus.WANT_TO_READ.value:
                by_status.want_to_read += 1
            elif key == ReadingStatus.READING.value:
                by_status.reading += 1
            elif key == ReadingStatus.READ.value:
                by_status.read += 1

            if record.rating is not None:
                ratings.count += 1
                rating_sum += record.rating
                if record.rating in ratings.distribution:
                    ratings.distribution[record.rating] += 1

            if record.created_at is not None and record.created_at >= cutoff:
                recent.books_added += 1
            if record.rated_at is not None and record.rated_at >= cutoff:
                recent.books_rated += 1
            if record.finished_at is not None and record.finished_at >= cutoff:
                recent.books_finished += 1

        if ratings.count:
            ratings.average = round(rating_sum / ratings.count, 1)

        return ReadingStats(
            total_books=by_status.want_to_read + by_status.reading + by_status.read,
            by_status=by_status,
            ratings=ratings,
            recent_activity=recent,
        )

    # -- Negative signals --
    def negative_signals(self, records: list[LibraryRecord]) -> NegativeSignals:
        low_rated = [
            r for r in records
            if r.rating is not None and r.rating <= self.config.negative_rating_threshold
        ]
        if not low_rated:
            return NegativeSignals()

        cat_buckets: dict[str, _Bucket] = {}
        author_buckets: dict[str, _Bucket] = {}
        for record in low_rated:
            for cat in record.categories:
                cat_buckets.setdefault(
                    cat.id, _Bucket(id=cat.id, name=cat.name, slug=cat.slug)
                ).add(1.0, record)
            for author in record.authors:
                author_buckets.setdefault(
                    author.id, _Bucket(id=author.id, name=author.name)
                ).add(1.0, record)

        total = len(low_rated)
        threshold = self.config.min_negative_occurrences
        categories = [
            CategoryAffinity(
                id=b.id,
                name=b.name,
                score=b.count / total,
                sample_count=b.count,
                average_rating=b.average_rating,
                slug=b.slug,
            )
            for b in cat_buckets.values()
            if b.count >= threshold
        ]
        authors = [
            AuthorAffinity(
                id=b.id,
                name=b.name,
                score=b.count / total,
                sample_count=b.count,
                average_rating=b.average_rating,
                books_read=b.count,
            )
            for b in author_buckets.values()
            if b.count >= threshold
        ]
        categories.sort(key=lambda a: -a.score)
        authors.sort(key=lambda a: -a.score)
        return NegativeSignals(categories=categories, authors=authors)

    # -- Confidence --
    @staticmethod
    def calculate_confidence(stats: ReadingStats) -> float:
        rated_score = min(stats.ratings.count / 20, 1)  # saturates at 20 ratings
        total_score = min(stats.total_books / 50, 1)  # saturates at 50 books
        activity_score = min(
            (stats.recent_activity.books_rated + stats.recent_activity.books_finished) / 5, 1
        )
        confidence = rated_score * 0.5 + total_score * 0.3 + activity_score * 0.2
        return round(confidence, 2)

    # -- Full snapshot --
    def build_preferences(
        self,
        user_id: UUID,
        records: list[LibraryRecord],
        purchase_counts: dict[str, int],
        now: datetime,
    ) -> UserPreferences:
        stats = self.reading_stats(records, now)

        rated_at = [r.rated_at for r in records if r.rating is not None and r.rated_at]
        updated_at = [r.updated_at for r in records if r.updated_at]

        return UserPreferences(
            user_id=user_id,
            calculated_at=now,
            categories=self.category_affinity(records, now),
            authors=self.author_affinity(records, now),
            formats=self.format_affinity(records, purchase_counts),
            stats=stats,
            negative_signals=self.negative_signals(records),
            data_quality=DataQuality(
                has_enough_data=stats.ratings.count >= self.config.min_samples_for_reliability,
                confidence=self.calculate_confidence(stats),
                last_rating_at=max(rated_at) if rated_at else None,
                last_activity_at=max(updated_at) if updated_at else None,
            ),
        )


# ======================================================================
# Service (loads inputs, delegates to the aggregator)
# ======================================================================
class PreferenceService(IPreferenceService):
    """Builds :class:`UserPreferences` snapshots on demand.

    Snapshots are never stored as a durable entity.  When a cache is wired
    in, entries are keyed by the user's activity fingerprint so a change in
    the bookshelf or purchases is never served stale.
    """

    def __init__(
        self,
        library_repo: ILibraryRepository,
        purchase_repo: IPurchaseRepository,
        config: Optional[PreferenceConfig] = None,
        cache: Optional[IPreferenceCache] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.library_repo = library_repo
        self.purchase_repo = purchase_repo
        self.aggregator = AffinityAggregator(config)
        self.cache = cache
        self.clock = clock

    async def get_user_preferences(self, user_id: UUID) -> UserPreferences:
        data_version = None
        if self.cache is not None:
            data_version = await self.library_repo.get_data_version(user_id)
            cached = await self.cache.get(user_id, data_version)
            if cached is not None:
                logger.debug("Preference cache hit for user %s (%s)", user_id, data_version)
                return cached

        records = await self.library_repo.get_user_records(user_id)
        purchase_counts = await self.purchase_repo.get_format_counts(user_id)
        preferences = self.aggregator.build_preferences(
            user_id, records, purchase_counts, self.clock()
        )
        logger.info(
            "Preferences computed for user %s: %d records, confidence=%.2f, "
            "categories=%d, authors=%d",
            user_id,
            len(records),
            preferences.data_quality.confidence,
            len(preferences.categories),
            len(preferences.authors),
        )

        if self.cache is not None and data_version is not None:
            await self.cache.set(preferences, data_version)
        return preferences

    async def compute_category_affinity(self, user_id: UUID) -> list[CategoryAffinity]:
        records = await self.library_repo.get_user_records(user_id)
        return self.aggregator.category_affinity(records, self.clock())

    async def compute_author_affinity(self, user_id: UUID) -> list[AuthorAffinity]:
        records = await self.library_repo.get_user_records(user_id)
        return self.aggregator.author_affinity(records, self.clock())

    async def compute_format_affinity(self, user_id: UUID) -> list[FormatAffinity]:
        records = await self.library_repo.get_user_records(user_id)
        purchase_counts = await self.purchase_repo.get_format_counts(user_id)
        return self.aggregator.format_affinity(records, purchase_counts)

    async def compute_reading_stats(self, user_id: UUID) -> ReadingStats:
        records = await self.library_repo.get_user_records(user_id)
        return self.aggregator.reading_stats(records, self.clock())

    async def compute_negative_signals(self, user_id: UUID) -> NegativeSignals:
        records = await self.library_repo.get_user_records(user_id)
        return self.aggregator.negative_signals(records)
