"""Deterministic, explainable recommendation engine for Folio.

No learned model: every score is a fixed weighted formula over the user's
preference snapshot, so the same inputs always produce the same ranking.

Pipeline:

  1. Load the user's preference snapshot (category/author/format affinities)
  2. Candidate selection (popularity-ordered pool minus read / disliked books)
  3. Scoring: weighted category, author, format and popularity components
  4. Human-readable reasons per book
  5. Filter by minimum score, sort, truncate

Users without enough history get a popularity-ranked fallback list instead.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from app.core.config import Settings
from app.domain.entities import (
    AuthorAffinity,
    CategoryAffinity,
    FormatAffinity,
    Recommendation,
    RecommendationDebug,
    RecommendationMeta,
    RecommendationQuery,
    RecommendationResponse,
    RecommendedBook,
    UserPreferences,
)
from app.domain.repositories import ICatalogRepository, ILibraryRepository
from app.domain.services import IPreferenceService, IRecommendationService

logger = logging.getLogger(__name__)


# ======================================================================
# Configuration
# ======================================================================
@dataclass(frozen=True)
class ScoringWeights:
    category: float = 0.4
    author: float = 0.3
    format: float = 0.2
    popularity: float = 0.1

    def __post_init__(self):
        values = (self.category, self.author, self.format, self.popularity)
        if any(v < 0 for v in values):
            raise ValueError("Scoring weights must be non-negative")
        if not math.isclose(sum(values), 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1.0, got {sum(values):.4f}")


@dataclass(frozen=True)
class RecommendationConfig:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    candidate_pool_size: int = 200
    min_score: float = 0.1
    max_results: int = 20
    min_confidence_for_personalized: float = 0.2
    offer_boost: float = 0.05
    max_reasons_per_book: int = 4
    default_limit: int = 10
    algorithm_version: str = "1.0.0"

    def __post_init__(self):
        if self.candidate_pool_size <= 0 or self.max_results <= 0:
            raise ValueError("candidate_pool_size and max_results must be positive")
        if self.offer_boost < 0 or self.min_score < 0:
            raise ValueError("offer_boost and min_score must be non-negative")
        if self.max_reasons_per_book < 1:
            raise ValueError("max_reasons_per_book must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> RecommendationConfig:
        return cls(
            weights=ScoringWeights(
                category=settings.weight_category,
                author=settings.weight_author,
                format=settings.weight_format,
                popularity=settings.weight_popularity,
            ),
            candidate_pool_size=settings.candidate_pool_size,
            min_score=settings.min_score,
            max_results=settings.max_results,
            min_confidence_for_personalized=settings.min_confidence_for_personalized,
            offer_boost=settings.offer_boost,
            max_reasons_per_book=settings.max_reasons_per_book,
            algorithm_version=settings.algorithm_version,
        )


# Score a book gets when it matches no preferred format but is available somehow
FORMAT_AVAILABILITY_SCORE = 0.3
# Popularity of a book nobody has rated yet
UNRATED_POPULARITY_SCORE = 0.3


class ReasonTemplates:
    @staticmethod
    def category_match(category: str, rating: Optional[float] = None) -> str:
        if rating and rating >= 4:
            return f"You highly rate {category} books"
        return f"You enjoy {category} books"

    @staticmethod
    def author_match(author: str, books_read: int) -> str:
        if books_read > 2:
            return f"You frequently read {author}"
        return f"You've enjoyed books by {author}"

    @staticmethod
    def format_match(fmt: str) -> str:
        return f"Available in your preferred format ({fmt})"

    @staticmethod
    def popular_book(rating: float) -> str:
        return f"Highly rated by readers ({rating:.1f}/5)"

    @staticmethod
    def has_offers() -> str:
        return "Available now from multiple stores"

    @staticmethod
    def popular_among_readers() -> str:
        return "Popular among readers"


def is_highly_rated(book: RecommendedBook) -> bool:
    return book.avg_rating >= 4.0 and book.ratings_count >= 10


# ======================================================================
# Candidate selection
# ======================================================================
@dataclass
class CandidateSelection:
    candidates: list[RecommendedBook]
    excluded: int
    read_ids: set[str]


class CandidateSelector:
    """Bounded, popularity-ordered candidate pool minus excluded books."""

    def __init__(
        self,
        catalog_repo: ICatalogRepository,
        library_repo: ILibraryRepository,
        config: RecommendationConfig,
    ):
        self.catalog_repo = catalog_repo
        self.library_repo = library_repo
        self.config = config

    async def select(
        self,
        user_id: UUID,
        preferences: UserPreferences,
        query: RecommendationQuery,
    ) -> CandidateSelection:
        read_ids = await self.library_repo.get_read_book_ids(user_id)
        books = await self.catalog_repo.list_candidates(
            self.config.candidate_pool_size,
            format=query.format,
            category_id=query.category_id,
        )
        candidates, excluded = self.filter(books, read_ids, preferences)
        return CandidateSelection(candidates, excluded, read_ids)

    @staticmethod
    def filter(
        books: list[RecommendedBook],
        read_ids: set[str],
        preferences: UserPreferences,
    ) -> tuple[list[RecommendedBook], int]:
        negative_ids = {c.id for c in preferences.negative_signals.categories}
        candidates: list[RecommendedBook] = []
        excluded = 0

        for book in books:
            if book.id in read_ids:
                excluded += 1
                continue

            # Skip books whose categories are at least half disliked
            negative_matches = sum(1 for cid in book.category_ids if cid in negative_ids)
            if negative_matches > 0 and negative_matches >= len(book.category_ids) / 2:
                excluded += 1
                continue

            candidates.append(book)

        return candidates, excluded


# ======================================================================
# Scoring
# ======================================================================
@dataclass
class _Match:
    score: float = 0.0
    matched: list[str] = field(default_factory=list)
    affinities: list = field(default_factory=list)


class ScoringEngine:
    """Pure weighted scoring of a single catalog book."""

    def __init__(self, config: Optional[RecommendationConfig] = None):
        self.config = config or RecommendationConfig()

    def score_book(
        self,
        book: RecommendedBook,
        preferences: UserPreferences,
        include_debug: bool = False,
    ) -> Recommendation:
        weights = self.config.weights
        category = self._category_score(book, preferences.categories)
        author = self._author_score(book, preferences.authors)
        format_score, matched_format = self._format_score(book, preferences.formats)
        popularity = self.popularity_score(book)

        final = (
            category.score * weights.category
            + author.score * weights.author
            + format_score * weights.format
            + popularity * weights.popularity
        )
        if book.has_offers:
            final += self.config.offer_boost
        final = min(1.0, max(0.0, final))

        recommendation = Recommendation(
            book=book,
            score=round(final, 2),
            reasons=self._reasons(book, category, author, matched_format),
        )
        if include_debug:
            recommendation.debug = RecommendationDebug(
                category_score=round(category.score, 2),
                author_score=round(author.score, 2),
                format_score=round(format_score, 2),
                popularity_score=round(popularity, 2),
                matched_categories=category.matched,
                matched_authors=author.matched,
                matched_format=matched_format,
            )
        return recommendation

    @staticmethod
    def _category_score(book: RecommendedBook, affinities: list[CategoryAffinity]) -> _Match:
        by_name = {a.name: a for a in affinities}
        result = _Match()
        for name in book.categories:
            affinity = by_name.get(name)
            if affinity is None:
                continue
            result.matched.append(name)
            result.affinities.append(affinity)
            result.score = max(result.score, affinity.score)
        return result

    @staticmethod
    def _author_score(book: RecommendedBook, affinities: list[AuthorAffinity]) -> _Match:
        by_name = {a.name: a for a in affinities}
        result = _Match()
        for name in book.authors:
            affinity = by_name.get(name)
            if affinity is None:
                continue
            result.matched.append(name)
            result.affinities.append(affinity)
            result.score = max(result.score, affinity.score)
        return result

    @staticmethod
    def _format_score(
        book: RecommendedBook, affinities: list[FormatAffinity]
    ) -> tuple[float, Optional[str]]:
        for pref in sorted(affinities, key=lambda f: -f.score):
            if pref.score > 0 and book.formats.offers(pref.format):
                return pref.score, pref.format
        if book.formats.any():
            return FORMAT_AVAILABILITY_SCORE, None
        return 0.0, None

    @staticmethod
    def popularity_score(book: RecommendedBook) -> float:
        """Blend of average rating (70%) and log-scaled rating volume (30%)."""
        if book.ratings_count == 0:
            return UNRATED_POPULARITY_SCORE
        rating_score = (book.avg_rating - 1) / 4
        volume_score = min(1.0, math.log10(book.ratings_count + 1) / 3)
        return rating_score * 0.7 + volume_score * 0.3

    def _reasons(
        self,
        book: RecommendedBook,
        category: _Match,
        author: _Match,
        matched_format: Optional[str],
    ) -> list[str]:
        reasons: list[str] = []

        if category.matched:
            rating = category.affinities[0].average_rating
            reasons.append(ReasonTemplates.category_match(category.matched[0], rating))

        if author.matched:
            books_read = author.affinities[0].books_read
            reasons.append(ReasonTemplates.author_match(author.matched[0], books_read))

        if matched_format:
            reasons.append(ReasonTemplates.format_match(matched_format))

        if is_highly_rated(book):
            reasons.append(ReasonTemplates.popular_book(book.avg_rating))

        if book.has_offers and len(reasons) < self.config.max_reasons_per_book:
            reasons.append(ReasonTemplates.has_offers())

        return reasons[: self.config.max_reasons_per_book]


# ======================================================================
# Fallback
# ======================================================================
class FallbackPolicy:
    """Popularity-ranked list for users the engine cannot personalize for."""

    def __init__(self, catalog_repo: ICatalogRepository, config: RecommendationConfig):
        self.catalog_repo = catalog_repo
        self.config = config

    async def recommend(
        self,
        limit: int,
        confidence: float,
        preferences: Optional[UserPreferences] = None,
        read_ids: Optional[set[str]] = None,
    ) -> RecommendationResponse:
        """Most popular catalog books, scored by popularity alone.

        When ``read_ids`` is given the list goes through the same exclusion
        rules as candidate selection, and ``excluded`` reports the removals.
        """
        if read_ids is None:
            books = await self.catalog_repo.list_popular(limit)
            excluded = 0
        else:
            books = await self.catalog_repo.list_popular(limit + len(read_ids))
            books, excluded = CandidateSelector.filter(books, read_ids, preferences)
            books = books[:limit]
        items = [self.score(book) for book in books]
        return RecommendationResponse(
            items=items,
            meta=RecommendationMeta(
                confidence=confidence,
                fallback_used=True,
                candidates_considered=len(items),
                excluded=excluded,
                algorithm_version=self.config.algorithm_version,
            ),
        )

    @staticmethod
    def score(book: RecommendedBook) -> Recommendation:
        reasons = []
        if is_highly_rated(book):
            reasons.append(ReasonTemplates.popular_book(book.avg_rating))
        reasons.append(ReasonTemplates.popular_among_readers())
        return Recommendation(
            book=book,
            score=round(min(1.0, max(0.0, ScoringEngine.popularity_score(book))), 2),
            reasons=reasons,
        )


# ======================================================================
# Orchestrator
# ======================================================================
class RecommendationService(IRecommendationService):
    """Selects, scores and ranks candidates for one user per call."""

    def __init__(
        self,
        catalog_repo: ICatalogRepository,
        library_repo: ILibraryRepository,
        preference_service: IPreferenceService,
        config: Optional[RecommendationConfig] = None,
    ):
        self.config = config or RecommendationConfig()
        self.preference_service = preference_service
        self.selector = CandidateSelector(catalog_repo, library_repo, self.config)
        self.engine = ScoringEngine(self.config)
        self.fallback = FallbackPolicy(catalog_repo, self.config)

    def score_book(
        self,
        book: RecommendedBook,
        preferences: UserPreferences,
        include_debug: bool = False,
    ) -> Recommendation:
        return self.engine.score_book(book, preferences, include_debug)

    async def get_recommendations(
        self, user_id: UUID, query: Optional[RecommendationQuery] = None
    ) -> RecommendationResponse:
        query = query or RecommendationQuery()
        limit = min(query.limit or self.config.default_limit, self.config.max_results)

        preferences = await self.preference_service.get_user_preferences(user_id)
        quality = preferences.data_quality

        if (
            not quality.has_enough_data
            or quality.confidence < self.config.min_confidence_for_personalized
        ):
            logger.info(
                "User %s has insufficient data (confidence=%.2f); using popularity fallback",
                user_id,
                quality.confidence,
            )
            return await self.fallback.recommend(limit, quality.confidence)

        selection = await self.selector.select(user_id, preferences, query)
        candidates, excluded = selection.candidates, selection.excluded
        logger.debug(
            "Candidate selection for user %s: %d kept, %d excluded",
            user_id,
            len(candidates),
            excluded,
        )
        if not candidates:
            logger.info("No candidates left for user %s; using popularity fallback", user_id)
            return await self.fallback.recommend(
                limit, quality.confidence, preferences, selection.read_ids
            )

        scored = [self.engine.score_book(b, preferences, query.debug) for b in candidates]
        ranked = sorted(
            (r for r in scored if r.score >= self.config.min_score),
            key=lambda r: -r.score,
        )[:limit]

        logger.info(
            "Recommendations for user %s: %d returned from %d candidates",
            user_id,
            len(ranked),
            len(candidates),
        )
        return RecommendationResponse(
            items=ranked,
            meta=RecommendationMeta(
                confidence=quality.confidence,
                fallback_used=False,
                candidates_considered=len(candidates),
                excluded=excluded,
                algorithm_version=self.config.algorithm_version,
            ),
        )
