"""Domain-level application service interfaces (ports).

These abstract classes define the contracts that the API layer depends on.
Concrete implementations live in ``app/services/`` and are wired together
by the composition root in ``app/core/dependencies.py``.

Keeping these interfaces in the domain layer means:
  - Route handlers import from ``app.domain`` only, never a concrete service.
  - Every service can be replaced with a test double via FastAPI's
    ``app.dependency_overrides`` without touching business logic.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from app.domain.entities import (
    AuthorAffinity,
    CategoryAffinity,
    CompareResult,
    ExplainResult,
    FormatAffinity,
    NegativeSignals,
    ReadingStats,
    Recommendation,
    RecommendationQuery,
    RecommendationResponse,
    RecommendedBook,
    UserPreferences,
)


class IPreferenceService(ABC):

    @abstractmethod
    async def get_user_preferences(self, user_id: UUID) -> UserPreferences:
        pass

    @abstractmethod
    async def compute_category_affinity(self, user_id: UUID) -> list[CategoryAffinity]:
        pass

    @abstractmethod
    async def compute_author_affinity(self, user_id: UUID) -> list[AuthorAffinity]:
        pass

    @abstractmethod
    async def compute_format_affinity(self, user_id: UUID) -> list[FormatAffinity]:
        pass

    @abstractmethod
    async def compute_reading_stats(self, user_id: UUID) -> ReadingStats:
        pass

    @abstractmethod
    async def compute_negative_signals(self, user_id: UUID) -> NegativeSignals:
        pass


class IRecommendationService(ABC):

    @abstractmethod
    async def get_recommendations(
        self, user_id: UUID, query: Optional[RecommendationQuery] = None
    ) -> RecommendationResponse:
        pass

    @abstractmethod
    def score_book(
        self,
        book: RecommendedBook,
        preferences: UserPreferences,
        include_debug: bool = False,
    ) -> Recommendation:
        pass


class IExplanationService(ABC):

    @abstractmethod
    async def explain(
        self, user_id: UUID, book_id: str, context: Optional[str] = None
    ) -> ExplainResult:
        pass

    @abstractmethod
    async def compare(
        self, user_id: UUID, book_ids: list[str], question: Optional[str] = None
    ) -> CompareResult:
        pass
