"""Repository interfaces (ports) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from app.domain.entities import LibraryRecord, RecommendedBook, UserPreferences


class ICatalogRepository(ABC):

    @abstractmethod
    async def get_by_id(self, book_id: str) -> Optional[RecommendedBook]:
        pass

    @abstractmethod
    async def list_candidates(
        self,
        limit: int,
        format: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> list[RecommendedBook]:
        """Return up to ``limit`` books ordered by ratings count, then rating."""
        pass

    @abstractmethod
    async def list_popular(self, limit: int) -> list[RecommendedBook]:
        pass


class ILibraryRepository(ABC):

    @abstractmethod
    async def get_user_records(self, user_id: UUID) -> list[LibraryRecord]:
        """Every bookshelf row of the user, joined with categories/authors/formats."""
        pass

    @abstractmethod
    async def get_read_book_ids(self, user_id: UUID) -> set[str]:
        pass

    @abstractmethod
    async def get_data_version(self, user_id: UUID) -> str:
        """Cheap fingerprint that changes whenever the user's activity changes."""
        pass


class IPurchaseRepository(ABC):

    @abstractmethod
    async def get_format_counts(self, user_id: UUID) -> dict[str, int]:
        """Purchase counts grouped by format name (rows without a format skipped)."""
        pass


class IPreferenceCache(ABC):

    @abstractmethod
    async def get(self, user_id: UUID, data_version: str) -> Optional[UserPreferences]:
        pass

    @abstractmethod
    async def set(self, preferences: UserPreferences, data_version: str) -> None:
        pass


class ILLMService(ABC):

    @abstractmethod
    async def explain_recommendation(self, context: dict) -> str:
        """Explain why a catalog book fits the user.  Empty string when unavailable."""
        pass

    @abstractmethod
    async def compare_books(self, context: dict) -> str:
        """Compare 2..5 scored catalog books.  Empty string when unavailable."""
        pass
