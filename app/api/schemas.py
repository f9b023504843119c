"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------------
class BookFormatsResponse(BaseModel):
    paper: bool
    ebook: bool
    audiobook: bool

    model_config = ConfigDict(from_attributes=True)


class RecommendedBookResponse(BaseModel):
    id: str
    title: str
    authors: list[str]
    author_ids: list[str]
    categories: list[str]
    category_ids: list[str]
    formats: BookFormatsResponse
    avg_rating: float
    ratings_count: int
    has_offers: bool
    isbn: Optional[str] = None
    cover_url: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------
class RecommendationDebugResponse(BaseModel):
    category_score: float
    author_score: float
    format_score: float
    popularity_score: float
    matched_categories: list[str]
    matched_authors: list[str]
    matched_format: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RecommendationItemResponse(BaseModel):
    book: RecommendedBookResponse
    score: float
    reasons: list[str]
    debug: Optional[RecommendationDebugResponse] = None

    model_config = ConfigDict(from_attributes=True)


class RecommendationMetaResponse(BaseModel):
    confidence: float
    fallback_used: bool
    candidates_considered: int
    excluded: int
    algorithm_version: str

    model_config = ConfigDict(from_attributes=True)


class RecommendationListResponse(BaseModel):
    items: list[RecommendationItemResponse]
    meta: RecommendationMetaResponse

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Explain / compare
# ---------------------------------------------------------------------------
class ExplainRequest(BaseModel):
    book_id: str = Field(..., min_length=1, max_length=64)
    context: Optional[str] = Field(None, max_length=500)


class AlternativeBookResponse(BaseModel):
    id: str
    title: str
    authors: list[str]
    reason: str

    model_config = ConfigDict(from_attributes=True)


class ExplainResponse(BaseModel):
    book_id: str
    explanation: str
    reasons: list[str]
    confidence: float
    alternatives: list[AlternativeBookResponse]

    model_config = ConfigDict(from_attributes=True)


class CompareRequest(BaseModel):
    """Book ids to compare; the 2..5 bound is enforced by the service (400)."""

    book_ids: list[str]
    question: Optional[str] = Field(None, max_length=500)


class ComparedBookResponse(BaseModel):
    id: str
    title: str
    authors: list[str]
    score: float
    matched_categories: list[str]
    matched_authors: list[str]

    model_config = ConfigDict(from_attributes=True)


class CompareResponse(BaseModel):
    books: list[ComparedBookResponse]
    comparison: str
    best_fit_id: Optional[str] = None
    best_fit_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
class CategoryAffinityResponse(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    parent_id: Optional[str] = None
    score: float
    sample_count: int
    average_rating: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class AuthorAffinityResponse(BaseModel):
    id: str
    name: str
    score: float
    sample_count: int
    books_read: int
    average_rating: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class FormatAffinityResponse(BaseModel):
    format: Literal["paper", "ebook", "audiobook"]
    score: float
    from_bookshelf: int
    from_purchases: int
    total: int

    model_config = ConfigDict(from_attributes=True)


class StatusCountsResponse(BaseModel):
    want_to_read: int
    reading: int
    read: int

    model_config = ConfigDict(from_attributes=True)


class RatingStatsResponse(BaseModel):
    count: int
    average: float
    distribution: dict[int, int]

    model_config = ConfigDict(from_attributes=True)


class RecentActivityResponse(BaseModel):
    books_added: int
    books_rated: int
    books_finished: int

    model_config = ConfigDict(from_attributes=True)


class ReadingStatsResponse(BaseModel):
    total_books: int
    by_status: StatusCountsResponse
    ratings: RatingStatsResponse
    recent_activity: RecentActivityResponse

    model_config = ConfigDict(from_attributes=True)


class NegativeSignalsResponse(BaseModel):
    categories: list[CategoryAffinityResponse]
    authors: list[AuthorAffinityResponse]

    model_config = ConfigDict(from_attributes=True)


class DataQualityResponse(BaseModel):
    has_enough_data: bool
    confidence: float
    last_rating_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserPreferencesResponse(BaseModel):
    user_id: UUID
    calculated_at: datetime
    categories: list[CategoryAffinityResponse]
    authors: list[AuthorAffinityResponse]
    formats: list[FormatAffinityResponse]
    stats: ReadingStatsResponse
    negative_signals: NegativeSignalsResponse
    data_quality: DataQualityResponse

    model_config = ConfigDict(from_attributes=True)
