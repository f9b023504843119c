"""Domain entities for Folio.

Everything here is a value object computed per request.  The recommendation
engine never persists these; the catalog/library rows they are built from
belong to the relational store behind the repository ports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from uuid import UUID

BookFormat = Literal["paper", "ebook", "audiobook"]
FORMATS: tuple[BookFormat, ...] = ("paper", "ebook", "audiobook")


class ReadingStatus(str, Enum):
    WANT_TO_READ = "want_to_read"
    READING = "reading"
    READ = "read"


# ---------------------------------------------------------------------------
# Catalog / library snapshots (input side)
# ---------------------------------------------------------------------------
@dataclass
class BookFormats:
    paper: bool = False
    ebook: bool = False
    audiobook: bool = False

    def offers(self, fmt: str) -> bool:
        return bool(getattr(self, fmt, False)) if fmt in FORMATS else False

    def any(self) -> bool:
        return self.paper or self.ebook or self.audiobook


@dataclass
class CategoryRef:
    id: str
    name: str
    slug: Optional[str] = None
    parent_id: Optional[str] = None


@dataclass
class AuthorRef:
    id: str
    name: str


@dataclass
class LibraryRecord:
    """One bookshelf row joined with the book it points at.

    Any timestamp may be missing; the aggregator treats missing values as
    neutral rather than failing.
    """

    book_id: str
    status: str
    rating: Optional[int] = None
    rated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    categories: list[CategoryRef] = field(default_factory=list)
    authors: list[AuthorRef] = field(default_factory=list)
    formats: BookFormats = field(default_factory=BookFormats)


@dataclass
class RecommendedBook:
    """Denormalized catalog read-model fed into scoring.  Never mutated."""

    id: str
    title: str
    authors: list[str] = field(default_factory=list)
    author_ids: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    category_ids: list[str] = field(default_factory=list)
    formats: BookFormats = field(default_factory=BookFormats)
    avg_rating: float = 0.0
    ratings_count: int = 0
    has_offers: bool = False
    isbn: Optional[str] = None
    cover_url: Optional[str] = None
    description: Optional[str] = None


# ---------------------------------------------------------------------------
# Preference aggregates
# ---------------------------------------------------------------------------
@dataclass
class AffinityScore:
    """Shared shape of every scored entity in an affinity list."""

    id: str
    name: str
    score: float  # 0..1, max raw weight in the list maps to 1.0
    sample_count: int
    average_rating: Optional[float] = None


@dataclass
class CategoryAffinity(AffinityScore):
    slug: Optional[str] = None
    parent_id: Optional[str] = None
    kind: Literal["category"] = "category"


@dataclass
class AuthorAffinity(AffinityScore):
    books_read: int = 0
    kind: Literal["author"] = "author"


@dataclass
class FormatAffinity:
    format: BookFormat
    score: float
    from_bookshelf: int
    from_purchases: int
    total: int  # from_bookshelf + 2 * from_purchases


@dataclass
class StatusCounts:
    want_to_read: int = 0
    reading: int = 0
    read: int = 0


@dataclass
class RatingStats:
    count: int = 0
    average: float = 0.0
    distribution: dict[int, int] = field(
        default_factory=lambda: {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    )


@dataclass
class RecentActivity:
    books_added: int = 0
    books_rated: int = 0
    books_finished: int = 0


@dataclass
class ReadingStats:
    total_books: int = 0
    by_status: StatusCounts = field(default_factory=StatusCounts)
    ratings: RatingStats = field(default_factory=RatingStats)
    recent_activity: RecentActivity = field(default_factory=RecentActivity)


@dataclass
class NegativeSignals:
    categories: list[CategoryAffinity] = field(default_factory=list)
    authors: list[AuthorAffinity] = field(default_factory=list)


@dataclass
class DataQuality:
    has_enough_data: bool = False
    confidence: float = 0.0
    last_rating_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None


@dataclass
class UserPreferences:
    """Aggregate snapshot of a user's taste, recomputed on every request."""

    user_id: UUID
    calculated_at: datetime
    categories: list[CategoryAffinity] = field(default_factory=list)
    authors: list[AuthorAffinity] = field(default_factory=list)
    formats: list[FormatAffinity] = field(default_factory=list)
    stats: ReadingStats = field(default_factory=ReadingStats)
    negative_signals: NegativeSignals = field(default_factory=NegativeSignals)
    data_quality: DataQuality = field(default_factory=DataQuality)


# ---------------------------------------------------------------------------
# Recommendation output
# ---------------------------------------------------------------------------
@dataclass
class RecommendationDebug:
    category_score: float
    author_score: float
    format_score: float
    popularity_score: float
    matched_categories: list[str] = field(default_factory=list)
    matched_authors: list[str] = field(default_factory=list)
    matched_format: Optional[str] = None


@dataclass
class Recommendation:
    book: RecommendedBook
    score: float
    reasons: list[str] = field(default_factory=list)
    debug: Optional[RecommendationDebug] = None


@dataclass
class RecommendationQuery:
    limit: int = 10
    debug: bool = False
    format: Optional[BookFormat] = None
    category_id: Optional[str] = None


@dataclass
class RecommendationMeta:
    confidence: float
    fallback_used: bool
    candidates_considered: int
    excluded: int
    algorithm_version: str


@dataclass
class RecommendationResponse:
    items: list[Recommendation]
    meta: RecommendationMeta


# ---------------------------------------------------------------------------
# Explanation layer
# ---------------------------------------------------------------------------
@dataclass
class CandidateBookSummary:
    id: str
    title: str
    authors: list[str]
    categories: list[str]
    score: float


@dataclass
class AlternativeBook:
    id: str
    title: str
    authors: list[str]
    reason: str


@dataclass
class AllowedBooksContext:
    allowed_ids: set[str]
    id_to_title: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_candidates(cls, candidates: list[CandidateBookSummary]) -> "AllowedBooksContext":
        return cls(
            allowed_ids={c.id for c in candidates},
            id_to_title={c.id: c.title for c in candidates},
        )


@dataclass
class GuardrailResult:
    passed: bool
    error: Optional[str] = None
    suggested_response: Optional[str] = None


@dataclass
class ExplainResult:
    book_id: str
    explanation: str
    reasons: list[str]
    confidence: float
    alternatives: list[AlternativeBook] = field(default_factory=list)


@dataclass
class ComparedBook:
    id: str
    title: str
    authors: list[str]
    score: float
    matched_categories: list[str] = field(default_factory=list)
    matched_authors: list[str] = field(default_factory=list)


@dataclass
class CompareResult:
    books: list[ComparedBook]
    comparison: str
    best_fit_id: Optional[str] = None
    best_fit_reason: Optional[str] = None
