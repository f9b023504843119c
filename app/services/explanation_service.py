"""LLM-backed explanations of engine output, guarded to catalog-only books.

The LLM never produces or re-ranks recommendations.  It receives the scores
the engine already computed plus a list of catalog candidates, and anything
it says about other books is filtered through :class:`ExplanationGuardrail`.
When no LLM answer is available the service answers with templated text
built from the deterministic reasons.
"""

import logging
import re
from typing import Optional
from uuid import UUID

from app.domain.entities import (
    AllowedBooksContext,
    AlternativeBook,
    CandidateBookSummary,
    ComparedBook,
    CompareResult,
    ExplainResult,
    GuardrailResult,
    Recommendation,
    RecommendationQuery,
    RecommendedBook,
)
from app.domain.exceptions import BookNotFoundError, InvalidRequestError
from app.domain.repositories import ICatalogRepository, ILLMService
from app.domain.services import IExplanationService, IPreferenceService, IRecommendationService

logger = logging.getLogger(__name__)

EXPLAIN_RECOMMENDATION_POOL = 15
MAX_CANDIDATES = 10
MAX_ALTERNATIVES = 3
FALLBACK_ALTERNATIVES = 2
MIN_COMPARE_BOOKS = 2
MAX_COMPARE_BOOKS = 5


def _percent(score: float) -> int:
    return round(score * 100)


class ExplanationGuardrail:
    """Keeps generated text pointing at catalog books only."""

    ID_PATTERN = re.compile(r"\[ID:([A-Za-z0-9_-]+)\]")
    TAG_PATTERN = re.compile(r"[ \t]*\[ID:([A-Za-z0-9_-]+)\]")
    NOT_IN_CATALOG = "Book not in catalog"
    SUGGESTED_RESPONSE = (
        "This book is not part of your current recommendations. "
        "Use the catalog search to look it up."
    )
    ALTERNATIVE_REASON = "Similar interests"

    def validate_book_in_catalog(
        self, book_id: str, allowed: AllowedBooksContext
    ) -> GuardrailResult:
        if book_id in allowed.allowed_ids:
            return GuardrailResult(passed=True)
        return GuardrailResult(
            passed=False,
            error=self.NOT_IN_CATALOG,
            suggested_response=self.SUGGESTED_RESPONSE,
        )

    def scrub(self, text: str, allowed: AllowedBooksContext) -> str:
        """Remove every ``[ID:<id>]`` tag whose id is not in ``allowed``."""

        def keep_allowed(match: re.Match) -> str:
            if self.validate_book_in_catalog(match.group(1), allowed).passed:
                return match.group(0)
            logger.debug("Scrubbed non-catalog id %s from generated text", match.group(1))
            return ""

        return self.TAG_PATTERN.sub(keep_allowed, text or "")

    def extract_alternatives(
        self, text: str, candidates: list[CandidateBookSummary]
    ) -> list[AlternativeBook]:
        """Pull ``[ID:<id>]`` tags out of free text, keeping only candidate ids.

        First-seen order, no duplicates, at most three entries.
        """
        allowed = AllowedBooksContext.from_candidates(candidates)
        by_id = {c.id: c for c in candidates}
        alternatives: list[AlternativeBook] = []
        seen: set[str] = set()

        for match in self.ID_PATTERN.finditer(text or ""):
            book_id = match.group(1)
            if book_id in seen:
                continue
            if not self.validate_book_in_catalog(book_id, allowed).passed:
                logger.debug("Dropping non-catalog id %s from generated text", book_id)
                continue
            seen.add(book_id)
            candidate = by_id[book_id]
            alternatives.append(
                AlternativeBook(
                    id=candidate.id,
                    title=candidate.title,
                    authors=list(candidate.authors),
                    reason=self.ALTERNATIVE_REASON,
                )
            )
            if len(alternatives) >= MAX_ALTERNATIVES:
                break

        return alternatives


class ExplanationService(IExplanationService):
    def __init__(
        self,
        catalog_repo: ICatalogRepository,
        preference_service: IPreferenceService,
        recommendation_service: IRecommendationService,
        llm_service: ILLMService,
        guardrail: Optional[ExplanationGuardrail] = None,
    ):
        self.catalog_repo = catalog_repo
        self.preference_service = preference_service
        self.recommendation_service = recommendation_service
        self.llm_service = llm_service
        self.guardrail = guardrail or ExplanationGuardrail()

    async def _get_book(self, book_id: str) -> RecommendedBook:
        book = await self.catalog_repo.get_by_id(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    # ------------------------------------------------------------------
    # Explain
    # ------------------------------------------------------------------
    async def explain(
        self, user_id: UUID, book_id: str, context: Optional[str] = None
    ) -> ExplainResult:
        book = await self._get_book(book_id)
        preferences = await self.preference_service.get_user_preferences(user_id)
        scoring = self.recommendation_service.score_book(book, preferences, include_debug=True)

        recommendations = await self.recommendation_service.get_recommendations(
            user_id, RecommendationQuery(limit=EXPLAIN_RECOMMENDATION_POOL, debug=True)
        )
        candidates = [
            CandidateBookSummary(
                id=r.book.id,
                title=r.book.title,
                authors=list(r.book.authors),
                categories=list(r.book.categories),
                score=r.score,
            )
            for r in recommendations.items
            if r.book.id != book_id
        ][:MAX_CANDIDATES]

        llm_context = {
            "book": book,
            "score": scoring.score,
            "scoring": scoring.debug,
            "reasons": scoring.reasons,
            "category_affinities": preferences.categories,
            "author_affinities": preferences.authors,
            "format_affinities": preferences.formats,
            "negative_categories": [c.name for c in preferences.negative_signals.categories],
            "negative_authors": [a.name for a in preferences.negative_signals.authors],
            "reading_stats": {
                "total_books": preferences.stats.total_books,
                "read_count": preferences.stats.by_status.read,
                "average_rating": preferences.stats.ratings.average,
            },
            "candidates": candidates,
            "user_question": context,
        }

        confidence = preferences.data_quality.confidence
        explanation = await self._ask_llm(
            "explanation", self.llm_service.explain_recommendation, llm_context
        )
        if not explanation:
            logger.info("Templated explanation for book %s (user %s)", book_id, user_id)
            return self._fallback_explanation(book, scoring, candidates, confidence)

        allowed = AllowedBooksContext.from_candidates(candidates)
        allowed.allowed_ids.add(book.id)
        explanation = self.guardrail.scrub(explanation, allowed)
        return ExplainResult(
            book_id=book.id,
            explanation=explanation,
            reasons=scoring.reasons,
            confidence=confidence,
            alternatives=self.guardrail.extract_alternatives(explanation, candidates),
        )

    @staticmethod
    def _fallback_explanation(
        book: RecommendedBook,
        scoring: Recommendation,
        candidates: list[CandidateBookSummary],
        confidence: float,
    ) -> ExplainResult:
        lines = [f'We recommend "{book.title}" because:']
        reasons = scoring.reasons or ["It fits your overall reading profile"]
        lines.extend(f"• {reason}" for reason in reasons)

        top = candidates[:FALLBACK_ALTERNATIVES]
        if top:
            lines.append("")
            lines.append("You might also like:")
            lines.extend(f'• "{c.title}" - {", ".join(c.authors)}' for c in top)

        return ExplainResult(
            book_id=book.id,
            explanation="\n".join(lines),
            reasons=scoring.reasons,
            confidence=confidence,
            alternatives=[
                AlternativeBook(
                    id=c.id,
                    title=c.title,
                    authors=list(c.authors),
                    reason=f"Similar match score: {_percent(c.score)}%",
                )
                for c in top
            ],
        )

    # ------------------------------------------------------------------
    # Compare
    # ------------------------------------------------------------------
    async def compare(
        self, user_id: UUID, book_ids: list[str], question: Optional[str] = None
    ) -> CompareResult:
        if len(book_ids) < MIN_COMPARE_BOOKS:
            raise InvalidRequestError(
                f"At least {MIN_COMPARE_BOOKS} books are required for comparison"
            )
        if len(book_ids) > MAX_COMPARE_BOOKS:
            raise InvalidRequestError(
                f"Maximum {MAX_COMPARE_BOOKS} books can be compared at once"
            )

        books = [await self._get_book(book_id) for book_id in book_ids]
        preferences = await self.preference_service.get_user_preferences(user_id)
        scored = [
            self.recommendation_service.score_book(book, preferences, include_debug=True)
            for book in books
        ]
        best = max(scored, key=lambda r: r.score)

        llm_context = {
            "books": [
                {"book": r.book, "scoring": r.debug, "score": r.score} for r in scored
            ],
            "preferences": {
                "top_categories": [c.name for c in preferences.categories[:3]],
                "top_authors": [a.name for a in preferences.authors[:3]],
                "preferred_format": preferences.formats[0].format if preferences.formats else None,
            },
            "user_question": question,
        }
        comparison = await self._ask_llm("comparison", self.llm_service.compare_books, llm_context)
        if not comparison:
            logger.info("Templated comparison of %d books (user %s)", len(books), user_id)
            comparison = self._fallback_comparison(scored, best)
        else:
            compared = AllowedBooksContext(allowed_ids={b.id for b in books})
            comparison = self.guardrail.scrub(comparison, compared)

        return CompareResult(
            books=[
                ComparedBook(
                    id=r.book.id,
                    title=r.book.title,
                    authors=list(r.book.authors),
                    score=r.score,
                    matched_categories=list(r.debug.matched_categories) if r.debug else [],
                    matched_authors=list(r.debug.matched_authors) if r.debug else [],
                )
                for r in scored
            ],
            comparison=comparison,
            best_fit_id=best.book.id,
            best_fit_reason=f"{_percent(best.score)}% match",
        )

    @staticmethod
    def _fallback_comparison(scored: list[Recommendation], best: Recommendation) -> str:
        lines = ["Book comparison:", ""]
        for r in scored:
            lines.append(f'"{r.book.title}" - {", ".join(r.book.authors)}')
            lines.append(f"  Match score: {_percent(r.score)}%")
            if r.debug and r.debug.matched_categories:
                lines.append(f"  Matching categories: {', '.join(r.debug.matched_categories)}")
            lines.append("")
        lines.append(f'Best fit: "{best.book.title}" with {_percent(best.score)}%')
        return "\n".join(lines)

    # ------------------------------------------------------------------
    async def _ask_llm(self, kind: str, call, context: dict) -> str:
        try:
            return (await call(context) or "").strip()
        except Exception as exc:
            logger.warning("LLM %s failed (%s); falling back to template", kind, exc)
            return ""
