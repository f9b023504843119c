"""Structured, reusable prompt templates for LLM interactions.

This module implements a PromptTemplate pattern so that every LLM call uses
a well-defined, version-controlled prompt.  Prompts are separated from service
logic to allow independent iteration and easy auditing.

The model only ever *explains* scores computed by the recommendation engine.
Every prompt hands it the catalog books it may mention, each tagged
``[ID:<id>]``, and the guardrail discards any id outside that list.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class PromptTemplate:
    """A reusable prompt template with named placeholders.

    Usage::

        tpl = PromptTemplate(
            name="explain_recommendation",
            system="You are a book recommendation assistant.",
            user="Explain why {title} fits this reader.",
        )
        messages = tpl.render(title="Dune")
    """

    name: str
    system: str
    user: str
    description: str = ""
    version: str = "1.0"
    tags: list[str] = field(default_factory=list)

    # ------------------------------------------------------------------
    def render(self, **kwargs: Any) -> list[dict[str, str]]:
        """Return an OpenAI-style messages list with placeholders filled."""
        return [
            {"role": "system", "content": self.system.format(**kwargs)},
            {"role": "user", "content": self.user.format(**kwargs)},
        ]

    def render_flat(self, **kwargs: Any) -> str:
        """Return a single-string prompt (system + user) for simpler APIs."""
        sys_text = self.system.format(**kwargs)
        usr_text = self.user.format(**kwargs)
        return f"{sys_text}\n\n{usr_text}"


_CATALOG_RULES = (
    "RULES:\n"
    "1. Only mention books that appear in the provided candidate list.\n"
    "2. Whenever you mention a candidate, append its tag exactly as given, "
    "e.g. [ID:abc-123].\n"
    "3. Never invent books, authors or ratings.  If asked about a book that is "
    "not listed, say it is not in the current recommendations and suggest "
    "searching the catalog.\n"
    "4. Base every statement on the scores and preferences provided; do not "
    "change or re-rank the scores."
)

# =========================================================================
# Pre-defined prompts used by the explanation service
# =========================================================================

EXPLAIN_RECOMMENDATION_PROMPT = PromptTemplate(
    name="explain_recommendation",
    description="Explain why one catalog book was recommended to a reader.",
    version="1.0",
    tags=["recommendation", "explain", "guardrailed"],
    system=(
        "You are Folio's book recommendation assistant.  "
        "You explain recommendations that a deterministic scoring engine has "
        "already produced; you never produce recommendations of your own.\n\n"
        + _CATALOG_RULES
        + "\n\nAnswer in 3-5 sentences, then optionally suggest up to 3 "
        "candidates under a 'Try also:' line."
    ),
    user=(
        "=== BOOK ===\n"
        '"{title}" by {authors}\n'
        "Categories: {categories}\n"
        "Formats: {formats}\n"
        "Reader rating: {avg_rating}/5 from {ratings_count} ratings\n\n"
        "=== MATCH SCORE ===\n"
        "Overall: {score}%\n"
        "{score_breakdown}\n"
        "Reasons: {reasons}\n\n"
        "=== READER PROFILE ===\n"
        "{reader_profile}\n\n"
        "=== CANDIDATES (the only books you may mention) ===\n"
        "{candidates}\n\n"
        "=== READER QUESTION ===\n"
        "{user_question}"
    ),
)

COMPARE_BOOKS_PROMPT = PromptTemplate(
    name="compare_books",
    description="Compare 2-5 scored catalog books for a single reader.",
    version="1.0",
    tags=["recommendation", "compare", "guardrailed"],
    system=(
        "You are Folio's book recommendation assistant.  "
        "Compare the listed books for this reader using only the match "
        "scores and preferences provided.\n\n"
        + _CATALOG_RULES
        + "\n\nKeep it under 150 words and finish with the single best fit."
    ),
    user=(
        "=== READER PREFERENCES ===\n"
        "Top categories: {top_categories}\n"
        "Top authors: {top_authors}\n"
        "Preferred format: {preferred_format}\n\n"
        "=== BOOKS TO COMPARE ===\n"
        "{books}\n\n"
        "=== READER QUESTION ===\n"
        "{user_question}"
    ),
)

# Registry for programmatic access
PROMPT_REGISTRY: dict[str, PromptTemplate] = {
    tpl.name: tpl
    for tpl in [
        EXPLAIN_RECOMMENDATION_PROMPT,
        COMPARE_BOOKS_PROMPT,
    ]
}


# =========================================================================
# Context -> template variables
# =========================================================================
def _join(values, empty: str = "none") -> str:
    values = [str(v) for v in values if v]
    return ", ".join(values) if values else empty


def _question(text: Optional[str]) -> str:
    return text.strip() if text and text.strip() else "(none, give a general explanation)"


def format_candidate_list(candidates: list) -> str:
    if not candidates:
        return "No other candidates available."
    return "\n".join(
        f'- [ID:{c.id}] "{c.title}" - {_join(c.authors, "unknown author")} '
        f"({_join(c.categories, 'uncategorized')}), match {round(c.score * 100)}%"
        for c in candidates
    )


def explain_variables(context: dict) -> dict[str, str]:
    """Flatten the explanation context built by the service into template variables."""
    book = context["book"]
    debug = context.get("scoring")
    stats = context.get("reading_stats") or {}

    breakdown = "No score breakdown available."
    if debug is not None:
        breakdown = (
            f"Category {debug.category_score:.2f} (matched: {_join(debug.matched_categories)}), "
            f"author {debug.author_score:.2f} (matched: {_join(debug.matched_authors)}), "
            f"format {debug.format_score:.2f} (matched: {debug.matched_format or 'none'}), "
            f"popularity {debug.popularity_score:.2f}"
        )

    preferred_formats = [f.format for f in context.get("format_affinities", []) if f.score > 0]
    profile = "\n".join(
        [
            f"Favourite categories: {_join(a.name for a in context.get('category_affinities', [])[:5])}",
            f"Favourite authors: {_join(a.name for a in context.get('author_affinities', [])[:5])}",
            f"Formats by preference: {_join(preferred_formats)}",
            f"Disliked categories: {_join(context.get('negative_categories', []))}",
            f"Disliked authors: {_join(context.get('negative_authors', []))}",
            f"Books on shelf: {stats.get('total_books', 0)}, read: {stats.get('read_count', 0)}, "
            f"average rating given: {stats.get('average_rating', 0.0):.1f}/5",
        ]
    )

    formats = [name for name in ("paper", "ebook", "audiobook") if book.formats.offers(name)]
    return {
        "title": book.title,
        "authors": _join(book.authors, "unknown author"),
        "categories": _join(book.categories, "uncategorized"),
        "formats": _join(formats),
        "avg_rating": f"{book.avg_rating:.1f}",
        "ratings_count": str(book.ratings_count),
        "score": str(round(context.get("score", 0.0) * 100)),
        "score_breakdown": breakdown,
        "reasons": _join(context.get("reasons", [])),
        "reader_profile": profile,
        "candidates": format_candidate_list(context.get("candidates", [])),
        "user_question": _question(context.get("user_question")),
    }


def compare_variables(context: dict) -> dict[str, str]:
    """Flatten the comparison context built by the service into template variables."""
    prefs = context.get("preferences") or {}
    lines = []
    for entry in context["books"]:
        book, debug = entry["book"], entry.get("scoring")
        line = (
            f'- [ID:{book.id}] "{book.title}" - {_join(book.authors, "unknown author")}: '
            f"match {round(entry['score'] * 100)}%"
        )
        if debug is not None:
            line += (
                f"; categories matched: {_join(debug.matched_categories)}"
                f"; authors matched: {_join(debug.matched_authors)}"
            )
        lines.append(line)

    return {
        "top_categories": _join(prefs.get("top_categories", [])),
        "top_authors": _join(prefs.get("top_authors", [])),
        "preferred_format": prefs.get("preferred_format") or "none",
        "books": "\n".join(lines),
        "user_question": _question(context.get("user_question")),
    }
