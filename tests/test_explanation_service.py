"""Tests for the explanation guardrail and the explain/compare flows."""

import pytest

from app.domain.entities import AllowedBooksContext, CandidateBookSummary
from app.domain.exceptions import BookNotFoundError, InvalidRequestError
from app.infrastructure.llm.services import MockLLMService
from app.services.explanation_service import ExplanationGuardrail, ExplanationService
from tests.factories import USER_ID, FakeCatalogRepository, FakeLLMService, make_book


@pytest.fixture
def guardrail():
    return ExplanationGuardrail()


@pytest.fixture
def candidates():
    return [
        CandidateBookSummary(
            id=f"c{i}", title=f"Candidate {i}", authors=["Author"], categories=["Fantasy"], score=0.9 - i / 10
        )
        for i in range(1, 6)
    ]


# ---------------------------------------------------------------------------
# Guardrail
# ---------------------------------------------------------------------------
def test_validate_book_in_catalog(guardrail, candidates):
    allowed = AllowedBooksContext.from_candidates(candidates)

    assert guardrail.validate_book_in_catalog("c1", allowed).passed is True
    rejected = guardrail.validate_book_in_catalog("made-up", allowed)
    assert rejected.passed is False
    assert rejected.error == "Book not in catalog"
    assert "catalog search" in rejected.suggested_response


def test_extract_alternatives_filters_unknown_ids(guardrail, candidates):
    text = "Try [ID:c2] or [ID:ghost-book] and also [ID:c1]."
    alternatives = guardrail.extract_alternatives(text, candidates)
    assert [a.id for a in alternatives] == ["c2", "c1"]
    assert alternatives[0].title == "Candidate 2"


def test_extract_alternatives_dedupes_and_caps(guardrail, candidates):
    text = "[ID:c3] [ID:c3] [ID:c1] [ID:c5] [ID:c4] [ID:c2]"
    alternatives = guardrail.extract_alternatives(text, candidates)
    assert [a.id for a in alternatives] == ["c3", "c1", "c5"]


def test_extract_alternatives_is_idempotent(guardrail, candidates):
    text = "Maybe [ID:c4], or [ID:c1]."
    assert guardrail.extract_alternatives(text, candidates) == guardrail.extract_alternatives(text, candidates)


def test_scrub_removes_only_unknown_tags(guardrail, candidates):
    allowed = AllowedBooksContext.from_candidates(candidates)
    text = "Read [ID:c1] next, not [ID:ghost-book]."

    assert guardrail.scrub(text, allowed) == "Read [ID:c1] next, not."
    assert guardrail.scrub("[ID:c2] and [ID:c3]", allowed) == "[ID:c2] and [ID:c3]"
    assert guardrail.scrub("", allowed) == ""


def test_extract_alternatives_without_tags(guardrail, candidates):
    assert guardrail.extract_alternatives("No suggestions here.", candidates) == []
    assert guardrail.extract_alternatives("[ID:c1]", []) == []


# ---------------------------------------------------------------------------
# Explain
# ---------------------------------------------------------------------------
async def test_explain_with_llm_text(explanation_service, llm_service):
    llm_service.explain_text = 'It matches your love of Fantasy. Try also "Genre Mix" [ID:n4] or [ID:elsewhere].'
    result = await explanation_service.explain(USER_ID, "n1", context="Is it dark?")

    assert result.book_id == "n1"
    assert result.explanation.startswith("It matches")
    assert result.confidence == 0.39
    assert result.reasons[0] == "You highly rate Fantasy books"
    assert "[ID:elsewhere]" not in result.explanation
    assert result.explanation.endswith("[ID:n4] or.")
    assert [a.id for a in result.alternatives] == ["n4"]

    context = llm_service.contexts[0]
    assert context["user_question"] == "Is it dark?"
    assert "n1" not in {c.id for c in context["candidates"]}
    assert len(context["candidates"]) <= 10


async def test_explain_falls_back_when_llm_fails(explanation_service, llm_service):
    llm_service.error = RuntimeError("provider down")
    result = await explanation_service.explain(USER_ID, "n4")

    assert result.explanation.startswith('We recommend "Genre Mix" because:')
    assert [a.id for a in result.alternatives] == ["n1"]
    assert result.alternatives[0].reason.startswith("Similar match score: ")
    assert result.alternatives[0].reason.endswith("%")


async def test_explain_falls_back_on_empty_text(explanation_service):
    result = await explanation_service.explain(USER_ID, "n1")
    assert "You highly rate Fantasy books" in result.explanation
    assert len(result.alternatives) <= 2


async def test_explain_with_mock_provider(catalog_repo, preference_service, recommendation_service):
    service = ExplanationService(catalog_repo, preference_service, recommendation_service, MockLLMService())
    result = await service.explain(USER_ID, "n1")

    assert "[ID:n4]" in result.explanation
    assert [a.id for a in result.alternatives] == ["n4"]


async def test_explain_unknown_book(explanation_service):
    with pytest.raises(BookNotFoundError):
        await explanation_service.explain(USER_ID, "missing")


# ---------------------------------------------------------------------------
# Compare
# ---------------------------------------------------------------------------
@pytest.mark.parametrize("book_ids", [["n1"], ["n1", "n2", "n3", "n4", "n5", "r1"]])
async def test_compare_rejects_bad_sizes_before_lookup(explanation_service, catalog_repo, book_ids):
    with pytest.raises(InvalidRequestError):
        await explanation_service.compare(USER_ID, book_ids)
    assert catalog_repo.lookups == []


@pytest.mark.parametrize("book_ids", [["n1", "n4"], ["n1", "n4", "n5"], ["n1", "n2", "n3", "n4", "n5"]])
async def test_compare_accepts_two_to_five(explanation_service, book_ids):
    result = await explanation_service.compare(USER_ID, book_ids)

    assert [b.id for b in result.books] == book_ids
    assert result.best_fit_id == "n1"
    best = result.books[0]
    assert result.best_fit_reason == f"{round(best.score * 100)}% match"


async def test_compare_unknown_book(explanation_service):
    with pytest.raises(BookNotFoundError):
        await explanation_service.compare(USER_ID, ["n1", "missing"])


async def test_compare_uses_llm_text(explanation_service, llm_service):
    llm_service.compare_text = "New Fantasy [ID:n1] is the closest match."
    result = await explanation_service.compare(USER_ID, ["n4", "n1"], question="Which first?")

    assert result.comparison == "New Fantasy [ID:n1] is the closest match."
    assert result.best_fit_id == "n1"
    assert llm_service.contexts[0]["user_question"] == "Which first?"


async def test_compare_text_keeps_only_compared_ids(explanation_service, llm_service):
    llm_service.compare_text = "Pick [ID:n1] over [ID:n4]; skip [ID:elsewhere] and [ID:n2]."
    result = await explanation_service.compare(USER_ID, ["n4", "n1"])

    assert "[ID:elsewhere]" not in result.comparison
    assert "[ID:n2]" not in result.comparison
    assert result.comparison == "Pick [ID:n1] over [ID:n4]; skip and."


async def test_compare_templated_on_llm_failure(explanation_service, llm_service):
    llm_service.error = RuntimeError("timeout")
    result = await explanation_service.compare(USER_ID, ["n4", "n1"])

    assert result.comparison.startswith("Book comparison:")
    assert 'Best fit: "New Fantasy"' in result.comparison
    assert result.books[1].matched_authors == ["Author A"]


async def test_compare_ties_pick_first(preference_service, recommendation_service):
    catalog = FakeCatalogRepository([make_book("t1"), make_book("t2")])
    service = ExplanationService(catalog, preference_service, recommendation_service, FakeLLMService())
    result = await service.compare(USER_ID, ["t2", "t1"])

    assert result.books[0].score == result.books[1].score
    assert result.best_fit_id == "t2"
