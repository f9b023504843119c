"""Pytest configuration for Folio tests."""

import pytest

from app.services.explanation_service import ExplanationService
from app.services.preference_service import PreferenceService
from app.services.recommendation import RecommendationService
from tests.factories import (
    HORROR,
    NOW,
    ROMANCE,
    SCIFI,
    USER_ID,
    FakeCatalogRepository,
    FakeLibraryRepository,
    FakeLLMService,
    FakePurchaseRepository,
    make_book,
    make_record,
)


@pytest.fixture
def active_reader_records():
    """Six rated reads in the last ten days, two of them disliked Horror."""
    return [
        make_record("r1", rating=5, days_ago=1),
        make_record("r2", rating=5, days_ago=2),
        make_record("r3", rating=4, days_ago=3, authors=(("auth-b", "Author B"),)),
        make_record(
            "r4", rating=4, days_ago=4, categories=(SCIFI,),
            authors=(("auth-c", "Author C"),), paper=False, ebook=True,
        ),
        make_record("h1", rating=1, days_ago=5, categories=(HORROR,), authors=(("auth-h", "Author H"),)),
        make_record("h2", rating=2, days_ago=6, categories=(HORROR,), authors=(("auth-h", "Author H"),)),
    ]


@pytest.fixture
def catalog_books():
    """Every book the active reader has read, plus unread candidates."""
    return [
        make_book("r1", ratings_count=500),
        make_book("r2", ratings_count=450),
        make_book("r3", ratings_count=400, authors=(("auth-b", "Author B"),)),
        make_book("r4", ratings_count=350, categories=(SCIFI,), authors=(("auth-c", "Author C"),)),
        make_book("h1", ratings_count=300, categories=(HORROR,), authors=(("auth-h", "Author H"),)),
        make_book("h2", ratings_count=250, categories=(HORROR,), authors=(("auth-h", "Author H"),)),
        make_book("n1", title="New Fantasy", ratings_count=200),
        make_book("n2", title="Pure Horror", ratings_count=150, categories=(HORROR,)),
        make_book("n3", title="Dark Fantasy", ratings_count=120, categories=(HORROR, ("cat-fantasy", "Fantasy"))),
        make_book(
            "n4", title="Genre Mix", ratings_count=110,
            categories=(HORROR, ("cat-fantasy", "Fantasy"), SCIFI),
            authors=(("auth-x", "Author X"),),
        ),
        make_book(
            "n5", title="Unrelated Romance", ratings_count=5, avg_rating=3.0,
            categories=(ROMANCE,), authors=(("auth-z", "Author Z"),), paper=False, ebook=True,
        ),
    ]


@pytest.fixture
def catalog_repo(catalog_books):
    return FakeCatalogRepository(catalog_books)


@pytest.fixture
def library_repo(active_reader_records):
    return FakeLibraryRepository({USER_ID: active_reader_records})


@pytest.fixture
def purchase_repo():
    return FakePurchaseRepository()


@pytest.fixture
def preference_service(library_repo, purchase_repo):
    return PreferenceService(library_repo, purchase_repo, clock=lambda: NOW)


@pytest.fixture
def recommendation_service(catalog_repo, library_repo, preference_service):
    return RecommendationService(catalog_repo, library_repo, preference_service)


@pytest.fixture
def llm_service():
    return FakeLLMService()


@pytest.fixture
def explanation_service(catalog_repo, preference_service, recommendation_service, llm_service):
    return ExplanationService(catalog_repo, preference_service, recommendation_service, llm_service)
