"""HTTP-level tests: routes wired to in-memory services via dependency overrides."""

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import (
    get_explanation_service,
    get_preference_service,
    get_recommendation_service,
)
from app.main import app
from tests.factories import OTHER_USER_ID, USER_ID


@pytest.fixture
def client(preference_service, recommendation_service, explanation_service):
    app.dependency_overrides[get_preference_service] = lambda: preference_service
    app.dependency_overrides[get_recommendation_service] = lambda: recommendation_service
    app.dependency_overrides[get_explanation_service] = lambda: explanation_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id=USER_ID):
    return {"X-User-ID": str(user_id)}


def test_health_endpoint(client):
    """GET /health returns 200 and {"status": "healthy"}."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_missing_user_header_is_unauthorized(client):
    assert client.get("/recommendations").status_code == 401
    assert client.get("/preferences", headers={"X-User-ID": "not-a-uuid"}).status_code == 401


def test_recommendations(client):
    response = client.get("/recommendations", params={"debug": True}, headers=auth())
    assert response.status_code == 200

    body = response.json()
    assert body["meta"]["fallback_used"] is False
    assert body["meta"]["excluded"] == 8
    assert [item["book"]["id"] for item in body["items"]] == ["n1", "n4"]
    assert body["items"][0]["debug"]["matched_format"] == "paper"


def test_recommendations_fallback_for_new_user(client):
    response = client.get("/recommendations", params={"limit": 3}, headers=auth(OTHER_USER_ID))
    assert response.status_code == 200

    body = response.json()
    assert body["meta"]["fallback_used"] is True
    assert len(body["items"]) == 3
    assert body["items"][0]["debug"] is None


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 51}, {"format": "scroll"}])
def test_recommendations_rejects_bad_query(client, params):
    assert client.get("/recommendations", params=params, headers=auth()).status_code == 422


def test_explain(client):
    response = client.post("/recommendations/explain", json={"book_id": "n1"}, headers=auth())
    assert response.status_code == 200

    body = response.json()
    assert body["book_id"] == "n1"
    assert body["explanation"]
    assert all(alt["id"] != "n1" for alt in body["alternatives"])


def test_explain_unknown_book(client):
    response = client.post("/recommendations/explain", json={"book_id": "nope"}, headers=auth())
    assert response.status_code == 404
    assert response.json()["detail"] == "Book with ID nope not found in catalog"


@pytest.mark.parametrize("book_ids", [["n1"], ["n1", "n2", "n3", "n4", "n5", "r1"]])
def test_compare_rejects_bad_sizes(client, book_ids):
    response = client.post("/recommendations/compare", json={"book_ids": book_ids}, headers=auth())
    assert response.status_code == 400


def test_compare(client):
    response = client.post(
        "/recommendations/compare", json={"book_ids": ["n4", "n1"]}, headers=auth()
    )
    assert response.status_code == 200

    body = response.json()
    assert body["best_fit_id"] == "n1"
    assert body["best_fit_reason"].endswith("% match")
    assert [b["id"] for b in body["books"]] == ["n4", "n1"]


def test_compare_unknown_book(client):
    response = client.post(
        "/recommendations/compare", json={"book_ids": ["n1", "nope"]}, headers=auth()
    )
    assert response.status_code == 404


def test_preferences_snapshot(client):
    response = client.get("/preferences", headers=auth())
    assert response.status_code == 200

    body = response.json()
    assert body["user_id"] == str(USER_ID)
    assert body["categories"][0]["name"] == "Fantasy"
    assert body["negative_signals"]["categories"][0]["id"] == "cat-horror"
    assert body["data_quality"]["has_enough_data"] is True


def test_preference_views(client):
    assert client.get("/preferences/categories", headers=auth()).json()[0]["score"] == 1.0
    assert client.get("/preferences/authors", headers=auth()).json()[0]["name"] == "Author A"
    assert [f["format"] for f in client.get("/preferences/formats", headers=auth()).json()][0] == "paper"

    stats = client.get("/preferences/stats", headers=auth()).json()
    assert stats["total_books"] == 6
    assert stats["ratings"]["count"] == 6
