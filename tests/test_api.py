import json

import pytest
from fastapi.testclient import TestClient

import reader_api
from config import Settings
from conftest import DUNE, FakeVisionClient, InMemoryProfileStore, InMemoryReviewStore
from main import app
from vision_ai import router as scan_routes
from vision_ai.errors import PersistenceFailure, ProviderError
from vision_ai.models import ReaderPreferences
from vision_ai.pipeline import CoverAnalysisPipeline


@pytest.fixture
def vision():
    return FakeVisionClient(text=json.dumps(DUNE))


@pytest.fixture
def profiles():
    return InMemoryProfileStore(default=ReaderPreferences("Sci-Fi", "8"))


@pytest.fixture
def review_store():
    return InMemoryReviewStore()


@pytest.fixture
def api(store, vision, profiles, review_store):
    settings = Settings(max_file_size=1024 * 1024)

    app.dependency_overrides[scan_routes.get_settings] = lambda: settings
    app.dependency_overrides[scan_routes.get_store] = lambda: store
    app.dependency_overrides[scan_routes.get_pipeline] = lambda: CoverAnalysisPipeline(vision, store)
    app.dependency_overrides[scan_routes.get_profiles] = lambda: profiles
    app.dependency_overrides[reader_api.get_review_store] = lambda: review_store

    yield TestClient(app)

    app.dependency_overrides.clear()


def _upload(jpeg_bytes, content_type="image/jpeg"):
    return {"file": ("cover.jpg", jpeg_bytes, content_type)}


def test_health(api):
    assert api.get("/").json() == {"status": "alive"}


def test_scan_saves_record(api, store, vision, jpeg_bytes):
    res = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes))

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "saved"
    assert body["scan"]["title"] == "Dune"
    assert body["scan"]["is_movie"] is True
    assert store.get(body["scan"]["id"]).analysis.author == "Frank Herbert"

    _, prompt = vision.calls[0]
    assert "grade 8." in prompt
    assert "(Sci-Fi)" in prompt


def test_scan_form_overrides_profile(api, vision, jpeg_bytes):
    api.post(
        "/scan",
        params={"uid": "u1"},
        files=_upload(jpeg_bytes),
        data={"genre": "Poetry", "grade": "3rd Grade"},
    )

    _, prompt = vision.calls[0]
    assert "(Poetry)" in prompt
    assert "grade 3rd Grade." in prompt


def test_scan_rejects_non_image_type(api, jpeg_bytes):
    res = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes, "text/plain"))

    assert res.status_code == 400
    assert res.json() == {"status": "invalid_type"}


def test_scan_rejects_corrupt_image(api, store):
    res = api.post("/scan", params={"uid": "u1"}, files=_upload(b"not really a jpeg"))

    assert res.status_code == 400
    assert res.json() == {"status": "invalid_image"}
    assert store.records == {}


def test_scan_rejects_large_file(api):
    res = api.post("/scan", params={"uid": "u1"}, files=_upload(b"x" * (1024 * 1024 + 1)))

    assert res.status_code == 400
    assert res.json() == {"status": "file_too_large"}


def test_scan_provider_error(api, store, vision, jpeg_bytes):
    vision.error = ProviderError("AI Error: quota exceeded")

    res = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes))

    assert res.status_code == 502
    assert res.json() == {"status": "provider_error", "message": "AI Error: quota exceeded"}
    assert store.records == {}


def test_scan_validation_failure(api, vision, jpeg_bytes):
    vision.text = json.dumps({"title": "Dune", "author": ""})

    res = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes))

    assert res.status_code == 422
    assert res.json()["status"] == "validation_failure"
    assert res.json()["field"] == "author"


def test_failed_scan_releases_reentry_guard(api, vision, jpeg_bytes):
    vision.text = "no json here"
    assert api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes)).status_code == 422

    vision.text = json.dumps(DUNE)
    assert api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes)).status_code == 200


def test_reentry_guard():
    assert scan_routes._claim("busy-user") is True
    assert scan_routes._claim("busy-user") is False
    assert scan_routes._claim("other-user") is True

    scan_routes._release("busy-user")
    scan_routes._release("other-user")

    assert scan_routes._claim("busy-user") is True
    scan_routes._release("busy-user")


def test_get_scan(api, jpeg_bytes):
    scan_id = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes)).json()["scan"]["id"]

    res = api.get(f"/scans/{scan_id}", params={"uid": "u1"})

    assert res.status_code == 200
    assert res.json()["recommendations"] == [
        {"title": "Foundation", "author": "Asimov", "reason": "similar scope"}
    ]


def test_get_scan_not_found_and_not_owner(api, jpeg_bytes):
    scan_id = api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes)).json()["scan"]["id"]

    assert api.get("/scans/missing", params={"uid": "u1"}).status_code == 404
    res = api.get(f"/scans/{scan_id}", params={"uid": "u2"})
    assert res.status_code == 403
    assert res.json() == {"status": "not_owner"}


def test_history_recent_and_recommendations(api, jpeg_bytes):
    for _ in range(4):
        api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes))

    history = api.get("/history", params={"uid": "u1"}).json()["scans"]
    assert len(history) == 4
    assert history[0]["created_at"] > history[-1]["created_at"]

    assert len(api.get("/history", params={"uid": "u1", "limit": 2}).json()["scans"]) == 2

    recent = api.get("/recent", params={"uid": "u1"}).json()
    assert recent["grade_label"] == "8th Grade"
    assert len(recent["scans"]) == 3

    recs = api.get("/recommendations", params={"uid": "u1"}).json()
    assert recs["recommendations"][0]["title"] == "Foundation"


def test_recommendations_before_first_scan(api):
    res = api.get("/recommendations", params={"uid": "nobody"})

    assert res.status_code == 200
    assert res.json() == {"recommendations": []}


def test_store_failure_is_503(api, store, monkeypatch):
    def broken(user_id, limit=None):
        raise PersistenceFailure("Could not load history: token expired")

    monkeypatch.setattr(store, "list_for_user", broken)

    res = api.get("/history", params={"uid": "u1"})

    assert res.status_code == 503
    assert res.json()["status"] == "persistence_failure"


def test_profile_update_feeds_next_scan(api, vision, jpeg_bytes):
    res = api.put(
        "/profile",
        params={"uid": "u1"},
        json={"first_name": "Ada", "favorite_genre": "Mystery", "school_grade": "5"},
    )

    assert res.status_code == 200
    profile = res.json()["profile"]
    assert profile["favorite_genre"] == "Mystery"
    assert profile["grade_label"] == "5th Grade"

    api.post("/scan", params={"uid": "u1"}, files=_upload(jpeg_bytes))

    _, prompt = vision.calls[0]
    assert "(Mystery)" in prompt
    assert "grade 5." in prompt


def test_partial_profile_update_keeps_other_fields(api):
    api.put("/profile", params={"uid": "u1"}, json={"first_name": "Ada", "last_name": "Lovelace"})
    api.put("/profile", params={"uid": "u1"}, json={"school_grade": "9"})

    profile = api.get("/profile", params={"uid": "u1"}).json()["profile"]

    assert profile["first_name"] == "Ada"
    assert profile["last_name"] == "Lovelace"
    assert profile["school_grade"] == "9"
    assert profile["favorite_genre"] == "Sci-Fi"


def test_add_review(api, review_store):
    api.put("/profile", params={"uid": "u1"}, json={"first_name": "Ada", "last_name": "Lovelace"})

    res = api.post(
        "/reviews",
        params={"uid": "u1"},
        json={"book_title": " Dune ", "author": "Frank Herbert", "stars": 4, "content": "Epic."},
    )

    assert res.status_code == 200
    review = res.json()["review"]
    assert review["book_title"] == "Dune"
    assert review["stars"] == 4
    assert review["reviewer_name"] == "Ada Lovelace"
    assert len(review_store.reviews) == 1


def test_review_defaults_to_five_stars(api):
    res = api.post("/reviews", params={"uid": "u1"}, json={"book_title": "Dune", "author": "Herbert"})

    assert res.json()["review"]["stars"] == 5


@pytest.mark.parametrize(
    "body",
    [
        {"book_title": "", "author": "Herbert"},
        {"book_title": "Dune", "author": "   "},
    ],
)
def test_review_needs_title_and_author(api, review_store, body):
    res = api.post("/reviews", params={"uid": "u1"}, json=body)

    assert res.status_code == 400
    assert res.json() == {"status": "missing_fields"}
    assert review_store.reviews == []


@pytest.mark.parametrize("stars", [0, 6])
def test_review_stars_out_of_range(api, review_store, stars):
    res = api.post(
        "/reviews",
        params={"uid": "u1"},
        json={"book_title": "Dune", "author": "Herbert", "stars": stars},
    )

    assert res.status_code == 422
    assert review_store.reviews == []


def test_list_reviews_newest_first_with_search(api):
    api.put("/profile", params={"uid": "u2"}, json={"first_name": "Grace", "last_name": "Hopper"})
    api.post("/reviews", params={"uid": "u1"}, json={"book_title": "Dune", "author": "Frank Herbert"})
    api.post("/reviews", params={"uid": "u2"}, json={"book_title": "Emma", "author": "Jane Austen"})
    api.post("/reviews", params={"uid": "u1"}, json={"book_title": "Foundation", "author": "Asimov"})

    everything = api.get("/reviews").json()["reviews"]
    assert [r["book_title"] for r in everything] == ["Foundation", "Emma", "Dune"]

    by_author = api.get("/reviews", params={"q": "HERBERT"}).json()["reviews"]
    assert [r["book_title"] for r in by_author] == ["Dune"]

    by_reviewer = api.get("/reviews", params={"q": "grace"}).json()["reviews"]
    assert [r["book_title"] for r in by_reviewer] == ["Emma"]


def test_gemini_client_is_shared_between_requests(monkeypatch):
    settings = Settings(gemini_api_key="key", gemini_model="gemini-test")
    monkeypatch.setattr(scan_routes, "get_settings", lambda: settings)
    scan_routes.get_client.cache_clear()

    try:
        first = scan_routes.get_client()
        second = scan_routes.get_client()

        assert first is second
        assert first.session is second.session
        assert first.model == "gemini-test"
    finally:
        scan_routes.get_client.cache_clear()
