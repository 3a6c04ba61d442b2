import io
import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from reviews import Review
from vision_ai.models import ReaderPreferences, ScanRecord


class InMemoryScanStore:
    """Append-only stand-in for FirestoreScanStore."""

    def __init__(self):
        self.records = {}
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def insert(self, user_id, analysis, image_url=None):
        self._clock += timedelta(seconds=1)
        record = ScanRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            analysis=analysis,
            created_at=self._clock,
            image_url=image_url,
        )
        self.records[record.id] = record
        return record

    def get(self, scan_id):
        return self.records.get(scan_id)

    def list_for_user(self, user_id, limit=None):
        mine = sorted(
            (r for r in self.records.values() if r.user_id == user_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return mine[:limit] if limit else mine


class FakeVisionClient:

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    def analyze(self, image_bytes, prompt):
        self.calls.append((image_bytes, prompt))
        if self.error is not None:
            raise self.error
        return self.text


DUNE = {
    "title": "Dune",
    "author": "Frank Herbert",
    "genre": "Sci-Fi",
    "reading_level": "7.8 (8th Grade)",
    "maturity_level": "PG-13 - violence",
    "is_movie": True,
    "future_recommendations": [
        {"title": "Foundation", "author": "Asimov", "reason": "similar scope"},
    ],
    "analysis_summary": "Suitable for grade 8. A perfect Sci-Fi fit.",
}


@pytest.fixture
def dune_text():
    return json.dumps(DUNE)


@pytest.fixture
def store():
    return InMemoryScanStore()


@pytest.fixture
def jpeg_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (32, 48), color="navy").save(buf, "JPEG")
    return buf.getvalue()


class InMemoryProfileStore:

    def __init__(self, default=None):
        self.default = default or ReaderPreferences()
        self.profiles = {}

    def load(self, user_id):
        return self.profiles.get(user_id, self.default)

    def save(self, user_id, updates):
        current = self.load(user_id).to_dict()
        current.update({k: v for k, v in updates.items() if v is not None})
        self.profiles[user_id] = ReaderPreferences(**current)
        return self.profiles[user_id]


class InMemoryReviewStore:

    def __init__(self):
        self.reviews = []
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def insert(self, user_id, reviewer_name, book_title, author, stars, content=""):
        self._clock += timedelta(seconds=1)
        review = Review(
            id=uuid.uuid4().hex,
            user_id=user_id,
            reviewer_name=reviewer_name,
            book_title=book_title,
            author=author,
            stars=stars,
            content=content,
            created_at=self._clock,
        )
        self.reviews.append(review)
        return review

    def list_recent(self, limit=None):
        newest = sorted(self.reviews, key=lambda r: r.created_at, reverse=True)
        return newest[:limit] if limit else newest
