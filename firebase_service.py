import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPICallError, RetryError
from google.auth.exceptions import GoogleAuthError
from google.cloud.firestore_v1.base_query import FieldFilter

from config import Settings
from reviews import Review
from vision_ai.errors import PersistenceFailure
from vision_ai.models import (
    DEFAULT_GENRE,
    DEFAULT_GRADE,
    Analysis,
    ReaderPreferences,
    Recommendation,
    ScanRecord,
)

logger = logging.getLogger(__name__)

_STORE_ERRORS = (GoogleAPICallError, RetryError, GoogleAuthError)

PROFILE_FIELDS = ("first_name", "last_name", "favorite_genre", "school_grade")


# ---------------------------------------------------
# INIT FIREBASE
# ---------------------------------------------------
def _connect(settings: Settings):

    if not firebase_admin._apps:

        if settings.firebase_key:
            cred_dict = json.loads(settings.firebase_key)
        else:
            key_file = settings.firebase_key_file
            if not os.path.exists(key_file):
                raise RuntimeError("Firebase key missing")

            with open(key_file, "r") as f:
                cred_dict = json.load(f)

        cred = credentials.Certificate(cred_dict)
        firebase_admin.initialize_app(cred)

    return firestore.client()


def init_firestore(settings: Settings):
    """Firestore client; any setup problem is reported as a store failure."""

    try:
        return _connect(settings)
    except (RuntimeError, ValueError, OSError, GoogleAuthError) as e:
        logger.error("FIRESTORE INIT FAILED: %s", e)
        raise PersistenceFailure(f"Record store unavailable: {e}") from e


def _store_message(e: Exception) -> str:
    return getattr(e, "message", None) or str(e)


# ---------------------------------------------------
# READER PROFILE
# ---------------------------------------------------
def load_preferences(db, user_id: str, collection: str = "profiles") -> ReaderPreferences:
    """Favorite genre and school grade from the profile, with defaults."""

    try:
        snapshot = db.collection(collection).document(user_id).get()
    except _STORE_ERRORS as e:
        raise PersistenceFailure(f"Could not load profile: {_store_message(e)}") from e

    data = snapshot.to_dict() if snapshot.exists else None
    data = data or {}

    return ReaderPreferences(
        favorite_genre=data.get("favorite_genre") or DEFAULT_GENRE,
        school_grade=data.get("school_grade") or DEFAULT_GRADE,
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
    )


def save_profile(
    db, user_id: str, updates: dict, collection: str = "profiles"
) -> ReaderPreferences:
    """Merge the given profile fields and return the profile as now stored."""

    data = {k: v for k, v in updates.items() if k in PROFILE_FIELDS and v is not None}
    data["updated_at"] = datetime.now(timezone.utc)

    try:
        db.collection(collection).document(user_id).set(data, merge=True)
    except _STORE_ERRORS as e:
        logger.error("PROFILE SAVE FAILED for %s: %s", user_id, e)
        raise PersistenceFailure(f"Could not save profile: {_store_message(e)}") from e

    return load_preferences(db, user_id, collection=collection)


class FirestoreProfileStore:

    def __init__(self, db, collection: str = "profiles"):
        self.db = db
        self.collection = collection

    def load(self, user_id: str) -> ReaderPreferences:
        return load_preferences(self.db, user_id, collection=self.collection)

    def save(self, user_id: str, updates: dict) -> ReaderPreferences:
        return save_profile(self.db, user_id, updates, collection=self.collection)


# ---------------------------------------------------
# SCAN RECORDS (append only)
# ---------------------------------------------------
class FirestoreScanStore:

    def __init__(self, db, collection: str = "book_scans"):
        self.db = db
        self.collection = collection

    def _scans(self):
        return self.db.collection(self.collection)

    def insert(
        self, user_id: str, analysis: Analysis, image_url: Optional[str] = None
    ) -> ScanRecord:

        doc_ref = self._scans().document()
        created_at = datetime.now(timezone.utc)

        record = ScanRecord(
            id=doc_ref.id,
            user_id=user_id,
            analysis=analysis,
            created_at=created_at,
            image_url=image_url,
        )

        payload = record.to_dict()
        del payload["id"]
        payload["created_at"] = created_at

        # single write, no retry: a blind retry could store the scan twice
        try:
            doc_ref.set(payload)
        except _STORE_ERRORS as e:
            logger.error("SCAN SAVE FAILED for %s: %s", user_id, e)
            raise PersistenceFailure(f"Could not save scan: {_store_message(e)}") from e

        return record

    def get(self, scan_id: str) -> Optional[ScanRecord]:

        try:
            snapshot = self._scans().document(scan_id).get()
        except _STORE_ERRORS as e:
            raise PersistenceFailure(f"Could not load scan: {_store_message(e)}") from e

        if not snapshot.exists:
            return None

        return record_from_document(snapshot.id, snapshot.to_dict())

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[ScanRecord]:

        query = (
            self._scans()
            .where(filter=FieldFilter("user_id", "==", user_id))
            .order_by("created_at", direction=firestore.Query.DESCENDING)
        )
        if limit:
            query = query.limit(limit)

        try:
            docs = list(query.stream())
        except _STORE_ERRORS as e:
            raise PersistenceFailure(f"Could not load history: {_store_message(e)}") from e

        return [record_from_document(doc.id, doc.to_dict()) for doc in docs]


def record_from_document(doc_id: str, data: dict) -> ScanRecord:

    recommendations = tuple(
        Recommendation(
            title=r.get("title", ""),
            author=r.get("author", ""),
            reason=r.get("reason", ""),
        )
        for r in data.get("recommendations") or []
        if isinstance(r, dict)
    )

    analysis = Analysis(
        title=data.get("title") or "",
        author=data.get("author") or "",
        genre=data.get("genre") or "",
        reading_level=data.get("reading_level") or "",
        maturity_level=data.get("maturity_level") or "",
        is_movie_adaptation=bool(data.get("is_movie")),
        recommendations=recommendations,
        summary=data.get("ai_analysis") or "",
    )

    created_at = data.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)

    return ScanRecord(
        id=doc_id,
        user_id=data.get("user_id", ""),
        analysis=analysis,
        created_at=created_at,
        image_url=data.get("image_url"),
    )


# ---------------------------------------------------
# BOOK REVIEWS
# ---------------------------------------------------
class FirestoreReviewStore:

    def __init__(self, db, collection: str = "reviews"):
        self.db = db
        self.collection = collection

    def insert(
        self,
        user_id: str,
        reviewer_name: str,
        book_title: str,
        author: str,
        stars: int,
        content: str = "",
    ) -> Review:

        doc_ref = self.db.collection(self.collection).document()

        review = Review(
            id=doc_ref.id,
            user_id=user_id,
            reviewer_name=reviewer_name,
            book_title=book_title,
            author=author,
            stars=stars,
            content=content,
            created_at=datetime.now(timezone.utc),
        )

        payload = review.to_dict()
        del payload["id"]
        payload["created_at"] = review.created_at

        try:
            doc_ref.set(payload)
        except _STORE_ERRORS as e:
            logger.error("REVIEW SAVE FAILED for %s: %s", user_id, e)
            raise PersistenceFailure(f"Could not submit review: {_store_message(e)}") from e

        return review

    def list_recent(self, limit: Optional[int] = None) -> List[Review]:

        query = self.db.collection(self.collection).order_by(
            "created_at", direction=firestore.Query.DESCENDING
        )
        if limit:
            query = query.limit(limit)

        try:
            docs = list(query.stream())
        except _STORE_ERRORS as e:
            raise PersistenceFailure(f"Could not load reviews: {_store_message(e)}") from e

        return [review_from_document(doc.id, doc.to_dict()) for doc in docs]


def review_from_document(doc_id: str, data: dict) -> Review:

    created_at = data.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)

    return Review(
        id=doc_id,
        user_id=data.get("user_id", ""),
        reviewer_name=data.get("reviewer_name") or "",
        book_title=data.get("book_title") or "",
        author=data.get("author") or "",
        stars=int(data.get("stars") or 0),
        content=data.get("content") or "",
        created_at=created_at,
    )
