import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import Settings
from firebase_service import FirestoreProfileStore, FirestoreReviewStore
from reviews import MAX_STARS, MIN_STARS, filter_reviews
from vision_ai.models import format_grade
from vision_ai.router import get_db, get_profiles, get_settings

router = APIRouter(tags=["Reader"])


# ================= REQUEST BODIES =================
class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    favorite_genre: Optional[str] = None
    school_grade: Optional[str] = None


class ReviewRequest(BaseModel):
    book_title: str
    author: str
    stars: int = Field(MAX_STARS, ge=MIN_STARS, le=MAX_STARS)
    content: str = ""


def get_review_store(settings: Settings = Depends(get_settings)) -> FirestoreReviewStore:
    return FirestoreReviewStore(get_db(), collection=settings.reviews_collection)


def _profile_body(prefs) -> dict:
    body = prefs.to_dict()
    body["grade_label"] = format_grade(prefs.school_grade)
    return body


# ================= PROFILE =================
@router.get("/profile")
async def get_profile(
    uid: str = Query(...),
    profiles: FirestoreProfileStore = Depends(get_profiles),
):
    prefs = await asyncio.to_thread(profiles.load, uid)
    return {"profile": _profile_body(prefs)}


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    uid: str = Query(...),
    profiles: FirestoreProfileStore = Depends(get_profiles),
):
    updates = {
        "first_name": data.first_name,
        "last_name": data.last_name,
        "favorite_genre": data.favorite_genre,
        "school_grade": data.school_grade,
    }

    prefs = await asyncio.to_thread(profiles.save, uid, updates)
    return {"status": "saved", "profile": _profile_body(prefs)}


# ================= REVIEWS =================
@router.post("/reviews")
async def add_review(
    data: ReviewRequest,
    uid: str = Query(...),
    store: FirestoreReviewStore = Depends(get_review_store),
    profiles: FirestoreProfileStore = Depends(get_profiles),
):
    title = data.book_title.strip()
    author = data.author.strip()

    if not title or not author:
        return JSONResponse(status_code=400, content={"status": "missing_fields"})

    prefs = await asyncio.to_thread(profiles.load, uid)

    review = await asyncio.to_thread(
        store.insert,
        uid,
        prefs.display_name,
        title,
        author,
        data.stars,
        data.content.strip(),
    )

    return {"status": "saved", "review": review.to_dict()}


@router.get("/reviews")
async def list_reviews(
    q: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    store: FirestoreReviewStore = Depends(get_review_store),
):
    # newest first from the store, search applied on top
    reviews = await asyncio.to_thread(store.list_recent, limit)
    return {"reviews": [r.to_dict() for r in filter_reviews(reviews, q)]}
