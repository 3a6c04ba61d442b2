import asyncio
import io
import logging
from functools import lru_cache
from threading import Lock
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse
from PIL import Image
from pydantic import BaseModel

from config import Settings, load_settings
from firebase_service import FirestoreProfileStore, FirestoreScanStore, init_firestore
from recommendations import latest_recommendations

from .models import AnalysisRequest, format_grade
from .pipeline import CoverAnalysisPipeline, ScanStore
from .vision import GeminiVisionClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Book Scan"])

RECENT_LIMIT = 3


# ---------------- RESPONSE SHAPES ----------------
class RecommendationOut(BaseModel):
    title: str
    author: str
    reason: str = ""


class ScanOut(BaseModel):
    id: str
    user_id: str
    image_url: Optional[str] = None
    title: str
    author: str
    genre: str
    reading_level: str
    maturity_level: str
    is_movie: bool
    recommendations: List[RecommendationOut]
    ai_analysis: str
    created_at: str


class HistoryOut(BaseModel):
    scans: List[ScanOut]


class RecentOut(BaseModel):
    grade_label: str
    scans: List[ScanOut]


class RecommendationsOut(BaseModel):
    recommendations: List[RecommendationOut]


# ---------------- DEPENDENCIES ----------------
@lru_cache
def get_settings() -> Settings:
    return load_settings()


@lru_cache
def get_db():
    return init_firestore(get_settings())


def get_store(settings: Settings = Depends(get_settings)) -> ScanStore:
    return FirestoreScanStore(get_db(), collection=settings.scans_collection)


@lru_cache
def get_client() -> GeminiVisionClient:
    # one client (and one requests.Session) for the whole process
    settings = get_settings()
    return GeminiVisionClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        timeout=settings.gemini_timeout,
    )


def get_pipeline(
    client: GeminiVisionClient = Depends(get_client),
    store: ScanStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> CoverAnalysisPipeline:
    return CoverAnalysisPipeline(client, store, summary_max_chars=settings.summary_max_chars)


def get_profiles(settings: Settings = Depends(get_settings)) -> FirestoreProfileStore:
    return FirestoreProfileStore(get_db(), collection=settings.profiles_collection)


# ---------------- RE-ENTRY GUARD ----------------
_inflight = set()
inflight_lock = Lock()


def _claim(uid: str) -> bool:
    with inflight_lock:
        if uid in _inflight:
            return False
        _inflight.add(uid)
        return True


def _release(uid: str):
    with inflight_lock:
        _inflight.discard(uid)


# ---------------- IMAGE VALIDATION ----------------
def validate_image(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        return True
    except Exception:
        return False


async def read_upload(file: UploadFile, max_size: int) -> bytes:

    if not (file.content_type or "").startswith("image/"):
        raise ValueError("invalid_type")

    data = await file.read(max_size + 1)
    await file.close()

    if len(data) > max_size:
        raise ValueError("file_too_large")

    if not validate_image(data):
        raise ValueError("invalid_image")

    return data


# =========================================================
# 📷 SCAN COVER
# =========================================================
@router.post("/scan")
async def scan(
    uid: str = Query(...),
    file: UploadFile = File(...),
    genre: Optional[str] = Form(None),
    grade: Optional[str] = Form(None),
    image_url: Optional[str] = Form(None),
    pipeline: CoverAnalysisPipeline = Depends(get_pipeline),
    profiles: FirestoreProfileStore = Depends(get_profiles),
    settings: Settings = Depends(get_settings),
):

    try:
        image_bytes = await read_upload(file, settings.max_file_size)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"status": str(e)})

    if not _claim(uid):
        return JSONResponse(status_code=409, content={"status": "scan_in_progress"})

    try:
        if not genre or not grade:
            prefs = await asyncio.to_thread(profiles.load, uid)
            genre = genre or prefs.favorite_genre
            grade = grade or prefs.school_grade

        request = AnalysisRequest(
            image_bytes=image_bytes,
            preferred_genre=genre,
            grade_level=grade,
        )

        record = await asyncio.to_thread(pipeline.analyze, request, uid, image_url)

        return {"status": "saved", "scan": record.to_dict()}

    finally:
        # a cancelled request releases the guard while its worker thread may
        # still finish the single insert; that write is complete or absent
        _release(uid)


# =========================================================
# 📖 RESULT / HISTORY
# =========================================================
@router.get("/scans/{scan_id}", response_model=ScanOut)
async def get_scan(
    scan_id: str,
    uid: str = Query(...),
    store: ScanStore = Depends(get_store),
):

    record = await asyncio.to_thread(store.get, scan_id)

    if record is None:
        return JSONResponse(status_code=404, content={"status": "not_found"})

    if record.user_id != uid:
        return JSONResponse(status_code=403, content={"status": "not_owner"})

    return record.to_dict()


@router.get("/history", response_model=HistoryOut)
async def history(
    uid: str = Query(...),
    limit: Optional[int] = Query(None, ge=1),
    store: ScanStore = Depends(get_store),
):
    records = await asyncio.to_thread(store.list_for_user, uid, limit)
    return {"scans": [r.to_dict() for r in records]}


@router.get("/recent", response_model=RecentOut)
async def recent(
    uid: str = Query(...),
    store: ScanStore = Depends(get_store),
    profiles: FirestoreProfileStore = Depends(get_profiles),
):
    records = await asyncio.to_thread(store.list_for_user, uid, RECENT_LIMIT)
    prefs = await asyncio.to_thread(profiles.load, uid)

    return {
        "grade_label": format_grade(prefs.school_grade),
        "scans": [r.to_dict() for r in records],
    }


@router.get("/recommendations", response_model=RecommendationsOut)
async def recommendations(
    uid: str = Query(...),
    store: ScanStore = Depends(get_store),
):
    recs = await asyncio.to_thread(latest_recommendations, store, uid)
    return {"recommendations": [r.to_dict() for r in recs]}
