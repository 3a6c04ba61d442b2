import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from vision_ai.validator import DEFAULT_SUMMARY_MAX_CHARS
from vision_ai.vision import DEFAULT_BASE_URL, DEFAULT_MODEL


@dataclass(frozen=True)
class Settings:
    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    gemini_base_url: str = DEFAULT_BASE_URL
    gemini_timeout: float = 60

    # Firestore
    firebase_key: Optional[str] = None
    firebase_key_file: str = "serviceAccountKey.json"
    scans_collection: str = "book_scans"
    profiles_collection: str = "profiles"
    reviews_collection: str = "reviews"

    # Uploads / storage limits
    max_file_size: int = 4 * 1024 * 1024
    summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS


def load_settings() -> Settings:
    """
    Read settings from the environment (and .env when present).

    A missing GEMINI_API_KEY is not an error here; the first scan reports it.
    """
    load_dotenv()

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL),
        gemini_timeout=float(os.getenv("GEMINI_TIMEOUT", "60")),
        firebase_key=os.getenv("FIREBASE_KEY") or None,
        firebase_key_file=os.getenv("FIREBASE_KEY_FILE", "serviceAccountKey.json"),
        scans_collection=os.getenv("SCANS_COLLECTION", "book_scans"),
        profiles_collection=os.getenv("PROFILES_COLLECTION", "profiles"),
        reviews_collection=os.getenv("REVIEWS_COLLECTION", "reviews"),
        max_file_size=int(os.getenv("MAX_FILE_SIZE", str(4 * 1024 * 1024))),
        summary_max_chars=int(
            os.getenv("SUMMARY_MAX_CHARS", str(DEFAULT_SUMMARY_MAX_CHARS))
        ),
    )
