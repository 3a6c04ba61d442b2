from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

DEFAULT_GENRE = "Any"
DEFAULT_GRADE = "All ages"


@dataclass(frozen=True)
class AnalysisRequest:
    image_bytes: bytes
    preferred_genre: str = DEFAULT_GENRE
    grade_level: str = DEFAULT_GRADE


@dataclass(frozen=True)
class Recommendation:
    title: str
    author: str
    reason: str = ""

    def to_dict(self) -> dict:
        return {"title": self.title, "author": self.author, "reason": self.reason}


@dataclass(frozen=True)
class Analysis:
    title: str
    author: str
    genre: str = ""
    reading_level: str = ""
    maturity_level: str = ""
    is_movie_adaptation: bool = False
    recommendations: Tuple[Recommendation, ...] = field(default_factory=tuple)
    summary: str = ""


@dataclass(frozen=True)
class ScanRecord:
    """Stored form of an Analysis. Never updated once written."""

    id: str
    user_id: str
    analysis: Analysis
    created_at: datetime
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        a = self.analysis
        return {
            "id": self.id,
            "user_id": self.user_id,
            "image_url": self.image_url,
            "title": a.title,
            "author": a.author,
            "genre": a.genre,
            "reading_level": a.reading_level,
            "maturity_level": a.maturity_level,
            "is_movie": a.is_movie_adaptation,
            "recommendations": [r.to_dict() for r in a.recommendations],
            "ai_analysis": a.summary,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ReaderPreferences:
    favorite_genre: str = DEFAULT_GENRE
    school_grade: str = DEFAULT_GRADE
    first_name: str = ""
    last_name: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "Reader"

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "favorite_genre": self.favorite_genre,
            "school_grade": self.school_grade,
        }



def format_grade(grade: Optional[str]) -> str:
    """Display label for a stored school grade, e.g. "9" -> "9th Grade"."""
    if not grade:
        return "Reader"

    if "grade" in grade.lower():
        return grade

    digits = ""
    for ch in grade.strip():
        if not ch.isdigit():
            break
        digits += ch

    if not digits:
        return grade

    num = int(digits)
    suffix = "th"
    if num % 10 == 1 and num % 100 != 11:
        suffix = "st"
    elif num % 10 == 2 and num % 100 != 12:
        suffix = "nd"
    elif num % 10 == 3 and num % 100 != 13:
        suffix = "rd"

    return f"{num}{suffix} Grade"
