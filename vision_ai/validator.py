"""
Normalizes the loosely-typed dict parsed from the model into an Analysis.

This is the only place that coerces types; everything downstream works with
fully typed records.
"""
from typing import Any, List

from .errors import ValidationFailure
from .models import Analysis, Recommendation

DEFAULT_SUMMARY_MAX_CHARS = 2000

_TRUTHY = {"true", "yes", "1"}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return value.strip()


def _required(data: dict, field: str) -> str:
    value = _text(data.get(field))
    if not value:
        raise ValidationFailure(field)
    return value


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return False


def normalize_recommendations(raw: Any) -> List[Recommendation]:
    """Keep entries with a title and an author, drop the rest, keep order."""

    if not isinstance(raw, list):
        return []

    recommendations = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        title = _text(entry.get("title"))
        author = _text(entry.get("author"))
        if not title or not author:
            continue
        recommendations.append(
            Recommendation(title=title, author=author, reason=_text(entry.get("reason")))
        )

    return recommendations


def normalize_analysis(
    data: dict, summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS
) -> Analysis:

    title = _required(data, "title")
    author = _required(data, "author")

    raw_recs = data.get("future_recommendations")
    if raw_recs is None:
        raw_recs = data.get("recommendations")

    summary = _text(data.get("analysis_summary"))
    if summary_max_chars and len(summary) > summary_max_chars:
        summary = summary[:summary_max_chars].rstrip()

    return Analysis(
        title=title,
        author=author,
        genre=_text(data.get("genre")),
        reading_level=_text(data.get("reading_level")),
        maturity_level=_text(data.get("maturity_level")),
        is_movie_adaptation=coerce_bool(data.get("is_movie")),
        recommendations=tuple(normalize_recommendations(raw_recs)),
        summary=summary,
    )
