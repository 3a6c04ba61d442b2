from typing import List

from vision_ai.models import Recommendation
from vision_ai.pipeline import ScanStore


def latest_recommendations(store: ScanStore, user_id: str) -> List[Recommendation]:
    """Recommendations from the user's newest scan; empty before the first scan."""

    latest = store.list_for_user(user_id, limit=1)
    if not latest:
        return []

    return list(latest[0].analysis.recommendations)
