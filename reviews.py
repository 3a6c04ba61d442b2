from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

MIN_STARS = 1
MAX_STARS = 5


@dataclass(frozen=True)
class Review:
    id: str
    user_id: str
    reviewer_name: str
    book_title: str
    author: str
    stars: int
    content: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reviewer_name": self.reviewer_name,
            "book_title": self.book_title,
            "author": self.author,
            "stars": self.stars,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


def filter_reviews(reviews: Iterable[Review], query: Optional[str]) -> List[Review]:
    """Case-insensitive match on book title, author or reviewer name."""

    reviews = list(reviews)
    if not query or not query.strip():
        return reviews

    needle = query.strip().lower()
    return [
        r for r in reviews
        if needle in r.book_title.lower()
        or needle in r.author.lower()
        or needle in r.reviewer_name.lower()
    ]
