"""
Review data models.

RawReview is what providers and the CSV parser produce.
Review is the persisted form owned by a project.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ReviewSource(str, Enum):
    """Where a review came from."""
    CSV = "csv"
    STRUCTURED_API = "structured_api"
    PAID_SCRAPE = "paid_scrape"
    BROWSER_SCRAPE = "browser_scrape"


def _validate_rating(rating: Optional[int]) -> None:
    if rating is not None and not (1 <= rating <= 5):
        raise ValueError(f"Invalid rating: {rating}. Must be 1-5")


@dataclass(frozen=True)
class RawReview:
    """
    Review as fetched from a source, before persistence.
    Immutable once created.
    """
    text: str  # Raw review text
    rating: Optional[int]  # 1-5 star rating, None when the source has none
    author: str
    occurred_on: str  # YYYY-MM-DD format
    source: ReviewSource

    def __post_init__(self):
        _validate_rating(self.rating)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "rating": self.rating,
            "author": self.author,
            "occurred_on": self.occurred_on,
            "source": self.source.value,
        }


@dataclass
class Review:
    """
    Persisted review. Created once on ingestion, deleted only when
    its project is deleted.
    """
    id: str
    project_id: str
    text: str
    rating: Optional[int]
    author: str
    occurred_on: str
    source: ReviewSource
    created_at: str
    updated_at: str

    def __post_init__(self):
        _validate_rating(self.rating)

    @classmethod
    def from_dict(cls, data: dict) -> "Review":
        """Create Review from JSON dict."""
        return cls(
            id=data["id"],
            project_id=data["project_id"],
            text=data["text"],
            rating=data.get("rating"),
            author=data.get("author", "Anonymous"),
            occurred_on=data.get("occurred_on", ""),
            source=ReviewSource(data["source"]),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "project_id": self.project_id,
            "text": self.text,
            "rating": self.rating,
            "author": self.author,
            "occurred_on": self.occurred_on,
            "source": self.source.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
