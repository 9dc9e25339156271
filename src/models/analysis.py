"""
Analysis data models.

ReviewAnalysisResult is what the analysis engine produces for one review.
ReviewAnalysis is the persisted record, at most one per review.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union


class SentimentCategory(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


@dataclass
class ReviewAnalysisResult:
    """
    Structured classification of a single review.
    Always within domain after validation (see agents.analysis).
    """
    primary_category: SentimentCategory
    primary_confidence: float  # 0..1
    secondary_categories: List[str]  # up to 5, unique
    themes: List[str]  # up to 5, unique
    sentiment_score: float  # -1..1
    key_phrases: List[str]  # up to 5, ordered
    summary: str  # up to 200 chars

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewAnalysisResult":
        return cls(
            primary_category=SentimentCategory(data["primary_category"]),
            primary_confidence=float(data["primary_confidence"]),
            secondary_categories=list(data.get("secondary_categories", [])),
            themes=list(data.get("themes", [])),
            sentiment_score=float(data["sentiment_score"]),
            key_phrases=list(data.get("key_phrases", [])),
            summary=data.get("summary", ""),
        )

    def to_dict(self) -> dict:
        return {
            "primary_category": self.primary_category.value,
            "primary_confidence": self.primary_confidence,
            "secondary_categories": self.secondary_categories,
            "themes": self.themes,
            "sentiment_score": self.sentiment_score,
            "key_phrases": self.key_phrases,
            "summary": self.summary,
        }


@dataclass
class ModelMetadata:
    model_used: str
    analysis_date: str  # ISO-8601 UTC
    processing_time: float  # seconds

    def to_dict(self) -> dict:
        return {
            "model_used": self.model_used,
            "analysis_date": self.analysis_date,
            "processing_time": self.processing_time,
        }


@dataclass
class ReviewAnalysis:
    """Persisted analysis. Never mutated after creation."""
    id: str
    review_id: str
    result: ReviewAnalysisResult
    model_metadata: ModelMetadata
    created_at: str

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewAnalysis":
        """Create ReviewAnalysis from JSON dict."""
        metadata = data.get("model_metadata", {})
        return cls(
            id=data["id"],
            review_id=data["review_id"],
            result=ReviewAnalysisResult.from_dict(data),
            model_metadata=ModelMetadata(
                model_used=metadata.get("model_used", ""),
                analysis_date=metadata.get("analysis_date", ""),
                processing_time=metadata.get("processing_time", 0.0),
            ),
            created_at=data.get("created_at", ""),
        )

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict (result fields flattened)."""
        data = {"id": self.id, "review_id": self.review_id}
        data.update(self.result.to_dict())
        data["model_metadata"] = self.model_metadata.to_dict()
        data["created_at"] = self.created_at
        return data


@dataclass
class ParsedAnalysis:
    """Model output that parsed as a JSON object."""
    data: dict


@dataclass
class MalformedResponse:
    """Model output that could not be parsed; kept for regex extraction."""
    raw_text: str


ParseOutcome = Union[ParsedAnalysis, MalformedResponse]


@dataclass
class AnalysisRequest:
    """One review queued for batch analysis."""
    id: str
    text: str
    rating: Optional[int] = None


@dataclass
class AnalysisOutcome:
    """Batch result for one review id."""
    id: str
    result: ReviewAnalysisResult
    processing_time: float = 0.0
    used_fallback: bool = False
