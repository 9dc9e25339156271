"""
Ingestion Filter.

Quality gate applied right before analysis. Raw reviews are always persisted
in full; filtered reviews are only skipped by the analysis engine.
"""

import logging
from typing import Iterable, List, Sequence, TypeVar

import config.settings as settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReviewQualityFilter:
    """
    Drops low-information reviews.

    A review is dropped when its normalized text
    - is shorter than min_length characters,
    - exactly matches a stoplist phrase ("good", "ok", "👍", ...),
    - or has fewer than min_alpha alphabetic characters.
    """

    def __init__(
        self,
        min_length: int = settings.FILTER_MIN_TEXT_LENGTH,
        min_alpha: int = settings.FILTER_MIN_ALPHA_CHARS,
        stoplist: Iterable[str] = settings.FILTER_STOPLIST
    ):
        self.min_length = min_length
        self.min_alpha = min_alpha
        self.stoplist = frozenset(phrase.strip().lower() for phrase in stoplist)

    @staticmethod
    def normalize(text: str) -> str:
        return (text or "").strip().lower()

    def is_analyzable(self, text: str) -> bool:
        normalized = self.normalize(text)

        if len(normalized) < self.min_length:
            return False
        if normalized in self.stoplist:
            return False
        if sum(1 for ch in normalized if ch.isalpha()) < self.min_alpha:
            return False
        return True

    def filter(self, reviews: Sequence[T]) -> List[T]:
        """
        Keep reviews worth analyzing, preserving order.

        Args:
            reviews: Objects with a .text attribute (Review or RawReview)

        Returns:
            Surviving reviews
        """
        kept = [r for r in reviews if self.is_analyzable(r.text)]

        skipped = len(reviews) - len(kept)
        if skipped:
            logger.info(f"Filtered out {skipped} of {len(reviews)} low-value reviews")

        return kept
