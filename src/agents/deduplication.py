"""
Review Deduplicator.

Merges review sets from several providers, dropping near-duplicates with a
coarse text-similarity heuristic.
"""

import logging
from typing import List, Sequence, Tuple

import config.settings as settings
from src.models.review import RawReview

logger = logging.getLogger(__name__)


def are_similar_reviews(
    text1: str,
    text2: str,
    overlap_ratio: float = settings.DEDUP_WORD_OVERLAP_RATIO
) -> bool:
    """
    Two texts are similar when the shorter one (case-insensitive) is contained
    in the longer, or when the tokens of text1 found in text2 outnumber
    overlap_ratio * the smaller token count.
    """
    if not text1 or not text2:
        return False

    shorter, longer = (text1, text2) if len(text1) < len(text2) else (text2, text1)
    if shorter.lower() in longer.lower():
        return True

    words1 = text1.lower().split()
    words2 = text2.lower().split()
    vocabulary2 = set(words2)
    common = [word for word in words1 if word in vocabulary2]

    return len(common) > min(len(words1), len(words2)) * overlap_ratio


class ReviewDeduplicator:
    """
    Priority merge of provider results.

    Sets are visited in the order given (highest trust first). A review is kept
    only if it is not similar to any review kept before it.
    """

    def __init__(self, overlap_ratio: float = settings.DEDUP_WORD_OVERLAP_RATIO):
        self.overlap_ratio = overlap_ratio

    def merge(self, sets: Sequence[Tuple[str, Sequence[RawReview]]]) -> List[RawReview]:
        """
        Merge provider results.

        Args:
            sets: (provider_name, reviews) pairs in priority order

        Returns:
            Deduplicated reviews
        """
        kept: List[RawReview] = []

        for provider_name, reviews in sets:
            added = 0
            for review in reviews:
                if any(
                    are_similar_reviews(existing.text, review.text, self.overlap_ratio)
                    for existing in kept
                ):
                    continue
                kept.append(review)
                added += 1

            logger.info(
                f"Merged {added}/{len(reviews)} reviews from {provider_name} "
                f"({len(reviews) - added} near-duplicates dropped)"
            )

        return kept
