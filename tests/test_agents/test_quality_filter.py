"""
Unit tests for the Ingestion (quality) Filter.
"""

import pytest

from src.agents.quality_filter import ReviewQualityFilter
from src.models.review import RawReview, ReviewSource


def raw(text):
    return RawReview(text=text, rating=None, author="A", occurred_on="2024-06-01", source=ReviewSource.CSV)


@pytest.fixture
def quality_filter():
    return ReviewQualityFilter()


@pytest.mark.parametrize("text", [
    "",
    "   ",
    "Good",
    "ok",
    "  GREAT!!  ",
    "👍👍👍👍👍👍👍👍👍👍",
    "10/10 5/5 !!!!",
    "a1 b2 c3 d4 !!",
])
def test_low_value_reviews_dropped(quality_filter, text):
    assert not quality_filter.is_analyzable(text)


@pytest.mark.parametrize("text", [
    "The staff were friendly",
    "Terrible parking situation",
    "Très bon café, merci",
    "とても美味しいラーメンでした",
])
def test_informative_reviews_kept(quality_filter, text):
    assert quality_filter.is_analyzable(text)


def test_stoplist_is_exact_match():
    custom = ReviewQualityFilter(stoplist=["Would not recommend"])
    assert not custom.is_analyzable("  would NOT recommend ")
    assert custom.is_analyzable("would not recommend the fish")


def test_filter_preserves_order(quality_filter):
    reviews = [raw("Lovely rooftop terrace"), raw("ok"), raw("Cold soup and slow service"), raw("👍")]
    kept = quality_filter.filter(reviews)
    assert [r.text for r in kept] == ["Lovely rooftop terrace", "Cold soup and slow service"]


def test_filter_is_idempotent(quality_filter):
    reviews = [raw(t) for t in ["nice", "The view was stunning", "12345678901", "Friendly barista, good latte"]]
    once = quality_filter.filter(reviews)
    assert quality_filter.filter(once) == once


def test_custom_thresholds():
    relaxed = ReviewQualityFilter(min_length=2, min_alpha=2, stoplist=[])
    assert relaxed.is_analyzable("ok")
