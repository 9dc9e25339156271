"""
Unit tests for Review Deduplicator.
"""

import itertools

import pytest

from src.agents.deduplication import ReviewDeduplicator, are_similar_reviews
from src.models.review import RawReview, ReviewSource


def raw(text, source=ReviewSource.STRUCTURED_API, rating=5):
    return RawReview(text=text, rating=rating, author="Someone", occurred_on="2024-06-01", source=source)


def unique_text(prefix, i):
    return " ".join(f"{prefix}{i}{suffix}" for suffix in "abcde")


def test_similar_when_contained_case_insensitive():
    assert are_similar_reviews("Great food", "GREAT FOOD and friendly staff")
    assert are_similar_reviews("great food and friendly staff", "Great Food")


def test_similar_by_word_overlap():
    # 4 of 5 tokens shared > 0.7 * 5
    assert are_similar_reviews(
        "the coffee was really good",
        "the coffee was really bad"
    )
    # 3 of 5 shared is not > 3.5
    assert not are_similar_reviews(
        "the coffee was strong today",
        "the coffee was cold yesterday"
    )


def test_empty_texts_never_similar():
    assert not are_similar_reviews("", "anything")
    assert not are_similar_reviews("anything", "")
    assert not are_similar_reviews("", "")


def test_overlap_ratio_is_tunable():
    a = "the coffee was strong today"
    b = "the coffee was cold yesterday"
    assert are_similar_reviews(a, b, overlap_ratio=0.5)


def test_merge_two_providers_with_near_duplicates():
    set_a = [raw(unique_text("w", i)) for i in range(100)]
    set_b = (
        [raw(unique_text("w", i) + " plus extra words", ReviewSource.PAID_SCRAPE) for i in range(30)]
        + [raw(unique_text("v", i), ReviewSource.PAID_SCRAPE) for i in range(70)]
    )

    merged = ReviewDeduplicator().merge([("structured_api", set_a), ("paid_scrape", set_b)])

    assert len(merged) == 170
    # higher-priority copies win
    assert merged[:100] == set_a
    assert all(r.source == ReviewSource.PAID_SCRAPE for r in merged[100:])


def test_merge_output_has_no_similar_pairs():
    texts = [
        "Amazing pizza, will be back",
        "amazing pizza",
        "Service was slow and the waiter rude",
        "service was slow and the waiter was rude",
        "Lovely garden seating area",
        "",
        "Parking is a nightmare here",
    ]
    set_a = [raw(t) for t in texts[:4]]
    set_b = [raw(t, ReviewSource.BROWSER_SCRAPE) for t in texts[3:]]

    merged = ReviewDeduplicator().merge([("structured_api", set_a), ("browser_scrape", set_b)])

    assert len(merged) <= len(set_a) + len(set_b)
    for first, second in itertools.combinations(merged, 2):
        assert not are_similar_reviews(first.text, second.text)


def test_merge_deduplicates_within_first_set():
    reviews = [raw("Best brunch in town"), raw("best brunch in town!")]
    merged = ReviewDeduplicator().merge([("structured_api", reviews)])
    assert [r.text for r in merged] == ["Best brunch in town"]


@pytest.mark.parametrize("sets", [[], [("structured_api", [])]])
def test_merge_empty(sets):
    assert ReviewDeduplicator().merge(sets) == []
