"""
Unit tests for Analytics Aggregator.
"""

import pandas as pd

from src.agents.aggregation import AnalyticsAggregator, top_themes
from src.models.analysis import ModelMetadata, ReviewAnalysisResult, SentimentCategory
from src.models.review import RawReview, ReviewSource

METADATA = ModelMetadata(model_used="fake-model", analysis_date="2024-06-01T00:00:00+00:00", processing_time=0.1)


async def seed(store, rows):
    """rows: (text, rating, category, sentiment, themes)"""
    project = await store.create_project("Cafe Roma", "alice")
    raws = [
        RawReview(text=text, rating=rating, author="A", occurred_on="2024-06-01", source=ReviewSource.CSV)
        for text, rating, *_ in rows
    ]
    reviews = await store.insert_reviews(project.id, raws)
    for review, (text, _, category, sentiment, themes) in zip(reviews, rows):
        await store.insert_analysis(review.id, ReviewAnalysisResult(
            primary_category=SentimentCategory(category),
            primary_confidence=0.8,
            secondary_categories=["general"],
            themes=themes,
            sentiment_score=sentiment,
            key_phrases=["x"],
            summary=f"About {text}",
        ), METADATA)
    return project.id


ROWS = [
    ("Lovely staff and food", 5, "positive", 0.9, ["staff", "food"]),
    ("Food was fine", 3, "neutral", 0.0, ["food"]),
    ("Slow service", 1, "negative", -0.8, ["service", "food"]),
    ("No rating here", None, "positive", 0.5, ["staff"]),
]


def test_top_themes_order_and_limit():
    rows = [{"themes": ["b", "a"]}, {"themes": ["a", "c"]}, {"themes": []}, {}]
    assert top_themes(rows) == [
        {"theme": "a", "count": 2},
        {"theme": "b", "count": 1},
        {"theme": "c", "count": 1},
    ]
    assert len(top_themes([{"themes": [str(i)]} for i in range(20)])) == 10


async def test_summary(store):
    project_id = await seed(store, ROWS)

    summary = await AnalyticsAggregator(store).summary(project_id)

    assert summary["total"] == 4
    assert (summary["positive"], summary["negative"], summary["neutral"]) == (2, 1, 1)
    assert summary["avg_sentiment"] == 0.15
    assert summary["common_themes"][0] == {"theme": "food", "count": 3}


async def test_summary_empty(store):
    project = await store.create_project("Empty", "alice")

    summary = await AnalyticsAggregator(store).summary(project.id)

    assert summary == {
        "total": 0, "positive": 0, "negative": 0, "neutral": 0,
        "avg_sentiment": 0.0, "common_themes": [],
    }
    assert await AnalyticsAggregator(store).detailed(project.id) is None


async def test_detailed(store):
    project_id = await seed(store, ROWS)

    analytics = await AnalyticsAggregator(store).detailed(project_id)

    assert analytics["overview"]["avg_confidence"] == 0.8
    # missing rating counted as 3 stars
    assert analytics["rating_distribution"] == [
        {"rating": 1, "count": 1},
        {"rating": 2, "count": 0},
        {"rating": 3, "count": 2},
        {"rating": 4, "count": 0},
        {"rating": 5, "count": 1},
    ]
    by_rating = {row["rating"]: row for row in analytics["sentiment_by_rating"]}
    assert by_rating[3] == {"rating": 3, "positive": 1, "negative": 0, "neutral": 1}
    assert by_rating[2] == {"rating": 2, "positive": 0, "negative": 0, "neutral": 0}

    food = analytics["themes_by_sentiment"][0]
    assert food == {"theme": "food", "positive": 1, "negative": 1, "neutral": 1, "total": 3}


async def test_recent_limit(store):
    project_id = await seed(store, ROWS)

    recent = await AnalyticsAggregator(store).recent(project_id, limit=3)

    assert len(recent) == 3
    assert {"text", "rating", "author", "primary_category"} <= set(recent[0])


async def test_export_csv(store, tmp_path):
    project_id = await seed(store, ROWS)

    path = await AnalyticsAggregator(store).export_csv(project_id, str(tmp_path))

    df = pd.read_csv(path)
    assert len(df) == 4
    assert df.iloc[0]["sentiment_score"] == 0.9
    assert "food; staff" in set(df["themes"]) or "staff; food" in set(df["themes"])
