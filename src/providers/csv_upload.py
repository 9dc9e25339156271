"""
CSV upload parser.

Reads review exports into RawReview records with source=csv.
"""

import logging
from typing import List, Optional, Sequence

import pandas as pd

from src.models.review import RawReview, ReviewSource
from src.providers.base import coerce_rating, today

logger = logging.getLogger(__name__)

COLUMN_ALIASES = {
    "text": ("text", "review", "review_text", "original_text", "content", "comment"),
    "rating": ("rating", "stars", "score", "review_rating"),
    "author": ("author", "author_name", "name", "user", "reviewer"),
    "date": ("date", "review_date", "occurred_on", "created_at"),
}


def _find_column(columns: Sequence[str], aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        if alias in columns:
            return alias
    return None


def parse_review_csv(source) -> List[RawReview]:
    """
    Parse a CSV of reviews.

    Args:
        source: Path or file-like object

    Returns:
        RawReview list; rows without text are dropped

    Raises:
        ValueError: If no review text column is present
    """
    df = pd.read_csv(source, dtype=str, keep_default_na=False)
    df.columns = [str(c).strip().lower() for c in df.columns]

    text_col = _find_column(df.columns, COLUMN_ALIASES["text"])
    if text_col is None:
        raise ValueError(
            f"CSV must contain a review text column (one of {', '.join(COLUMN_ALIASES['text'])})"
        )
    rating_col = _find_column(df.columns, COLUMN_ALIASES["rating"])
    author_col = _find_column(df.columns, COLUMN_ALIASES["author"])
    date_col = _find_column(df.columns, COLUMN_ALIASES["date"])

    df[text_col] = df[text_col].str.strip()
    df = df[df[text_col] != ""].copy()

    if date_col:
        dates = pd.to_datetime(df[date_col], errors="coerce", format="mixed")
        df["_date"] = dates.dt.strftime("%Y-%m-%d").fillna(today())
    else:
        df["_date"] = today()

    reviews = []
    for _, row in df.iterrows():
        author = row[author_col].strip() if author_col else ""
        reviews.append(RawReview(
            text=row[text_col],
            rating=coerce_rating(row[rating_col]) if rating_col else None,
            author=author or "Anonymous",
            occurred_on=row["_date"],
            source=ReviewSource.CSV,
        ))

    logger.info(f"Parsed {len(reviews)} reviews from CSV")
    return reviews
