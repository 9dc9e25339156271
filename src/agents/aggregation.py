"""
Analytics Aggregator.

Summarises the persisted analyses of a project: sentiment summary, recent
analyses, detailed breakdowns and a CSV export.
"""

import logging
import os
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pandas as pd

import config.settings as settings
from src.utils.storage import ReviewStore

logger = logging.getLogger(__name__)

CATEGORIES = ("positive", "negative", "neutral")
RATINGS = (1, 2, 3, 4, 5)

EXPORT_COLUMNS = [
    "review_id", "text", "rating", "author",
    "primary_category", "primary_confidence", "sentiment_score",
    "themes", "secondary_categories", "key_phrases", "summary",
    "model_used", "analysis_date", "created_at",
]


def top_themes(rows: List[Dict], limit: int = settings.TOP_THEMES_LIMIT) -> List[Dict]:
    """Most frequent themes, ties kept in first-seen order."""
    counts = Counter(theme for row in rows for theme in row.get("themes") or [])
    return [{"theme": theme, "count": count} for theme, count in counts.most_common(limit)]


def _analysis_frame(rows: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    # missing ratings count as neutral 3 stars in the breakdowns
    df["rating"] = pd.to_numeric(df["rating"], errors="coerce").fillna(3).astype(int)
    return df


class AnalyticsAggregator:
    """
    Read-only analytics over a project's analyses.
    """

    def __init__(self, store: ReviewStore):
        self.store = store

    async def summary(self, project_id: str) -> Dict:
        """
        Category counts, mean sentiment and top themes.

        Args:
            project_id: Project ID

        Returns:
            Dict with total, positive, negative, neutral, avg_sentiment,
            common_themes (all zero / empty when nothing is analysed)
        """
        rows = await self.store.analyses_for_project(project_id)
        if not rows:
            return {
                "total": 0,
                "positive": 0,
                "negative": 0,
                "neutral": 0,
                "avg_sentiment": 0.0,
                "common_themes": [],
            }

        df = _analysis_frame(rows)
        counts = df["primary_category"].value_counts()

        summary = {"total": len(df)}
        for category in CATEGORIES:
            summary[category] = int(counts.get(category, 0))
        summary["avg_sentiment"] = round(float(df["sentiment_score"].mean()), 3)
        summary["common_themes"] = top_themes(rows)

        logger.debug(f"Summary for {project_id}: {summary['total']} analyses")
        return summary

    async def recent(self, project_id: str, limit: int = settings.RECENT_ANALYSES_LIMIT) -> List[Dict]:
        """Latest analyses first, joined with review text, rating and author."""
        rows = await self.store.analyses_for_project(project_id)
        rows.sort(key=lambda row: row.get("created_at", ""), reverse=True)

        return [
            {
                "id": row["id"],
                "review_id": row["review_id"],
                "primary_category": row["primary_category"],
                "primary_confidence": row["primary_confidence"],
                "sentiment_score": row["sentiment_score"],
                "themes": row["themes"],
                "key_phrases": row["key_phrases"],
                "summary": row["summary"],
                "text": row["text"],
                "rating": row["rating"],
                "author": row["author"],
            }
            for row in rows[:limit]
        ]

    async def detailed(self, project_id: str) -> Optional[Dict]:
        """
        Full breakdown: overview, rating distribution, sentiment by rating,
        top themes and themes by sentiment.

        Returns:
            Analytics dict, or None when the project has no analyses
        """
        rows = await self.store.analyses_for_project(project_id)
        if not rows:
            return None

        df = _analysis_frame(rows)
        counts = df["primary_category"].value_counts()

        overview = {"total": len(df)}
        for category in CATEGORIES:
            overview[category] = int(counts.get(category, 0))
        overview["avg_sentiment"] = round(float(df["sentiment_score"].mean()), 3)
        overview["avg_confidence"] = round(float(df["primary_confidence"].mean()), 3)

        rating_counts = df["rating"].value_counts()
        rating_distribution = [
            {"rating": rating, "count": int(rating_counts.get(rating, 0))}
            for rating in RATINGS
        ]

        by_rating = pd.crosstab(df["rating"], df["primary_category"])
        by_rating = by_rating.reindex(index=list(RATINGS), columns=list(CATEGORIES), fill_value=0)
        sentiment_by_rating = [
            {"rating": rating, **{c: int(by_rating.at[rating, c]) for c in CATEGORIES}}
            for rating in RATINGS
        ]

        return {
            "overview": overview,
            "rating_distribution": rating_distribution,
            "sentiment_by_rating": sentiment_by_rating,
            "top_themes": top_themes(rows),
            "themes_by_sentiment": self._themes_by_sentiment(rows),
        }

    @staticmethod
    def _themes_by_sentiment(rows: List[Dict], limit: int = settings.TOP_THEMES_LIMIT) -> List[Dict]:
        table: Dict[str, Dict[str, int]] = {}
        for row in rows:
            category = row.get("primary_category")
            for theme in row.get("themes") or []:
                entry = table.setdefault(theme, {c: 0 for c in CATEGORIES})
                if category in entry:
                    entry[category] += 1

        ranked = [
            {"theme": theme, **counts, "total": sum(counts.values())}
            for theme, counts in table.items()
        ]
        ranked.sort(key=lambda entry: entry["total"], reverse=True)
        return ranked[:limit]

    async def export_csv(self, project_id: str, output_dir: str = str(settings.OUTPUT_ROOT)) -> str:
        """
        Write every analysis of a project to CSV.

        List fields are joined with "; ".

        Returns:
            Path to the CSV file
        """
        rows = await self.store.analyses_for_project(project_id)

        records = []
        for row in rows:
            metadata = row.get("model_metadata") or {}
            records.append({
                "review_id": row["review_id"],
                "text": row["text"],
                "rating": row["rating"],
                "author": row["author"],
                "primary_category": row["primary_category"],
                "primary_confidence": row["primary_confidence"],
                "sentiment_score": row["sentiment_score"],
                "themes": "; ".join(row.get("themes") or []),
                "secondary_categories": "; ".join(row.get("secondary_categories") or []),
                "key_phrases": "; ".join(row.get("key_phrases") or []),
                "summary": row["summary"],
                "model_used": metadata.get("model_used", ""),
                "analysis_date": metadata.get("analysis_date", ""),
                "created_at": row.get("created_at", ""),
            })

        df = pd.DataFrame(records, columns=EXPORT_COLUMNS)
        if not df.empty:
            df = df.sort_values("sentiment_score", ascending=False)

        os.makedirs(output_dir, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        output_path = os.path.join(output_dir, f"analyses_{project_id}_{stamp}.csv")
        df.to_csv(output_path, index=False)

        logger.info(f"Exported {len(df)} analyses to {output_path}")
        return output_path
