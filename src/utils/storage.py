"""
Storage utility.

Persistence gateway for projects, reviews and review analyses.
The pipeline depends only on the ReviewStore contract; JsonReviewStore is the
file-backed implementation used by the CLI and the tests.
"""

import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from src.errors import PersistenceError
from src.models.analysis import ModelMetadata, ReviewAnalysis, ReviewAnalysisResult
from src.models.project import Project, ProjectStatus
from src.models.review import RawReview, Review

logger = logging.getLogger(__name__)

AnalysisEntry = Tuple[str, ReviewAnalysisResult, ModelMetadata]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ReviewStore:
    """
    Read/write contract consumed by the pipeline.

    All methods are coroutines and raise PersistenceError on failure.
    """

    async def create_project(
        self,
        name: str,
        owner: str,
        description: Optional[str] = None
    ) -> Project:
        raise NotImplementedError

    async def get_project(self, project_id: str) -> Optional[Project]:
        raise NotImplementedError

    async def list_projects(self, owner: Optional[str] = None) -> List[Project]:
        raise NotImplementedError

    async def update_project_status(
        self,
        project_id: str,
        status: ProjectStatus,
        **counters
    ) -> Project:
        raise NotImplementedError

    async def delete_project(self, project_id: str) -> None:
        raise NotImplementedError

    async def insert_reviews(
        self,
        project_id: str,
        reviews: Sequence[RawReview]
    ) -> List[Review]:
        raise NotImplementedError

    async def reviews_without_analysis(self, project_id: str) -> List[Review]:
        raise NotImplementedError

    async def count_reviews(self, project_id: str) -> int:
        raise NotImplementedError

    async def insert_analysis(
        self,
        review_id: str,
        result: ReviewAnalysisResult,
        metadata: ModelMetadata
    ) -> ReviewAnalysis:
        raise NotImplementedError

    async def insert_analyses(self, entries: Sequence[AnalysisEntry]) -> List[ReviewAnalysis]:
        """Save a batch of (review_id, result, metadata); rejected entries are skipped."""
        saved = []
        for review_id, result, metadata in entries:
            try:
                saved.append(await self.insert_analysis(review_id, result, metadata))
            except PersistenceError as e:
                logger.error(f"Skipping analysis for review {review_id}: {e}")
        return saved

    async def count_analyses(self, project_id: str) -> int:
        raise NotImplementedError

    async def analyses_for_project(self, project_id: str) -> List[Dict]:
        raise NotImplementedError


class JsonReviewStore(ReviewStore):
    """
    Single-document JSON store.

    Layout of data/store.json:
    {
      "projects": {project_id: {...}},
      "reviews": {review_id: {...}},
      "analyses": {review_id: {...}}   # keyed by review: one analysis max
    }

    With data_root=None the store is memory-only.
    """

    COUNTER_FIELDS = ("total_reviews", "analyzed_reviews", "filtered_reviews", "last_error")

    def __init__(self, data_root: Optional[str] = None):
        """
        Initialize store.

        Args:
            data_root: Root data directory, or None for an in-memory store
        """
        self.data_root = data_root
        self.store_path = os.path.join(data_root, "store.json") if data_root else None
        self._state: Dict[str, Dict[str, dict]] = {
            "projects": {},
            "reviews": {},
            "analyses": {},
        }

        if data_root:
            os.makedirs(data_root, exist_ok=True)
            if os.path.exists(self.store_path):
                self._load()

        logger.info(f"Initialized JsonReviewStore with data_root={data_root}")

    def _load(self) -> None:
        """Load state from disk, falling back to the backup copy."""
        try:
            with open(self.store_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            for key in self._state:
                self._state[key] = data.get(key, {})
            logger.info(
                f"Loaded {len(self._state['projects'])} projects, "
                f"{len(self._state['reviews'])} reviews from {self.store_path}"
            )
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load store: {e}")
            self._restore_from_backup()

    def _restore_from_backup(self) -> None:
        backup_path = f"{self.store_path}.backup"
        if not os.path.exists(backup_path):
            raise PersistenceError(f"Store {self.store_path} is unreadable and has no backup")

        logger.warning(f"Restoring store from backup: {backup_path}")
        try:
            with open(backup_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Backup restoration failed: {e}") from e
        for key in self._state:
            self._state[key] = data.get(key, {})

    def _flush(self, state: Dict[str, Dict[str, dict]]) -> None:
        """Write state atomically (temp file + rename), keeping a backup."""
        if not self.store_path:
            return

        tmp_path = f"{self.store_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state, f, ensure_ascii=False)
            if os.path.exists(self.store_path):
                shutil.copy(self.store_path, f"{self.store_path}.backup")
            os.replace(tmp_path, self.store_path)
        except OSError as e:
            logger.error(f"Failed to write store {self.store_path}: {e}")
            raise PersistenceError(f"Failed to write store: {e}") from e

    def _commit(self, **tables: Dict[str, dict]) -> None:
        """
        Persist replacement tables, then adopt them in memory.

        In-memory state is left untouched when the write fails.
        """
        state = dict(self._state)
        state.update(tables)
        self._flush(state)
        self._state = state

    def _require_project(self, project_id: str) -> dict:
        data = self._state["projects"].get(project_id)
        if data is None:
            raise PersistenceError(f"Project not found: {project_id}")
        return data

    async def create_project(
        self,
        name: str,
        owner: str,
        description: Optional[str] = None
    ) -> Project:
        if not name or not name.strip():
            raise PersistenceError("Project name is required")

        now = _now()
        project = Project(
            id=str(uuid.uuid4()),
            name=name.strip(),
            owner=owner,
            description=description,
            created_at=now,
            updated_at=now,
        )
        projects = dict(self._state["projects"])
        projects[project.id] = project.to_dict()
        self._commit(projects=projects)
        logger.info(f"Created project {project.id} ('{project.name}')")
        return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        data = self._state["projects"].get(project_id)
        return Project.from_dict(data) if data else None

    async def list_projects(self, owner: Optional[str] = None) -> List[Project]:
        projects = [Project.from_dict(p) for p in self._state["projects"].values()]
        if owner is not None:
            projects = [p for p in projects if p.owner == owner]
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    async def update_project_status(
        self,
        project_id: str,
        status: ProjectStatus,
        **counters
    ) -> Project:
        """
        Set project status and any of total_reviews, analyzed_reviews,
        filtered_reviews, last_error.
        """
        unknown = set(counters) - set(self.COUNTER_FIELDS)
        if unknown:
            raise PersistenceError(f"Unknown project fields: {sorted(unknown)}")

        data = dict(self._require_project(project_id))
        data.update(counters)
        data["status"] = ProjectStatus(status).value
        data["updated_at"] = _now()

        try:
            project = Project.from_dict(data)
        except ValueError as e:
            raise PersistenceError(str(e)) from e

        projects = dict(self._state["projects"])
        projects[project_id] = project.to_dict()
        self._commit(projects=projects)
        return project

    async def delete_project(self, project_id: str) -> None:
        """Delete project, cascading to its reviews and their analyses."""
        self._require_project(project_id)

        review_ids = {
            rid for rid, r in self._state["reviews"].items()
            if r["project_id"] == project_id
        }
        self._commit(
            projects={pid: p for pid, p in self._state["projects"].items() if pid != project_id},
            reviews={rid: r for rid, r in self._state["reviews"].items() if rid not in review_ids},
            analyses={rid: a for rid, a in self._state["analyses"].items() if rid not in review_ids},
        )
        logger.info(f"Deleted project {project_id} and {len(review_ids)} reviews")

    async def insert_reviews(
        self,
        project_id: str,
        reviews: Sequence[RawReview]
    ) -> List[Review]:
        self._require_project(project_id)

        now = _now()
        table = dict(self._state["reviews"])
        saved = []
        for raw in reviews:
            if not raw.text or not raw.text.strip():
                continue
            review = Review(
                id=str(uuid.uuid4()),
                project_id=project_id,
                text=raw.text,
                rating=raw.rating,
                author=raw.author,
                occurred_on=raw.occurred_on,
                source=raw.source,
                created_at=now,
                updated_at=now,
            )
            table[review.id] = review.to_dict()
            saved.append(review)

        self._commit(reviews=table)
        logger.info(f"Saved {len(saved)} reviews for project {project_id}")
        return saved

    def _project_reviews(self, project_id: str) -> List[dict]:
        return [r for r in self._state["reviews"].values() if r["project_id"] == project_id]

    async def reviews_without_analysis(self, project_id: str) -> List[Review]:
        self._require_project(project_id)
        return [
            Review.from_dict(r) for r in self._project_reviews(project_id)
            if r["id"] not in self._state["analyses"]
        ]

    async def count_reviews(self, project_id: str) -> int:
        return len(self._project_reviews(project_id))

    async def insert_analysis(
        self,
        review_id: str,
        result: ReviewAnalysisResult,
        metadata: ModelMetadata
    ) -> ReviewAnalysis:
        table = dict(self._state["analyses"])
        analysis = self._new_analysis(table, review_id, result, metadata)
        self._commit(analyses=table)
        return analysis

    async def insert_analyses(self, entries: Sequence[AnalysisEntry]) -> List[ReviewAnalysis]:
        """
        Save a batch of analyses with a single write.

        Entries for unknown or already analysed reviews are logged and
        skipped. A failed write raises PersistenceError and saves nothing.

        Returns:
            The analyses that were saved
        """
        table = dict(self._state["analyses"])
        saved = []
        for review_id, result, metadata in entries:
            try:
                saved.append(self._new_analysis(table, review_id, result, metadata))
            except PersistenceError as e:
                logger.error(f"Skipping analysis for review {review_id}: {e}")

        if saved:
            self._commit(analyses=table)
        return saved

    def _new_analysis(
        self,
        table: Dict[str, dict],
        review_id: str,
        result: ReviewAnalysisResult,
        metadata: ModelMetadata
    ) -> ReviewAnalysis:
        if review_id not in self._state["reviews"]:
            raise PersistenceError(f"Review not found: {review_id}")
        if review_id in table:
            raise PersistenceError(f"Review {review_id} already has an analysis")

        analysis = ReviewAnalysis(
            id=str(uuid.uuid4()),
            review_id=review_id,
            result=result,
            model_metadata=metadata,
            created_at=_now(),
        )
        table[review_id] = analysis.to_dict()
        return analysis

    async def count_analyses(self, project_id: str) -> int:
        return sum(
            1 for r in self._project_reviews(project_id)
            if r["id"] in self._state["analyses"]
        )

    async def analyses_for_project(self, project_id: str) -> List[Dict]:
        """
        Analyses joined with their review's text, rating and author.

        Returns:
            List of flat dicts, one per analysed review
        """
        rows = []
        for review in self._project_reviews(project_id):
            analysis = self._state["analyses"].get(review["id"])
            if analysis is None:
                continue
            row = dict(analysis)
            row["text"] = review["text"]
            row["rating"] = review.get("rating")
            row["author"] = review.get("author")
            rows.append(row)
        return rows
