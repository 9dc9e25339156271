"""
Project Progress Tracker.

Owns a project's status transitions and progress counters for one run:
pending -> processing -> completed | error
"""

import logging
from typing import Optional

import config.settings as settings
from src.models.project import Project, ProjectStatus, ProgressSnapshot
from src.utils.storage import ReviewStore

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Tracks one ingest or analysis run of a project.

    analyzed_reviews is written every flush_every completed items (and at
    the end) so polling clients see monotonically increasing progress
    without a write per review.
    """

    def __init__(
        self,
        store: ReviewStore,
        project_id: str,
        flush_every: int = settings.PROGRESS_FLUSH_EVERY
    ):
        self.store = store
        self.project_id = project_id
        self.flush_every = max(1, flush_every)

        self.analyzed = 0
        self._last_flushed = 0

    async def start(self, analyzed_baseline: Optional[int] = None) -> Project:
        """Move the project to processing."""
        counters = {"last_error": None}
        if analyzed_baseline is not None:
            self.analyzed = self._last_flushed = analyzed_baseline
            counters["analyzed_reviews"] = analyzed_baseline

        project = await self.store.update_project_status(
            self.project_id, ProjectStatus.PROCESSING, **counters
        )
        logger.info(f"Project {self.project_id}: processing")
        return project

    async def record(self, count: int = 1) -> None:
        """Count completed items, flushing every flush_every."""
        self.analyzed += count
        if self.analyzed - self._last_flushed >= self.flush_every:
            await self.flush()

    async def flush(self) -> None:
        await self.store.update_project_status(
            self.project_id, ProjectStatus.PROCESSING, analyzed_reviews=self.analyzed
        )
        self._last_flushed = self.analyzed
        logger.debug(f"Project {self.project_id}: {self.analyzed} reviews analyzed")

    async def complete_ingest(self, total_reviews: int) -> Project:
        """
        Finish an ingest run. total_reviews never moves downward.
        """
        project = await self.store.get_project(self.project_id)
        total = max(total_reviews, project.total_reviews if project else 0)

        project = await self.store.update_project_status(
            self.project_id, ProjectStatus.COMPLETED, total_reviews=total
        )
        logger.info(f"Project {self.project_id}: ingest completed ({total} reviews)")
        return project

    async def complete_analysis(self) -> Project:
        """
        Finish an analysis run; reviews left unanalyzed are reported as filtered.
        """
        project = await self.store.get_project(self.project_id)
        total = project.total_reviews if project else self.analyzed
        # reviews added outside an ingest run (or lost counters) must not break the invariant
        total = max(total, self.analyzed)

        project = await self.store.update_project_status(
            self.project_id,
            ProjectStatus.COMPLETED,
            total_reviews=total,
            analyzed_reviews=self.analyzed,
            filtered_reviews=total - self.analyzed,
        )
        self._last_flushed = self.analyzed
        logger.info(
            f"Project {self.project_id}: analysis completed "
            f"({project.analyzed_reviews}/{project.total_reviews} analyzed, "
            f"{project.filtered_reviews} filtered)"
        )
        return project

    async def fail(self, error: str) -> None:
        """Mark the project as error. Never raises."""
        try:
            await self.store.update_project_status(
                self.project_id, ProjectStatus.ERROR, last_error=error
            )
            logger.error(f"Project {self.project_id}: error - {error}")
        except Exception as e:
            logger.error(f"Failed to record error status for {self.project_id}: {e}")

    async def snapshot(self) -> Optional[ProgressSnapshot]:
        project = await self.store.get_project(self.project_id)
        return ProgressSnapshot.from_project(project) if project else None
