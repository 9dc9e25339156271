"""
Pipeline Orchestrator.

Coordinates the agents for a project:
ingest (providers -> merge -> persist) and
run_analysis (pending reviews -> filter -> windowed LLM analysis -> persist).

Every public operation returns a plain dict with "success" and either its
results or an "error" string; exceptions never escape.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import httpx

import config.settings as settings
from src.agents.aggregation import AnalyticsAggregator
from src.agents.analysis import AnalysisMode, ReviewAnalysisAgent
from src.agents.deduplication import ReviewDeduplicator
from src.agents.ingestion import IngestionAgent
from src.agents.progress import ProgressTracker
from src.agents.quality_filter import ReviewQualityFilter
from src.errors import PersistenceError
from src.models.analysis import AnalysisOutcome, AnalysisRequest, ModelMetadata
from src.models.review import RawReview
from src.providers.base import ReviewProvider
from src.providers.browser import BrowserScrapeProvider
from src.providers.csv_upload import parse_review_csv
from src.providers.outscraper import OutscraperProvider
from src.providers.places import GooglePlacesProvider
from src.utils.llm import GeminiChatModel
from src.utils.storage import JsonReviewStore, ReviewStore

logger = logging.getLogger(__name__)


def build_providers(
    places_api_key: Optional[str] = None,
    outscraper_api_key: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    include_browser: bool = True,
    priority: Sequence[str] = settings.PROVIDER_PRIORITY
) -> List[ReviewProvider]:
    """
    Providers ordered by priority. Keyed providers are only included when
    their key is configured.
    """
    available: Dict[str, ReviewProvider] = {}
    if places_api_key:
        available[GooglePlacesProvider.name] = GooglePlacesProvider(api_key=places_api_key, client=client)
    if outscraper_api_key:
        available[OutscraperProvider.name] = OutscraperProvider(api_key=outscraper_api_key, client=client)
    if include_browser:
        available[BrowserScrapeProvider.name] = BrowserScrapeProvider()
    return [available[name] for name in priority if name in available]


class PipelineOrchestrator:
    """
    Runs ingestion and analysis for projects held in a ReviewStore.

    One run per project at a time: a second ingest/run_analysis on a project
    whose run is still active is rejected.
    """

    def __init__(
        self,
        store: ReviewStore,
        analysis_agent: Optional[ReviewAnalysisAgent] = None,
        ingestion_agent: Optional[IngestionAgent] = None,
        quality_filter: Optional[ReviewQualityFilter] = None,
        aggregator: Optional[AnalyticsAggregator] = None,
        flush_every: int = settings.PROGRESS_FLUSH_EVERY
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            store: Persistence gateway
            analysis_agent: LLM analysis engine (analysis is unavailable without it)
            ingestion_agent: Provider runner (scraping is unavailable without it)
            quality_filter: Pre-analysis filter
            aggregator: Analytics over persisted analyses
            flush_every: Progress write interval, in analysed reviews
        """
        self.store = store
        self.analysis_agent = analysis_agent
        self.ingestion_agent = ingestion_agent
        self.quality_filter = quality_filter or ReviewQualityFilter()
        self.aggregator = aggregator or AnalyticsAggregator(store)
        self.flush_every = flush_every

        self._locks: Dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(
        cls,
        api_key: Optional[str] = None,
        data_root: Optional[str] = None,
        places_api_key: Optional[str] = None,
        outscraper_api_key: Optional[str] = None,
        strategy: str = settings.INGESTION_STRATEGY
    ) -> "PipelineOrchestrator":
        """
        Wire the default components.

        Args:
            api_key: Google API key for the analysis model (None disables analysis)
            data_root: Store directory (None keeps the store in memory)
            places_api_key: Google Places key (None skips that provider)
            outscraper_api_key: Outscraper key (None skips that provider)
            strategy: "merge" or "fallback"
        """
        logger.info("Initializing pipeline components...")

        store = JsonReviewStore(data_root)

        analysis_agent = None
        if api_key:
            analysis_agent = ReviewAnalysisAgent(
                chat_model=GeminiChatModel(api_key=api_key, model_name=settings.ANALYSIS_MODEL)
            )

        ingestion_agent = IngestionAgent(
            providers=build_providers(places_api_key, outscraper_api_key),
            deduplicator=ReviewDeduplicator(),
            strategy=strategy,
        )

        logger.info("Pipeline initialized successfully")
        return cls(store=store, analysis_agent=analysis_agent, ingestion_agent=ingestion_agent)

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    def is_running(self, project_id: str) -> bool:
        lock = self._locks.get(project_id)
        return lock is not None and lock.locked()

    @staticmethod
    def _busy(project_id: str) -> Dict:
        return {"success": False, "error": f"A run for project {project_id} is already running"}

    @staticmethod
    def _not_found(project_id: str) -> Dict:
        return {"success": False, "error": f"Project not found: {project_id}"}

    # Projects

    async def create_project(
        self,
        name: str,
        owner: str,
        description: Optional[str] = None,
        source_ref: Optional[str] = None,
        max_reviews: int = settings.DEFAULT_MAX_REVIEWS
    ) -> Dict:
        """
        Create a project, optionally ingesting from a source URL straight away.
        """
        try:
            project = await self.store.create_project(name, owner, description)
        except PersistenceError as e:
            return {"success": False, "error": str(e)}

        response = {"success": True, "project": project.to_dict()}
        if source_ref:
            response["ingest"] = await self.ingest(project.id, source_ref, max_reviews)
            refreshed = await self.store.get_project(project.id)
            response["project"] = refreshed.to_dict()
        return response

    async def list_projects(self, owner: Optional[str] = None) -> Dict:
        projects = await self.store.list_projects(owner)
        return {"success": True, "projects": [p.to_dict() for p in projects]}

    async def delete_project(self, project_id: str) -> Dict:
        if self.is_running(project_id):
            return self._busy(project_id)
        try:
            await self.store.delete_project(project_id)
        except PersistenceError as e:
            return {"success": False, "error": str(e)}
        self._locks.pop(project_id, None)
        return {"success": True, "project_id": project_id}

    # Ingestion

    async def ingest(
        self,
        project_id: str,
        source_ref: str,
        max_reviews: int = settings.DEFAULT_MAX_REVIEWS
    ) -> Dict:
        """
        Scrape reviews for a location and persist them.

        Args:
            project_id: Target project
            source_ref: Maps URL, place reference or business name
            max_reviews: Reviews requested from each provider

        Returns:
            {success, reviewCount, sources, errors, partial, attempts} or
            {success: False, error, errors}
        """
        if self.ingestion_agent is None:
            return {"success": False, "error": "No review providers configured"}
        if max_reviews < 1:
            return {"success": False, "error": "max_reviews must be at least 1"}
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        if self.is_running(project_id):
            return self._busy(project_id)

        async with self._lock_for(project_id):
            tracker = ProgressTracker(self.store, project_id, self.flush_every)
            try:
                await tracker.start()
                collected = await self.ingestion_agent.collect(source_ref, max_reviews)
                attempts = [a.to_dict() for a in collected.attempts]

                if not collected.reviews:
                    error = "No reviews could be retrieved from any source"
                    if collected.errors:
                        error = f"{error}: {'; '.join(collected.errors)}"
                    await tracker.fail(error)
                    return {
                        "success": False,
                        "error": error,
                        "errors": collected.errors,
                        "attempts": attempts,
                    }

                response = await self._persist_reviews(tracker, project_id, collected.reviews)
                if response["success"]:
                    response.update({
                        "sources": collected.source_counts(),
                        "errors": collected.errors,
                        "partial": collected.partial,
                        "attempts": attempts,
                    })
                return response

            except Exception as e:
                logger.error(f"Ingest failed for project {project_id}: {e}", exc_info=True)
                await tracker.fail(str(e))
                return {"success": False, "error": str(e)}

    async def ingest_csv(self, project_id: str, csv_path: str) -> Dict:
        """
        Import reviews from a CSV file.

        Returns:
            {success, reviewCount} or {success: False, error}
        """
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        if self.is_running(project_id):
            return self._busy(project_id)

        async with self._lock_for(project_id):
            tracker = ProgressTracker(self.store, project_id, self.flush_every)
            try:
                await tracker.start()
                try:
                    reviews = parse_review_csv(csv_path)
                except (OSError, ValueError) as e:
                    error = f"Could not read CSV: {e}"
                    await tracker.fail(error)
                    return {"success": False, "error": error}

                if not reviews:
                    error = "CSV contains no reviews with text"
                    await tracker.fail(error)
                    return {"success": False, "error": error}

                return await self._persist_reviews(tracker, project_id, reviews)

            except Exception as e:
                logger.error(f"CSV import failed for project {project_id}: {e}", exc_info=True)
                await tracker.fail(str(e))
                return {"success": False, "error": str(e)}

    async def _persist_reviews(
        self,
        tracker: ProgressTracker,
        project_id: str,
        reviews: Sequence[RawReview]
    ) -> Dict:
        try:
            saved = await self.store.insert_reviews(project_id, reviews)
        except PersistenceError as e:
            error = f"Failed to save reviews: {e}"
            await tracker.fail(error)
            return {"success": False, "error": error}

        total = await self.store.count_reviews(project_id)
        project = await tracker.complete_ingest(total)
        return {
            "success": True,
            "reviewCount": len(saved),
            "totalReviews": project.total_reviews,
        }

    # Analysis

    async def run_analysis(self, project_id: str, mode: str = AnalysisMode.STANDARD.value) -> Dict:
        """
        Analyze every review of a project that has no analysis yet.

        Args:
            project_id: Target project
            mode: "standard" or "fast"

        Returns:
            {success, reviewCount, skippedCount, fallbackCount, totalReviews,
            analyzedReviews, filteredCount, message} or {success: False, error}
        """
        if self.analysis_agent is None:
            return {"success": False, "error": "No analysis model configured (set GOOGLE_API_KEY)"}
        try:
            mode = AnalysisMode(mode)
        except ValueError:
            return {"success": False, "error": f"Invalid mode: {mode}. Must be 'standard' or 'fast'"}
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        if self.is_running(project_id):
            return self._busy(project_id)

        async with self._lock_for(project_id):
            tracker = ProgressTracker(self.store, project_id, self.flush_every)
            try:
                return await self._run_analysis(tracker, project_id, mode)
            except Exception as e:
                logger.error(f"Analysis failed for project {project_id}: {e}", exc_info=True)
                await tracker.fail(str(e))
                return {"success": False, "error": str(e)}

    async def _run_analysis(self, tracker: ProgressTracker, project_id: str, mode: AnalysisMode) -> Dict:
        pending = await self.store.reviews_without_analysis(project_id)
        if not pending:
            logger.info(f"Project {project_id}: every review already analyzed, nothing to do")
            return {
                "success": True,
                "reviewCount": 0,
                "skippedCount": 0,
                "message": "All reviews have already been analyzed",
            }

        survivors = self.quality_filter.filter(pending)
        skipped = len(pending) - len(survivors)

        await tracker.start(analyzed_baseline=await self.store.count_analyses(project_id))

        if not survivors:
            project = await tracker.complete_analysis()
            return {
                "success": True,
                "reviewCount": 0,
                "skippedCount": skipped,
                "totalReviews": project.total_reviews,
                "analyzedReviews": project.analyzed_reviews,
                "filteredCount": project.filtered_reviews,
                "message": f"All {skipped} pending reviews were filtered out as low-value",
            }

        logger.info(
            f"Analyzing {len(survivors)} reviews for project {project_id} "
            f"(mode={mode.value}, {skipped} filtered)"
        )

        saved = 0

        async def persist_window(outcomes: List[AnalysisOutcome]) -> None:
            nonlocal saved
            analysis_date = datetime.now(timezone.utc).isoformat()
            entries = [
                (
                    outcome.id,
                    outcome.result,
                    ModelMetadata(
                        model_used=self.analysis_agent.model_name,
                        analysis_date=analysis_date,
                        processing_time=outcome.processing_time,
                    ),
                )
                for outcome in outcomes
            ]
            try:
                stored = await self.store.insert_analyses(entries)
            except PersistenceError as e:
                logger.error(f"Failed to save {len(entries)} analyses, they stay pending: {e}")
                return
            saved += len(stored)
            if stored:
                await tracker.record(len(stored))

        requests = [AnalysisRequest(id=r.id, text=r.text, rating=r.rating) for r in survivors]
        outcomes = await self.analysis_agent.analyze_batch(requests, mode=mode, on_window=persist_window)

        project = await tracker.complete_analysis()
        fallbacks = sum(1 for o in outcomes if o.used_fallback)

        message = f"Analyzed {saved} reviews"
        if skipped:
            message += f", skipped {skipped} low-value reviews"

        return {
            "success": True,
            "reviewCount": saved,
            "skippedCount": skipped,
            "fallbackCount": fallbacks,
            "totalReviews": project.total_reviews,
            "analyzedReviews": project.analyzed_reviews,
            "filteredCount": project.filtered_reviews,
            "mode": mode.value,
            "message": message,
        }

    # Reads

    async def get_progress(self, project_id: str) -> Dict:
        project = await self.store.get_project(project_id)
        if project is None:
            return self._not_found(project_id)
        tracker = ProgressTracker(self.store, project_id)
        snapshot = await tracker.snapshot()
        return {"success": True, "progress": snapshot.to_dict(), "running": self.is_running(project_id)}

    async def summary(self, project_id: str) -> Dict:
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        return {"success": True, "summary": await self.aggregator.summary(project_id)}

    async def recent(self, project_id: str, limit: int = settings.RECENT_ANALYSES_LIMIT) -> Dict:
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        return {"success": True, "analyses": await self.aggregator.recent(project_id, limit)}

    async def detailed(self, project_id: str) -> Dict:
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        return {"success": True, "analytics": await self.aggregator.detailed(project_id)}

    async def export(self, project_id: str, output_dir: str = str(settings.OUTPUT_ROOT)) -> Dict:
        if await self.store.get_project(project_id) is None:
            return self._not_found(project_id)
        try:
            path = await self.aggregator.export_csv(project_id, output_dir)
        except OSError as e:
            return {"success": False, "error": f"Export failed: {e}"}
        return {"success": True, "path": path}
