"""
Ingestion Agent.

Runs the configured source providers for a location and combines their
results into one deduplicated review set.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import config.settings as settings
from src.agents.deduplication import ReviewDeduplicator
from src.errors import ProviderError
from src.models.review import RawReview
from src.providers.base import ProviderResult, ReviewProvider

logger = logging.getLogger(__name__)


@dataclass
class ProviderAttempt:
    """One provider's outcome: a result or an error message."""
    provider: str
    result: Optional[ProviderResult] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict:
        data = {"provider": self.provider, "success": self.succeeded}
        if self.result is not None:
            data.update(self.result.to_dict())
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class IngestionResult:
    reviews: List[RawReview]
    attempts: List[ProviderAttempt] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [f"{a.provider}: {a.error}" for a in self.attempts if a.error]

    @property
    def partial(self) -> bool:
        return any(a.result.partial for a in self.attempts if a.result is not None)

    def source_counts(self) -> dict:
        return {
            a.provider: (a.result.achieved if a.result is not None else 0)
            for a in self.attempts
        }


class IngestionAgent:
    """
    Collects reviews from several providers.

    Strategies:
    - "merge": run every provider concurrently, merge by priority
    - "fallback": try providers in priority order, stop at the first success

    A failing provider never aborts ingestion; it is recorded as a failed
    attempt.
    """

    def __init__(
        self,
        providers: Sequence[ReviewProvider],
        deduplicator: Optional[ReviewDeduplicator] = None,
        strategy: str = settings.INGESTION_STRATEGY
    ):
        """
        Initialize ingestion agent.

        Args:
            providers: Providers in priority order (highest trust first)
            deduplicator: Merger for multi-provider results
            strategy: "merge" or "fallback"
        """
        if strategy not in ("merge", "fallback"):
            raise ValueError(f"Invalid strategy: {strategy}. Must be 'merge' or 'fallback'")

        self.providers = list(providers)
        self.deduplicator = deduplicator or ReviewDeduplicator()
        self.strategy = strategy

        logger.info(
            f"Initialized IngestionAgent with providers="
            f"{[p.name for p in self.providers]}, strategy={strategy}"
        )

    async def _attempt(self, provider: ReviewProvider, location_ref: str, limit: int) -> ProviderAttempt:
        try:
            result = await provider.fetch(location_ref, limit)
            return ProviderAttempt(provider=provider.name, result=result)
        except ProviderError as e:
            logger.warning(f"Provider {provider.name} failed: {e.message}")
            return ProviderAttempt(provider=provider.name, error=e.message)
        except Exception as e:
            logger.error(f"Provider {provider.name} crashed: {e}", exc_info=True)
            return ProviderAttempt(provider=provider.name, error=f"Unexpected error: {e}")

    async def collect(self, location_ref: str, limit: int) -> IngestionResult:
        """
        Fetch and combine reviews for a location.

        Args:
            location_ref: Maps URL, place reference or business name
            limit: Reviews requested from each provider

        Returns:
            IngestionResult (reviews may be empty if every provider failed)
        """
        if self.strategy == "fallback":
            attempts = []
            for provider in self.providers:
                attempt = await self._attempt(provider, location_ref, limit)
                attempts.append(attempt)
                if attempt.succeeded:
                    break
        else:
            attempts = list(await asyncio.gather(
                *(self._attempt(p, location_ref, limit) for p in self.providers)
            ))

        sets = [(a.provider, a.result.reviews) for a in attempts if a.result is not None]
        reviews = self.deduplicator.merge(sets) if sets else []

        logger.info(
            f"Ingestion for {location_ref}: {len(reviews)} reviews from "
            f"{len(sets)}/{len(attempts)} successful providers"
        )
        return IngestionResult(reviews=reviews, attempts=attempts)
