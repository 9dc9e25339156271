"""
Provider base class and result type.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import AsyncIterator, List, Optional, Tuple

import httpx

import config.settings as settings
from src.errors import NoReviewsFoundError
from src.models.review import RawReview, ReviewSource

logger = logging.getLogger(__name__)


def today() -> str:
    return date.today().strftime("%Y-%m-%d")


def date_from_timestamp(seconds) -> str:
    """Epoch seconds -> YYYY-MM-DD (UTC); today on bad input."""
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc).strftime("%Y-%m-%d")
    except (TypeError, ValueError, OverflowError, OSError):
        return today()


def coerce_rating(value) -> Optional[int]:
    """Star rating as int in 1..5, or None."""
    if isinstance(value, bool):
        return None
    try:
        rating = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return rating if 1 <= rating <= 5 else None


@dataclass
class ProviderResult:
    """
    Outcome of one successful provider call.

    Fewer reviews than requested is not an error; partial is set and the
    caller sees requested vs achieved.
    """
    provider: str
    reviews: List[RawReview]
    requested: int
    available: Optional[int] = None  # total the upstream advertises, if known

    @property
    def achieved(self) -> int:
        return len(self.reviews)

    @property
    def partial(self) -> bool:
        return self.achieved < self.requested

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "requested": self.requested,
            "achieved": self.achieved,
            "available": self.available,
            "partial": self.partial,
        }


class ReviewProvider:
    """
    Base class for source providers.

    Subclasses implement _fetch(); fetch() drops empty-text records and caps
    the result at limit.
    """

    name: str = "provider"
    source: ReviewSource

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS
    ):
        """
        Args:
            client: Shared HTTP client (a private one is opened per call if None)
            timeout: HTTP timeout in seconds
        """
        self._client = client
        self.timeout = timeout

    @asynccontextmanager
    async def http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True
        ) as client:
            yield client

    async def fetch(self, location_ref: str, limit: int) -> ProviderResult:
        """
        Fetch up to limit reviews for a location.

        Raises:
            ProviderError subclasses (ConfigError, ResolutionError,
            NoReviewsFoundError, UpstreamError, ProviderTimeoutError)
        """
        logger.info(f"{self.name}: fetching up to {limit} reviews for {location_ref}")
        reviews, available = await self._fetch(location_ref, limit)

        valid = [r for r in reviews if r.text and r.text.strip()]
        dropped = len(reviews) - len(valid)
        if dropped:
            logger.debug(f"{self.name}: dropped {dropped} reviews without text")
        if not valid:
            raise NoReviewsFoundError(self.name, "No reviews with text content found")

        result = ProviderResult(
            provider=self.name,
            reviews=valid[:limit],
            requested=limit,
            available=available,
        )
        if result.partial:
            logger.info(f"{self.name}: got {result.achieved} of {limit} requested reviews")
        return result

    async def _fetch(self, location_ref: str, limit: int) -> Tuple[List[RawReview], Optional[int]]:
        raise NotImplementedError
