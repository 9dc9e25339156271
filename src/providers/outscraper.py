"""
Outscraper provider.

Paid scraping service. Large requests are processed asynchronously: the
service answers 202/Pending with a results URL that is polled with capped
linear backoff until the job succeeds, fails, or the attempt budget runs out.
"""

import asyncio
import logging
import re
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import unquote_plus

import httpx

import config.settings as settings
from src.errors import (
    ConfigError,
    NoReviewsFoundError,
    ProviderTimeoutError,
    ResolutionError,
    UpstreamError,
)
from src.models.review import RawReview, ReviewSource
from src.providers.base import ReviewProvider, coerce_rating, date_from_timestamp, today

logger = logging.getLogger(__name__)

_PLACE_PATH = re.compile(r"place/([^/@?]+)")
_SEARCH_PATH = re.compile(r"search/([^/@?]+)")
_DATA_ID = re.compile(r"!1s(0x[a-f0-9]+:0x[a-f0-9]+)", re.IGNORECASE)
_OUTSCRAPER_DATE_FORMATS = ("%m/%d/%Y %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def process_maps_url(url: str) -> Optional[str]:
    """
    Turn a Google Maps URL into an Outscraper query.

    Plain business names and short links pass through unchanged; /place/ and
    /search/ URLs become the decoded name; data-id URLs stay as full URLs.
    """
    url = (url or "").strip()
    if not url:
        return None

    if not any(host in url for host in ("google.com", "maps.google", "goo.gl", "maps.app")):
        return url

    if "goo.gl" in url or "maps.app" in url:
        logger.info("Short Google Maps link detected; expand it manually if scraping fails")
        return url

    for pattern in (_PLACE_PATH, _SEARCH_PATH):
        match = pattern.search(url)
        if match:
            return unquote_plus(match.group(1))

    # data-id URLs and anything else are understood by Outscraper as-is
    return url


def parse_review_date(review: dict) -> str:
    raw = review.get("review_datetime_utc")
    if raw:
        for fmt in _OUTSCRAPER_DATE_FORMATS:
            try:
                return datetime.strptime(str(raw).rstrip("Z"), fmt).strftime("%Y-%m-%d")
            except ValueError:
                continue
    if review.get("review_timestamp"):
        return date_from_timestamp(review["review_timestamp"])
    return today()


class OutscraperProvider(ReviewProvider):
    """Paid-scraping-service provider."""

    name = "paid_scrape"
    source = ReviewSource.PAID_SCRAPE

    def __init__(
        self,
        api_key: str = settings.OUTSCRAPER_API_KEY,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        reviews_url: str = settings.OUTSCRAPER_REVIEWS_URL,
        max_limit: int = settings.OUTSCRAPER_MAX_LIMIT,
        poll_max_attempts: int = settings.OUTSCRAPER_POLL_MAX_ATTEMPTS,
        poll_base_seconds: float = settings.OUTSCRAPER_POLL_BASE_SECONDS,
        poll_max_wait_seconds: float = settings.OUTSCRAPER_POLL_MAX_WAIT_SECONDS,
        poll_timeout: float = settings.OUTSCRAPER_POLL_TIMEOUT_SECONDS
    ):
        """
        Initialize Outscraper provider.

        Args:
            api_key: Outscraper API key
            client: Shared HTTP client
            timeout: Submit request timeout in seconds
            reviews_url: reviews-v3 endpoint
            max_limit: Upper bound on reviewsLimit
            poll_max_attempts: Polling attempts before ProviderTimeoutError
            poll_base_seconds: Wait after attempt n is min(base * n, max_wait)
            poll_max_wait_seconds: Cap on a single wait
            poll_timeout: Per-poll request timeout in seconds
        """
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key
        self.reviews_url = reviews_url
        self.max_limit = max_limit
        self.poll_max_attempts = poll_max_attempts
        self.poll_base_seconds = poll_base_seconds
        self.poll_max_wait_seconds = poll_max_wait_seconds
        self.poll_timeout = poll_timeout

    @property
    def headers(self) -> dict:
        return {"X-API-KEY": self.api_key}

    def backoff(self, attempt: int) -> float:
        return min(self.poll_base_seconds * attempt, self.poll_max_wait_seconds)

    async def _fetch(self, location_ref: str, limit: int) -> Tuple[List[RawReview], Optional[int]]:
        if not self.api_key:
            raise ConfigError(self.name, "Outscraper API key not configured")

        query = process_maps_url(location_ref)
        if not query:
            raise ResolutionError(self.name, "Invalid Google Maps URL format")

        params = {
            "query": query,
            "reviewsLimit": min(limit, self.max_limit),
            "language": settings.OUTSCRAPER_LANGUAGE,
            "region": settings.OUTSCRAPER_REGION,
            "sort": "newest",
            "cutoff": 0,
            "ignoreEmpty": True,
            "async": True,
        }

        async with self.http() as client:
            try:
                response = await client.get(self.reviews_url, params=params, headers=self.headers)
            except httpx.HTTPError as e:
                raise UpstreamError(self.name, f"Outscraper request failed: {e}") from e

            payload = self._json(response)

            if response.status_code == 202 and payload.get("status") == "Pending":
                results_url = payload.get("results_location")
                if not results_url:
                    raise UpstreamError(self.name, "No results location provided for async request")
                logger.info(f"{self.name}: job pending, polling {results_url}")
                payload = await self.poll_for_results(client, results_url)
            elif response.status_code != 200:
                message = payload.get("error") or payload.get("message") or response.reason_phrase
                raise UpstreamError(
                    self.name,
                    f"Outscraper request failed: {response.status_code} - {message}"
                )

        return self._process_results(payload)

    def _json(self, response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    async def poll_for_results(self, client: httpx.AsyncClient, results_url: str) -> dict:
        """
        Poll an async job until Success or Failed.

        Raises:
            UpstreamError: Job reported Failed
            ProviderTimeoutError: Attempts exhausted
        """
        for attempt in range(1, self.poll_max_attempts + 1):
            try:
                response = await client.get(results_url, headers=self.headers, timeout=self.poll_timeout)
                payload = self._json(response)
            except httpx.HTTPError as e:
                logger.warning(f"{self.name}: poll attempt {attempt} failed: {e}")
            else:
                status = payload.get("status")
                if response.status_code == 200 and status == "Success":
                    logger.info(f"{self.name}: results ready after {attempt} polls")
                    return payload
                if status == "Failed":
                    raise UpstreamError(self.name, "Outscraper processing failed")

            if attempt < self.poll_max_attempts:
                wait = self.backoff(attempt)
                logger.info(f"{self.name}: still processing, waiting {wait:.0f}s ({attempt}/{self.poll_max_attempts})")
                await asyncio.sleep(wait)

        raise ProviderTimeoutError(
            self.name,
            f"Polling timeout - results not ready after {self.poll_max_attempts} attempts"
        )

    def _process_results(self, payload: dict) -> Tuple[List[RawReview], Optional[int]]:
        if "data" not in payload:
            raise UpstreamError(self.name, "Unexpected response structure from Outscraper")

        data = payload["data"] or []
        place = data[0] if data else None
        # async results nest one list of places per query
        if isinstance(place, list):
            place = place[0] if place else None
        if not place:
            raise NoReviewsFoundError(
                self.name,
                "No business data returned. The business might not exist or have no reviews."
            )

        items = place.get("reviews_data") or place.get("reviews") or []
        available = place.get("reviews_count") or place.get("total_reviews") or len(items)
        business = place.get("name") or "Unknown"

        if not items:
            raise NoReviewsFoundError(self.name, f'Business "{business}" found but has no reviews yet')

        logger.info(f"{self.name}: found {len(items)} reviews for {business} ({available} available)")

        reviews = [
            RawReview(
                text=(item.get("review_text") or "").strip(),
                rating=coerce_rating(item.get("review_rating")),
                author=item.get("author_title") or "Anonymous",
                occurred_on=parse_review_date(item),
                source=self.source,
            )
            for item in items
        ]
        return reviews, available
