"""
Google Places provider.

Resolves a Maps URL (or free-text business name) to a place id and fetches
the small fixed set of reviews the Places details endpoint returns.
"""

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import unquote_plus

import httpx

import config.settings as settings
from src.errors import ConfigError, ResolutionError, UpstreamError
from src.models.review import RawReview, ReviewSource
from src.providers.base import ReviewProvider, coerce_rating, date_from_timestamp

logger = logging.getLogger(__name__)

_PLACE_ID = re.compile(r"place_id=([^&]+)")
_PLACE_NAME = re.compile(r"place/([^/@?]+)")


def place_query_from_ref(location_ref: str) -> Optional[str]:
    """Business name from a /place/<name> URL, or the reference itself if it is not a URL."""
    match = _PLACE_NAME.search(location_ref)
    if match:
        return unquote_plus(match.group(1)).strip() or None
    if "://" not in location_ref and "google." not in location_ref:
        return location_ref.strip() or None
    return None


class GooglePlacesProvider(ReviewProvider):
    """Structured-API provider (highest trust)."""

    name = "structured_api"
    source = ReviewSource.STRUCTURED_API

    def __init__(
        self,
        api_key: str = settings.GOOGLE_PLACES_API_KEY,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        details_url: str = settings.PLACES_DETAILS_URL,
        find_url: str = settings.PLACES_FIND_URL
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key
        self.details_url = details_url
        self.find_url = find_url

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: dict) -> dict:
        try:
            response = await client.get(url, params={**params, "key": self.api_key})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamError(self.name, f"HTTP {e.response.status_code} from Places API") from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(self.name, f"Places API request failed: {e}") from e

    async def resolve_place_id(self, client: httpx.AsyncClient, location_ref: str) -> str:
        match = _PLACE_ID.search(location_ref)
        if match:
            return match.group(1)

        query = place_query_from_ref(location_ref)
        if not query:
            raise ResolutionError(self.name, f"Could not extract place from {location_ref!r}")

        data = await self._get_json(client, self.find_url, {
            "input": query,
            "inputtype": "textquery",
            "fields": "place_id",
        })
        candidates = data.get("candidates") or []
        if data.get("status") != "OK" or not candidates:
            raise ResolutionError(self.name, f"No place found for {query!r} (status={data.get('status')})")

        place_id = candidates[0].get("place_id")
        if not place_id:
            raise ResolutionError(self.name, f"Place candidate for {query!r} has no id")

        logger.info(f"{self.name}: resolved {query!r} to place {place_id}")
        return place_id

    async def _fetch(self, location_ref: str, limit: int) -> Tuple[List[RawReview], Optional[int]]:
        if not self.api_key:
            raise ConfigError(self.name, "Google Places API key not configured")

        async with self.http() as client:
            place_id = await self.resolve_place_id(client, location_ref)
            data = await self._get_json(client, self.details_url, {
                "place_id": place_id,
                "fields": "name,reviews,rating,user_ratings_total",
            })

        if data.get("status") != "OK":
            raise UpstreamError(self.name, f"Google API error: {data.get('status')}")

        place = data.get("result") or {}
        items = place.get("reviews") or []
        logger.info(f"{self.name}: found {len(items)} reviews for {place.get('name', place_id)}")

        reviews = [
            RawReview(
                text=(item.get("text") or "").strip(),
                rating=coerce_rating(item.get("rating")),
                author=item.get("author_name") or "Anonymous",
                occurred_on=date_from_timestamp(item.get("time")),
                source=self.source,
            )
            for item in items
        ]
        return reviews, place.get("user_ratings_total")
