"""
Unit tests for the Outscraper provider (HTTP mocked with httpx.MockTransport).
"""

import httpx
import pytest

from src.errors import ConfigError, NoReviewsFoundError, ProviderTimeoutError, UpstreamError
from src.providers.outscraper import OutscraperProvider, parse_review_date, process_maps_url

RESULTS_URL = "https://api.app.outscraper.com/requests/job-123"
MAPS_URL = "https://www.google.com/maps/place/Cafe+Roma/@-33.8,151.2,17z"


def review_items(count):
    return [
        {
            "review_text": f"Visit number {i} was lovely",
            "review_rating": 4,
            "author_title": f"Guest {i}",
            "review_datetime_utc": "06/01/2024 10:30:00",
        }
        for i in range(count)
    ]


def success_payload(count, total=None):
    place = {"name": "Cafe Roma", "reviews_data": review_items(count)}
    if total is not None:
        place["reviews_count"] = total
    return {"status": "Success", "data": [[place]]}


def make_provider(handler, api_key="outscraper-key", **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("poll_base_seconds", 0.0)
    provider = OutscraperProvider(api_key=api_key, client=client, **kwargs)
    return provider, client


@pytest.mark.parametrize("url,expected", [
    (MAPS_URL, "Cafe Roma"),
    ("https://www.google.com/maps/search/pizza+near+bondi", "pizza near bondi"),
    ("https://maps.app.goo.gl/abc123", "https://maps.app.goo.gl/abc123"),
    ("Cafe Roma Sydney", "Cafe Roma Sydney"),
    ("", None),
])
def test_process_maps_url(url, expected):
    assert process_maps_url(url) == expected


def test_parse_review_date():
    assert parse_review_date({"review_datetime_utc": "06/01/2024 10:30:00"}) == "2024-06-01"
    assert parse_review_date({"review_datetime_utc": "2024-06-02T08:00:00Z"}) == "2024-06-02"
    assert parse_review_date({"review_timestamp": 1717200000}) == "2024-06-01"


def test_backoff_is_capped():
    provider = OutscraperProvider(api_key="k", poll_base_seconds=5.0, poll_max_wait_seconds=30.0)
    assert [provider.backoff(n) for n in (1, 2, 6, 7, 12)] == [5.0, 10.0, 30.0, 30.0, 30.0]


async def test_synchronous_response():
    def handler(request):
        assert request.headers["X-API-KEY"] == "outscraper-key"
        assert request.url.params["query"] == "Cafe Roma"
        assert request.url.params["reviewsLimit"] == "1500"
        assert request.url.params["region"] == "AU"
        return httpx.Response(200, json={"data": [{"name": "Cafe Roma", "reviews_data": review_items(3)}]})

    provider, client = make_provider(handler)
    async with client:
        result = await provider.fetch(MAPS_URL, 5000)

    assert result.achieved == 3
    assert result.reviews[0].occurred_on == "2024-06-01"
    assert result.reviews[0].author == "Guest 0"


async def test_pending_job_is_polled_until_success():
    polls = []

    def handler(request):
        if str(request.url).startswith(RESULTS_URL):
            polls.append(request)
            if len(polls) < 3:
                return httpx.Response(200, json={"status": "Pending"})
            return httpx.Response(200, json=success_payload(40, total=900))
        return httpx.Response(202, json={"status": "Pending", "results_location": RESULTS_URL})

    provider, client = make_provider(handler)
    async with client:
        result = await provider.fetch(MAPS_URL, 100)

    assert len(polls) == 3
    assert result.achieved == 40
    assert result.requested == 100
    assert result.partial
    assert result.available == 900


async def test_poll_survives_transient_errors():
    polls = []

    def handler(request):
        if str(request.url).startswith(RESULTS_URL):
            polls.append(request)
            if len(polls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json=success_payload(2))
        return httpx.Response(202, json={"status": "Pending", "results_location": RESULTS_URL})

    provider, client = make_provider(handler)
    async with client:
        result = await provider.fetch(MAPS_URL, 2)

    assert len(polls) == 2
    assert result.achieved == 2


async def test_poll_exhaustion_times_out():
    polls = []

    def handler(request):
        if str(request.url).startswith(RESULTS_URL):
            polls.append(request)
            return httpx.Response(200, json={"status": "Pending"})
        return httpx.Response(202, json={"status": "Pending", "results_location": RESULTS_URL})

    provider, client = make_provider(handler, poll_max_attempts=4)
    async with client:
        with pytest.raises(ProviderTimeoutError) as excinfo:
            await provider.fetch(MAPS_URL, 10)

    assert len(polls) == 4
    assert isinstance(excinfo.value, TimeoutError)


async def test_failed_job():
    def handler(request):
        if str(request.url).startswith(RESULTS_URL):
            return httpx.Response(200, json={"status": "Failed"})
        return httpx.Response(202, json={"status": "Pending", "results_location": RESULTS_URL})

    provider, client = make_provider(handler)
    async with client:
        with pytest.raises(UpstreamError, match="processing failed"):
            await provider.fetch(MAPS_URL, 10)


async def test_missing_results_location():
    provider, client = make_provider(lambda request: httpx.Response(202, json={"status": "Pending"}))
    async with client:
        with pytest.raises(UpstreamError, match="results location"):
            await provider.fetch(MAPS_URL, 10)


async def test_error_status():
    provider, client = make_provider(lambda request: httpx.Response(401, json={"error": "Invalid API key"}))
    async with client:
        with pytest.raises(UpstreamError, match="401 - Invalid API key"):
            await provider.fetch(MAPS_URL, 10)


async def test_business_without_reviews():
    payload = {"data": [{"name": "Cafe Roma", "reviews_data": []}]}
    provider, client = make_provider(lambda request: httpx.Response(200, json=payload))
    async with client:
        with pytest.raises(NoReviewsFoundError, match="has no reviews yet"):
            await provider.fetch(MAPS_URL, 10)


async def test_empty_data():
    provider, client = make_provider(lambda request: httpx.Response(200, json={"data": []}))
    async with client:
        with pytest.raises(NoReviewsFoundError):
            await provider.fetch(MAPS_URL, 10)


async def test_missing_key():
    provider, client = make_provider(lambda request: httpx.Response(200), api_key="")
    async with client:
        with pytest.raises(ConfigError):
            await provider.fetch(MAPS_URL, 10)
