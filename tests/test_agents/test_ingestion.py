"""
Unit tests for Ingestion Agent.

Providers are replaced by in-process fakes; HTTP-level behaviour is covered
in tests/test_providers.
"""

import pytest

from src.agents.ingestion import IngestionAgent
from src.errors import NoReviewsFoundError, UpstreamError
from src.models.review import RawReview, ReviewSource
from src.providers.base import ReviewProvider


class FakeProvider(ReviewProvider):
    def __init__(self, name, texts=None, error=None):
        super().__init__()
        self.name = name
        self.source = ReviewSource.PAID_SCRAPE
        self.texts = texts or []
        self.error = error
        self.calls = 0

    async def _fetch(self, location_ref, limit):
        self.calls += 1
        if self.error is not None:
            raise self.error
        reviews = [
            RawReview(text=t, rating=4, author="A", occurred_on="2024-06-01", source=self.source)
            for t in self.texts
        ]
        return reviews, len(reviews) + 100


def texts(prefix, count):
    return [" ".join(f"{prefix}{i}{c}" for c in "abcdef") for i in range(count)]


def test_invalid_strategy():
    with pytest.raises(ValueError):
        IngestionAgent([], strategy="everything")


async def test_merge_runs_all_providers_and_dedups():
    first = FakeProvider("structured_api", texts("alpha", 5))
    second = FakeProvider("paid_scrape", texts("alpha", 5) + texts("beta", 3))

    result = await IngestionAgent([first, second], strategy="merge").collect("Cafe Roma", 10)

    assert first.calls == 1 and second.calls == 1
    assert len(result.reviews) == 8
    assert result.errors == []
    assert result.source_counts() == {"structured_api": 5, "paid_scrape": 8}
    assert result.partial  # both returned fewer than 10


async def test_merge_survives_failing_provider():
    broken = FakeProvider("structured_api", error=UpstreamError("structured_api", "REQUEST_DENIED"))
    crashing = FakeProvider("browser_scrape", error=RuntimeError("chromium missing"))
    working = FakeProvider("paid_scrape", texts("gamma", 4))

    result = await IngestionAgent([broken, working, crashing]).collect("Cafe Roma", 4)

    assert len(result.reviews) == 4
    assert not result.partial
    assert result.errors == [
        "structured_api: REQUEST_DENIED",
        "browser_scrape: Unexpected error: chromium missing",
    ]
    attempts = {a.provider: a.to_dict() for a in result.attempts}
    assert attempts["paid_scrape"]["success"] is True
    assert attempts["paid_scrape"]["achieved"] == 4
    assert attempts["structured_api"]["success"] is False


async def test_fallback_stops_at_first_success():
    empty = FakeProvider("structured_api", error=NoReviewsFoundError("structured_api", "No reviews found"))
    working = FakeProvider("paid_scrape", texts("delta", 3))
    never = FakeProvider("browser_scrape", texts("epsilon", 3))

    result = await IngestionAgent([empty, working, never], strategy="fallback").collect("Cafe Roma", 3)

    assert [a.provider for a in result.attempts] == ["structured_api", "paid_scrape"]
    assert never.calls == 0
    assert len(result.reviews) == 3


async def test_no_provider_succeeds():
    providers = [
        FakeProvider("structured_api", error=UpstreamError("structured_api", "HTTP 500 from Places API")),
        FakeProvider("paid_scrape", texts=[]),
    ]

    result = await IngestionAgent(providers).collect("Cafe Roma", 10)

    assert result.reviews == []
    assert len(result.errors) == 2
    assert "paid_scrape: No reviews with text content found" in result.errors


async def test_provider_results_capped_at_limit():
    provider = FakeProvider("paid_scrape", texts("zeta", 12))

    result = await IngestionAgent([provider]).collect("Cafe Roma", 5)

    assert len(result.reviews) == 5
    assert result.attempts[0].result.available == 112
