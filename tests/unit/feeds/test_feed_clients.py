"""Unit tests for the news and earnings upstream clients."""

import httpx
import pytest

from product_hub.core.exceptions import APIClientError, RateLimitError
from product_hub.services.feeds.earnings_client import EarningsFeedClient
from product_hub.services.feeds.news_client import NewsFeedClient

NEWS_PAYLOAD = {
    "status": "success",
    "results": [
        {
            "article_id": "older",
            "title": "Regulators review homeowners rates",
            "description": "State regulators opened a review.",
            "link": "https://example.com/older",
            "source_name": "Insurance Journal",
            "category": ["business", "politics"],
            "pubDate": "2024-05-01 08:00:00",
        },
        {
            "title": "Carriers expand commercial auto",
            "description": "Several carriers expanded appetite.",
            "link": "https://example.com/newer",
            "source_id": "carrier_management",
            "pubDate": "2024-05-03 09:30:00",
        },
        {"title": "No description", "pubDate": "2024-05-04 00:00:00"},
    ],
}


class TestNewsFeedClient:
    @pytest.mark.asyncio
    async def test_fetch_transforms_and_sorts(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=NEWS_PAYLOAD)

        client = NewsFeedClient(
            api_url="https://news.test/api/1/latest",
            api_key="news-key",
            max_results=50,
            transport=httpx.MockTransport(handler),
        )

        articles = await client.fetch_articles("property")

        assert [a.title for a in articles] == [
            "Carriers expand commercial auto",
            "Regulators review homeowners rates",
        ]
        assert articles[1].id == "older"
        assert articles[1].category == "business"
        assert articles[0].source == "carrier_management"
        assert len(articles[0].id) == 40
        assert seen["apikey"] == "news-key"
        assert seen["q"] == "property insurance homeowners"
        assert seen["size"] == "10"

    @pytest.mark.asyncio
    async def test_rate_limit_carries_retry_after(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(429, headers={"Retry-After": "90"}, text="slow down")
        )
        client = NewsFeedClient("https://news.test", "news-key", transport=transport)

        with pytest.raises(RateLimitError) as exc_info:
            await client.fetch_articles()
        assert exc_info.value.retry_after == 90.0

    @pytest.mark.asyncio
    async def test_error_payload(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"status": "error", "results": {"message": "bad query"}})
        )
        client = NewsFeedClient("https://news.test", "news-key", transport=transport)

        with pytest.raises(APIClientError, match="bad query"):
            await client.fetch_articles()

    @pytest.mark.asyncio
    async def test_missing_key(self):
        client = NewsFeedClient("https://news.test", "")
        with pytest.raises(APIClientError):
            await client.fetch_articles()


class TestEarningsFeedClient:
    @pytest.mark.asyncio
    async def test_fetch_all_collects_failures(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["x-rapidapi-key"] == "rapid-key"
            symbol = request.url.params["symbol"]
            if symbol == "CB":
                return httpx.Response(404, text="unknown symbol")
            if symbol == "AIG":
                return httpx.Response(200, json={"data": []})
            return httpx.Response(
                200,
                json={"data": [{"period": "2024Q1", "eps_actual": 5.1, "eps_estimate": 4.9, "report_date": "2024-04-25"}]},
            )

        client = EarningsFeedClient(
            api_url="https://earnings.test",
            api_key="rapid-key",
            api_host="earnings.test",
            insurers=[("TRV", "Travelers"), ("CB", "Chubb"), ("AIG", "AIG")],
            transport=httpx.MockTransport(handler),
        )

        batch = await client.fetch_all()

        assert [r.symbol for r in batch.reports] == ["TRV"]
        assert batch.reports[0].period == "Q1 2024"
        assert batch.reports[0].eps_actual == 5.1
        assert [e["symbol"] for e in batch.errors] == ["CB"]

    @pytest.mark.asyncio
    async def test_rate_limit_stops_batch(self):
        client = EarningsFeedClient(
            api_url="https://earnings.test",
            api_key="rapid-key",
            api_host="earnings.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(429)),
        )
        with pytest.raises(RateLimitError):
            await client.fetch_all()

    @pytest.mark.asyncio
    async def test_untracked_symbol(self):
        client = EarningsFeedClient("https://earnings.test", "rapid-key", "earnings.test")
        with pytest.raises(APIClientError):
            await client.fetch_company_earnings("ZZZ")
