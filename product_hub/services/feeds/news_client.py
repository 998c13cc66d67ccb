import hashlib
from datetime import datetime
from typing import Any, Optional

import httpx

from product_hub.core.exceptions import APIClientError
from product_hub.core.llm_client import BaseLLMClient
from product_hub.schemas.catalog import NewsArticleRecord
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Search terms per focus area
FOCUS_QUERIES = {
    "pc": "insurance property casualty",
    "property": "property insurance homeowners",
    "casualty": "liability insurance workers compensation",
    "commercial": "commercial insurance business regulatory compliance",
    "personal": "auto insurance homeowners",
}
DEFAULT_QUERY = "insurance regulatory compliance"

# Upstream page size ceiling
MAX_RESULTS_PER_REQUEST = 10


def _article_id(raw: dict[str, Any]) -> str:
    if raw.get("article_id"):
        return str(raw["article_id"])
    basis = raw.get("link") or raw.get("title") or ""
    return hashlib.sha1(basis.encode("utf-8")).hexdigest()


def _first_category(value: Any) -> str:
    # The upstream sends a list of categories
    if isinstance(value, list):
        return value[0] if value else "business"
    return value or "business"


def _parse_published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace(" ", "T"))
    except ValueError:
        return None


class NewsFeedClient:
    """NewsData-style latest-news search.

    Attributes:
        max_results: Page size, capped at the upstream limit
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30,
        max_results: int = MAX_RESULTS_PER_REQUEST,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.max_results = min(max_results, MAX_RESULTS_PER_REQUEST)
        # The key travels as a query parameter, not a bearer header.
        self.client = BaseLLMClient(
            api_key="",
            base_url=api_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            transport=transport,
        )

    def build_params(self, focus_area: str = "pc", page: Optional[str] = None) -> dict[str, str]:
        params = {
            "apikey": self.api_key,
            "q": FOCUS_QUERIES.get(focus_area, DEFAULT_QUERY),
            "country": "us",
            "language": "en",
            "category": "business",
            "removeduplicate": "1",
            "size": str(self.max_results),
        }
        if page:
            params["page"] = page
        return params

    def transform(self, raw: dict[str, Any]) -> NewsArticleRecord:
        return NewsArticleRecord(
            id=_article_id(raw),
            title=raw["title"],
            link=raw.get("link"),
            source=raw.get("source_name") or raw.get("source_id") or "Unknown Source",
            summary=raw.get("description"),
            category=_first_category(raw.get("category")),
            published_at=_parse_published(raw.get("pubDate")),
        )

    async def fetch_articles(
        self, focus_area: str = "pc", page: Optional[str] = None
    ) -> list[NewsArticleRecord]:
        """Fetch one page of articles, newest first.

        Raises:
            RateLimitError: On HTTP 429 (carries Retry-After)
            APIClientError: On other failures or an error payload
        """
        if not self.api_key:
            raise APIClientError("Missing news API key")

        LOGGER.info(
            f"Fetching {focus_area} news articles",
            extra={"category": "NEWS", "size": self.max_results},
        )
        data = await self.client.call_api(method="GET", payload=self.build_params(focus_area, page))

        if data.get("status") == "error":
            message = (data.get("results") or {}).get("message", "Unknown error")
            raise APIClientError(f"News API error: {message}")
        results = data.get("results")
        if not isinstance(results, list):
            raise APIClientError("Invalid response format from news API")

        articles = [
            self.transform(item)
            for item in results
            if item.get("title") and item.get("description")
        ]
        articles.sort(
            key=lambda a: a.published_at.timestamp() if a.published_at else 0.0,
            reverse=True,
        )
        LOGGER.info(
            f"Transformed {len(articles)} articles ({len(results)} from API)",
            extra={"category": "NEWS"},
        )
        return articles
