"""News and earnings feed response models."""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from product_hub.schemas.catalog import EarningsReportRecord, NewsArticleRecord

FeedSource = Literal["cache", "api", "stale", "empty"]


class FeedStatus(BaseModel):
    source: FeedSource
    stale: bool = False
    rate_limited: bool = False
    retry_after: Optional[float] = Field(default=None, description="Seconds until upstream calls resume")
    error: Optional[str] = None


class NewsFeedResponse(FeedStatus):
    articles: list[NewsArticleRecord] = Field(default_factory=list)


class EarningsFeedResponse(FeedStatus):
    reports: list[EarningsReportRecord] = Field(default_factory=list)
