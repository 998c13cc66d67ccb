from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from product_hub.core.database import get_async_session as get_session
from product_hub.core.exceptions import DatabaseError
from product_hub.repositories.catalog_repository import EarningsRepository, NewsRepository
from product_hub.schemas.feeds import EarningsFeedResponse, NewsFeedResponse
from product_hub.services.feeds.feed_service import FeedService
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def _feed_service(request: Request, name: str) -> FeedService:
    services = getattr(request.app.state, "feed_services", None) or {}
    if name not in services:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} feed is not available",
        )
    return services[name]


async def get_news_service(request: Request) -> FeedService:
    return _feed_service(request, "news")


async def get_earnings_service(request: Request) -> FeedService:
    return _feed_service(request, "earnings")


async def get_news_repository(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> NewsRepository:
    return NewsRepository(db_session)


async def get_earnings_repository(
    db_session: Annotated[AsyncSession, Depends(get_session)]
) -> EarningsRepository:
    return EarningsRepository(db_session)


@router.get(
    "/news",
    response_model=NewsFeedResponse,
    summary="Latest industry news",
    operation_id="get_news_feed",
)
async def get_news(
    service: Annotated[FeedService, Depends(get_news_service)],
    news_repo: Annotated[NewsRepository, Depends(get_news_repository)],
    force_refresh: Annotated[bool, Query()] = False,
) -> NewsFeedResponse:
    """
    Return cached articles, refreshing from upstream when the cache is cold.

    Freshly fetched articles are stored so the assistant's context sees them.
    """
    feed = await service.read(force_refresh=force_refresh)

    if feed.source == "api" and feed.items:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=service.cache.ttl)
        try:
            await news_repo.save_articles(feed.items, expires_at=expires_at)
        except DatabaseError as e:
            LOGGER.error(
                "Failed to store news articles",
                extra={"category": "NEWS", "error": str(e)},
            )

    return NewsFeedResponse(
        source=feed.source,
        stale=feed.stale,
        rate_limited=feed.rate_limited,
        retry_after=feed.retry_after,
        error=feed.error,
        articles=feed.items,
    )


@router.get(
    "/earnings",
    response_model=EarningsFeedResponse,
    summary="Latest insurer earnings",
    operation_id="get_earnings_feed",
)
async def get_earnings(
    service: Annotated[FeedService, Depends(get_earnings_service)],
    earnings_repo: Annotated[EarningsRepository, Depends(get_earnings_repository)],
    force_refresh: Annotated[bool, Query()] = False,
) -> EarningsFeedResponse:
    feed = await service.read(force_refresh=force_refresh)

    if feed.source == "api" and feed.items:
        try:
            await earnings_repo.save_reports(feed.items)
        except DatabaseError as e:
            LOGGER.error(
                "Failed to store earnings reports",
                extra={"category": "EARNINGS", "error": str(e)},
            )

    return EarningsFeedResponse(
        source=feed.source,
        stale=feed.stale,
        rate_limited=feed.rate_limited,
        retry_after=feed.retry_after,
        error=feed.error,
        reports=feed.items,
    )
