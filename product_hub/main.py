"""FastAPI application entry point."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from product_hub.api.v1.endpoints import health
from product_hub.api.v1.router import api_router
from product_hub.core.config import Settings, settings
from product_hub.core.database import async_session_maker, close_database, init_database
from product_hub.core.llm_client import create_chat_transport
from product_hub.services.assistant.data_loader import SnapshotSource, repository_fetchers
from product_hub.services.assistant.dispatcher import ResponseDispatcher
from product_hub.services.assistant.formatter import ResponseFormatter
from product_hub.services.assistant.pipeline import AssistantPipeline
from product_hub.services.assistant.prompt_builder import PromptBuilder
from product_hub.services.assistant.summarizer import ContextSummarizer
from product_hub.services.assistant.token_budget import TokenCounter
from product_hub.services.cache import TTLCache
from product_hub.services.feeds.earnings_client import EarningsFeedClient
from product_hub.services.feeds.feed_service import FeedService
from product_hub.services.feeds.news_client import NewsFeedClient
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)

DB_INIT_TIMEOUT = 30.0


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


def build_assistant(app_settings: Settings) -> tuple[AssistantPipeline, SnapshotSource]:
    """Wire the chat pipeline against the database-backed snapshot."""
    products_cache = TTLCache(ttl=app_settings.cache.products_ttl, name="products")
    snapshot_cache = TTLCache(ttl=app_settings.cache.snapshot_ttl, max_size=1, name="snapshot")
    snapshot_source = SnapshotSource(
        repository_fetchers(async_session_maker, products_cache=products_cache),
        snapshot_cache,
    )

    llm = app_settings.llm
    assistant = app_settings.assistant
    counter = TokenCounter(model=assistant.tokenizer_model)

    pipeline = AssistantPipeline(
        snapshot_provider=snapshot_source.get,
        dispatcher=ResponseDispatcher(
            create_chat_transport(app_settings),
            timeout_retries=llm.max_retries,
            retry_delay=llm.retry_delay_seconds,
        ),
        summarizer=ContextSummarizer(
            counter,
            max_tokens=assistant.context_token_budget,
            max_chars=assistant.context_max_chars,
            sample_size=assistant.sample_size,
        ),
        prompt_builder=PromptBuilder(counter, history_window=assistant.history_window),
        llm_settings=llm,
        formatter=ResponseFormatter(max_chars=assistant.response_max_chars),
    )
    return pipeline, snapshot_source


def build_feed_services(app_settings: Settings) -> dict[str, FeedService]:
    feeds = app_settings.feeds
    cache = app_settings.cache

    news_client = NewsFeedClient(
        api_url=feeds.news_api_url,
        api_key=feeds.news_api_key,
        timeout=feeds.timeout_seconds,
        max_results=feeds.max_results_per_request,
    )
    earnings_client = EarningsFeedClient(
        api_url=feeds.earnings_api_url,
        api_key=feeds.earnings_api_key,
        api_host=feeds.earnings_api_host,
        timeout=feeds.timeout_seconds,
    )

    async def fetch_reports() -> list:
        batch = await earnings_client.fetch_all()
        return batch.reports

    options = dict(
        ttl=cache.feed_ttl,
        stale_extension=cache.feed_stale_extension,
        max_age=cache.feed_max_age,
        cooldown=feeds.rate_limit_cooldown_seconds,
    )
    return {
        "news": FeedService("news", news_client.fetch_articles, **options),
        "earnings": FeedService("earnings", fetch_reports, **options),
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        await asyncio.wait_for(
            init_database(auto_migrate=settings.db.auto_migrate),
            timeout=DB_INIT_TIMEOUT,
        )
        LOGGER.info("Database initialized successfully")
    except asyncio.TimeoutError:
        LOGGER.error(f"Database initialization timed out after {DB_INIT_TIMEOUT}s")
    except Exception as e:
        LOGGER.error(f"Database initialization failed: {e}", exc_info=True)

    # Configuration errors here are fatal.
    pipeline, snapshot_source = build_assistant(settings)
    app.state.assistant_pipeline = pipeline
    app.state.snapshot_source = snapshot_source
    app.state.feed_services = build_feed_services(settings)

    yield

    LOGGER.info("Shutting down application")
    snapshot_source.close()

    try:
        await close_database()
    except Exception as e:
        LOGGER.error(
            "Error closing database",
            exc_info=True,
            extra={"error": str(e)},
        )


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Context-aware assistant for the insurance product catalog",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Include routers
app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "product_hub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
