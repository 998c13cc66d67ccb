"""Async SQLAlchemy engine, session dependency and schema bootstrap."""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from product_hub.core.config import DatabaseSettings, settings
from product_hub.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def build_engine(db: DatabaseSettings) -> AsyncEngine:
    return create_async_engine(
        db.connection_url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=True,
        echo=db.echo,
        # PgBouncer in transaction mode rejects asyncpg's prepared statement cache
        connect_args={"statement_cache_size": 0},
    )


engine = build_engine(settings.db)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; repositories commit their own writes."""
    async with async_session_maker() as session:
        yield session


class DatabaseClient:
    """PostgreSQL client with connection checks and table bootstrap."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            LOGGER.info("Database connection successful", extra={"category": "DATA"})
            return True
        except Exception:
            LOGGER.error("Database connection failed", exc_info=True, extra={"category": "DATA"})
            raise

    async def disconnect(self) -> None:
        """Dispose the engine pool."""
        await self.engine.dispose()
        LOGGER.info("Database connection closed", extra={"category": "DATA"})

    async def create_tables(self) -> None:
        """Create tables that don't exist yet without dropping existing ones."""
        # Models must be imported so their tables are registered on Base.metadata
        from product_hub.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        LOGGER.info("Database tables created/verified successfully", extra={"category": "DATA"})

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            return {
                "status": "healthy",
                "connected": True,
                "database": "postgresql",
                "latency_test": "passed" if val == 1 else "failed",
            }
        except Exception as e:
            LOGGER.error("Database health check failed", extra={"error": str(e), "category": "DATA"})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
            }


db_client = DatabaseClient(engine)


async def init_database(auto_migrate: bool = True) -> None:
    """Connect and optionally create missing tables."""
    LOGGER.info("Initializing database connection...")
    await db_client.connect()
    if auto_migrate:
        await db_client.create_tables()
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    """Close database connection."""
    try:
        await db_client.disconnect()
    except Exception as e:
        LOGGER.error("Error closing database", exc_info=True, extra={"error": str(e)})
