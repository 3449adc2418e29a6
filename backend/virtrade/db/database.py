"""
Virtual Trading - Database Connection
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import declarative_base
from loguru import logger

from virtrade.config import settings

# Base class for models
Base = declarative_base()


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the ledger services."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine_for(settings.database_url, echo=settings.DEBUG)

# Create async session factory
async_session_maker = create_session_maker(engine)


async def init_db(bind: AsyncEngine = engine):
    """Initialize database tables."""
    async with bind.begin() as conn:
        # Import all models here to ensure they're registered
        from virtrade.db import models  # noqa: F401

        # Create all tables
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")

