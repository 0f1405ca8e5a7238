# portal/database.py
# Async SQLAlchemy engine and session singletons for FastAPI
# Manages connection lifecycle and provides dependency injection
# RELEVANT FILES: config.py, models.py, deps.py, main.py

from typing import AsyncGenerator, Optional
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings
from .models import Base

logger = logging.getLogger(__name__)

# Global singleton instances
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """
    Get or create the singleton async engine.
    The driver comes from DATABASE_URL (asyncpg in production).
    """
    global _engine, _session_factory

    if _engine is None:
        settings = get_settings()
        logger.info("Creating database engine...")
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.db_echo,
            pool_pre_ping=True,
        )
        _session_factory = async_sessionmaker(
            _engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info("Database engine created")

    return _engine


def get_session_factory() -> async_sessionmaker:
    if _session_factory is None:
        get_engine()
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session per request.
    Uncommitted work is rolled back if the handler raises.

    Example:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            result = await session.execute(select(Item))
            return result.scalars().all()
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create all tables that do not exist yet"""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def ping() -> None:
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_connections():
    """
    Close all database connections gracefully.
    Called during application shutdown.
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.info("Disposing database engine...")
        await _engine.dispose()
        _engine = None
        _session_factory = None
