"""Async database engine and session helpers."""

from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.config import settings
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None


def get_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True
        )
        logger.info(f"Database engine created ({_engine.url.drivername})")
    return _engine


def session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker:
    return async_sessionmaker(
        engine or get_engine(), class_=AsyncSession, expire_on_commit=False
    )


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables that do not exist yet."""
    # register table models on the metadata
    from persona_rag.db import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database schema ready")


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""
    async with session_factory()() as session:
        yield session
