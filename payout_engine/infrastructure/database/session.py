"""Async database engine and session factory"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from payout_engine.config import settings
from payout_engine.infrastructure.database.models import Base

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency injection for the ledger's session factory"""
    return SessionLocal


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create tables that do not exist yet"""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
