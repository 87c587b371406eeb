"""Database engine and session factory."""
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from courtbook.core.config import settings

Base = declarative_base()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, sharing one connection for in-memory SQLite."""
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url, echo=False)


async def init_db(db_engine: AsyncEngine) -> None:
    """Create all tables."""
    # Import models so they register on Base.metadata
    from courtbook import models  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = create_engine(settings.DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)
