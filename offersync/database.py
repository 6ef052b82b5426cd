# offersync/database.py

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base

from offersync.core.config import Settings, get_settings

Base = declarative_base()


def build_engine(settings: Optional[Settings] = None, **engine_kwargs) -> AsyncEngine:
    """Create the async engine for the configured database"""
    settings = settings or get_settings()
    database_url = settings.async_database_url
    if not database_url:
        raise ValueError("DATABASE_URL is not set in environment variables")

    options = {"echo": False, "future": True}
    if database_url.startswith("postgresql"):
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
        )
    options.update(engine_kwargs)
    return create_async_engine(database_url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine()
async_session = build_session_factory(engine)
