"""Async SQLAlchemy engine and session factory.

Only used when LEDGER_BACKEND is "database". Usage:
    from docdog.database import async_session

    store = DatabaseRecordStore(async_session, user_id)
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from docdog.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """Create an engine; connection pool options only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


engine = build_engine(settings.DATABASE_URL)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
