"""Database engine and async session factory construction."""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from otp_login.config import Settings
from otp_login.models.user import Base


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the identity store.

    ``pool_pre_ping`` and ``pool_timeout`` keep a dead or saturated
    database from hanging a request indefinitely.
    """
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=settings.debug)
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
        pool_timeout=settings.database_timeout_seconds,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that don't yet exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
