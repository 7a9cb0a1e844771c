# database.py — Engine, session factory and the request-scoped session
import os
import logging
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

logger = logging.getLogger("donelist.database")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./donelist.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


def build_engine(url: str = DATABASE_URL) -> AsyncEngine:
    options = {"echo": SQL_ECHO, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=20, max_overflow=0, pool_recycle=3600)
    return create_async_engine(url, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    """Sessions never expire on commit and never autoflush.

    Services flush explicitly so ids are available before the router commits.
    """
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False, autoflush=False)


engine = build_engine()
SessionFactory = make_session_factory(engine)


async def get_db_session():
    """FastAPI dependency. The router commits; any error rolls the whole request back."""
    async with SessionFactory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope():
    """A committed unit of work outside a request (startup checks, health)."""
    async with SessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db():
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Schema ready on {engine.url.get_backend_name()}")


async def check_database() -> str:
    try:
        async with session_scope() as db:
            await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning(f"Database check failed: {exc}")
        return f"error: {str(exc)[:100]}"
    return "connected"


async def close_db():
    await engine.dispose()
