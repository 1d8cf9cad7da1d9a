"""Async SQLAlchemy engine for the PostgreSQL document store.

DATABASE_URL set:   engine + session factory (asyncpg), used by
                    learnpath/repos/pg_document_store.py
DATABASE_URL unset: both are None and learnpath/repos/store.py falls
                    back to the in-memory document store
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from learnpath.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        # Lesson events are short single-row transactions; a small pool
        # per instance is plenty, overflow absorbs completion bursts.
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


async def check_connection() -> str:
    """'ok', 'degraded' or 'not_configured', for the health endpoints."""
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed")
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_db():
    if engine is None:
        logger.info("No DATABASE_URL configured, using the in-memory document store")
        yield
        return

    safe_url = engine.url.render_as_string(hide_password=True)
    logger.info("Document store on %s", safe_url)
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")
