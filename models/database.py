"""
Database Configuration Module

EXPLANATION FOR VIVA:
=====================
One async engine and one session factory for the whole application.

Key Concepts:
1. ORM: Document, ShareEntry, Mention, VersionSnapshot and User are classes
   mapped to tables
2. Async: every query is awaited, so an agent waiting on the database never
   blocks the other agents
3. Session per operation: the DocumentStore opens a session, commits once,
   closes it; nothing is cached between requests

SQLite (file based) is the default. Setting DATABASE_URL to a PostgreSQL URL
switches the engine without code changes.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
import os
import logging

logger = logging.getLogger(__name__)


def normalize_database_url(url: str) -> str:
    """Hosting providers hand out postgres:// URLs; the async driver needs postgresql+asyncpg://."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


DATABASE_URL = normalize_database_url(
    os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./collaborative_documents.db")
)

engine = create_async_engine(DATABASE_URL, echo=False)

# expire_on_commit=False: a document stays readable after its commit, so the
# agent can serialize it once the session is closed
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

Base = declarative_base()


async def init_db(db_engine=None):
    """
    Create all tables (idempotent).

    EXPLANATION FOR VIVA:
    ====================
    The model modules are imported here so every table is registered on
    Base.metadata before create_all runs. Tests pass their own engine.
    """
    from . import user, document, share, version  # noqa: F401

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")
