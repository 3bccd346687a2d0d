"""
Database connection for PostgreSQL with a SQLite fallback for local dev.

Env vars (set in deployment variables or .env):
    DATABASE_URL          -- full postgres:// connection string
    DATABASE_URL_FALLBACK -- optional sqlite+aiosqlite:///./local.db for local dev
"""

from __future__ import annotations

import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

_raw_url = os.environ.get("DATABASE_URL", "")

if _raw_url:
    # Hosting providers give postgres:// but asyncpg needs postgresql+asyncpg://
    if _raw_url.startswith("postgres://"):
        _raw_url = _raw_url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif _raw_url.startswith("postgresql://"):
        _raw_url = _raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    DATABASE_URL = _raw_url
else:
    # Local fallback: async sqlite via aiosqlite
    DATABASE_URL = os.environ.get(
        "DATABASE_URL_FALLBACK", "sqlite+aiosqlite:///./local_leadportal.db"
    )

if DATABASE_URL.startswith("sqlite"):
    # aiosqlite connections are bound to the loop that opened them
    engine = create_async_engine(DATABASE_URL, echo=False, poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_async_engine(DATABASE_URL, echo=False)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db():
    """Create all tables (safe to call multiple times)."""
    from leadportal import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables. Used by tests and local resets."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session
