"""PostgreSQL schema bootstrap using SQLAlchemy async.

The ORM models only define the schema contract. Runtime reads and writes go
through asyncpg in ``BookRepository``.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ..config import DATABASE_URL


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""

    pass


engine: Optional[AsyncEngine] = None

if DATABASE_URL:
    engine = create_async_engine(
        DATABASE_URL,
        echo=False,
        pool_size=2,
        max_overflow=0,
        pool_pre_ping=True,
    )


def _check_configured():
    """Raise an error if the database is not configured."""
    if engine is None:
        raise RuntimeError(
            "Database not configured. Set DATABASE_URL environment variable "
            "to a PostgreSQL connection string."
        )


async def init_db() -> None:
    """Initialize database - create all tables."""
    # Register the models on Base.metadata before create_all
    from . import models  # noqa: F401

    _check_configured()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
