from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config_loader import Settings


class Base(DeclarativeBase):
    pass


def get_async_engine(settings: Settings) -> AsyncEngine:
    """Create and return an asynchronous SQLAlchemy engine.

    The engine uses the database URL and pooling parameters provided by the
    Settings instance. No global engine is created; callers are responsible
    for managing the engine lifecycle. SQLite URLs skip the pool sizing
    options; an in-memory SQLite database shares a single connection so every
    session sees the same schema.
    """
    db_url = settings.database_url
    kwargs: Dict[str, Any] = {}

    if db_url.startswith("sqlite"):
        if ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle_seconds,
            pool_pre_ping=True,
        )

    return create_async_engine(db_url, **kwargs)
