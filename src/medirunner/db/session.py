"""Database engine and session management."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from medirunner.db.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and session factory for one database URL."""

    def __init__(self, database_url: str) -> None:
        self._url = make_url(database_url)
        if self._url.get_backend_name() == "sqlite" and self._url.database not in (None, "", ":memory:"):
            Path(self._url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine: AsyncEngine = create_async_engine(database_url, echo=False)
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False, class_=AsyncSession)

    def session(self) -> AsyncSession:
        """Return a new session; use it as an async context manager."""
        return self._sessionmaker()

    async def init(self) -> None:
        """Create tables if they do not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database ready at %s", self._url.render_as_string(hide_password=True))

    async def dispose(self) -> None:
        await self._engine.dispose()
