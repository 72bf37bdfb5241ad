"""Database engine, billing sessions and schema bootstrap."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fleet_billing.core.config import Settings, settings as default_settings

from .models import Base

logger = structlog.get_logger(__name__)

ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def normalize_database_url(url: str) -> str:
    """Rewrite a plain database URL to the async driver the service runs on."""
    for prefix, replacement in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def engine_options(url: str, cfg: Settings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": cfg.debug, "pool_pre_ping": True}
    # SQLite has no connection pool to size.
    if not url.startswith("sqlite"):
        options["pool_size"] = cfg.db_pool_size
        options["max_overflow"] = cfg.db_max_overflow
    return options


class DatabaseSessionManager:
    """
    Owns the async engine shared by the API and the billing jobs.

    Billing services commit their own unit of work (claims are committed
    before a processor call, settlements after it); the session scope only
    commits what is left and rolls back on error.
    """

    def __init__(self, app_settings: Optional[Settings] = None):
        self._settings = app_settings or default_settings
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    def init(self, database_url: Optional[str] = None) -> None:
        url = normalize_database_url(database_url or self._settings.database_url)

        self._engine = create_async_engine(url, **engine_options(url, self._settings))
        self._sessionmaker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("database_initialized", driver=self._engine.url.drivername)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    async def create_schema(self) -> None:
        """Create every billing table that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_schema_created", tables=len(Base.metadata.tables))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


db_manager = DatabaseSessionManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with db_manager.session() as session:
        yield session
