"""Database engine lifecycle and schema management"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)
from .config import Settings
from .errors import ConfigurationError
from .logging import LogEventType, get_logger

logger = get_logger(__name__)

EMBEDDING_TABLES = ("messages", "memory_index", "entities", "facts")

SCHEMA_STATEMENTS = [
    *(
        f"CREATE INDEX IF NOT EXISTS ix_{table}_embedding_hnsw "
        f"ON {table} USING hnsw (embedding vector_cosine_ops)"
        for table in EMBEDDING_TABLES
    ),
    "CREATE INDEX IF NOT EXISTS ix_messages_content_fts "
    "ON messages USING gin (to_tsvector('portuguese', content))",
]


class Database:
    """Owns the async engine and its connection pool.

    Constructed once by the plugin and injected into the repository;
    ``init`` must be awaited before use and ``close`` on shutdown.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise ConfigurationError("Database not initialized", setting="DATABASE_URL")
        return self._engine

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def init(self) -> None:
        if self._engine is not None:
            return
        url = self._settings.ASYNC_DATABASE_URL
        if not url:
            raise ConfigurationError(
                "PostgreSQL not configured. Set DATABASE_URL or POSTGRES_* env vars.",
                setting="DATABASE_URL",
            )

        self._engine = create_async_engine(
            url,
            echo=self._settings.DB_ECHO,
            pool_pre_ping=True,
            pool_size=self._settings.DB_POOL_SIZE,
            max_overflow=self._settings.DB_MAX_OVERFLOW,
            pool_timeout=self._settings.DB_POOL_TIMEOUT,
        )
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(
            "Database engine created",
            event_type=LogEventType.STARTUP,
            pool_size=self._settings.DB_POOL_SIZE,
            max_overflow=self._settings.DB_MAX_OVERFLOW,
        )

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database engine disposed", event_type=LogEventType.SHUTDOWN)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session bound to one transaction; commits on success, rolls back on error."""
        if self._sessionmaker is None:
            raise ConfigurationError("Database not initialized", setting="DATABASE_URL")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create the vector extension, all tables and the search indexes"""
        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(SQLModel.metadata.create_all)
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(text(statement))
        logger.info("Database schema ensured", tables=len(SQLModel.metadata.tables))
