"""Integration fixtures - a real PostgreSQL with the pgvector extension.

Point ASYNC_DATABASE_URL at a disposable database; every test drops and
recreates the schema. Without it the tests in this directory are not collected.
"""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlmodel import SQLModel

from aleff_memory.background import BackgroundTasks
from aleff_memory.config import Settings
from aleff_memory.database import Database
from aleff_memory.embeddings import EmbeddingProvider
from aleff_memory.models import EMBEDDING_DIMENSIONS
from aleff_memory.repository import PostgresRepository

UNIT_VECTOR = [1.0] + [0.0] * (EMBEDDING_DIMENSIONS - 1)

DATABASE_URL = os.environ.get("ASYNC_DATABASE_URL")
if not DATABASE_URL:
    collect_ignore_glob = ["test_*.py"]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL=DATABASE_URL,
        OPENAI_API_KEY="sk-test",
        DB_POOL_SIZE=2,
        LOG_JSON_FORMAT=False,
    )


@pytest_asyncio.fixture
async def database(settings):
    """Initialized database with a freshly recreated schema."""
    db = Database(settings)
    await db.init()
    async with db.engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await db.create_schema()
    yield db
    await db.close()


@pytest.fixture
def repository(database):
    return PostgresRepository(database)


@pytest.fixture
def embeddings():
    provider = MagicMock(spec=EmbeddingProvider)
    provider.is_configured = True
    provider.generate = AsyncMock(side_effect=lambda text: UNIT_VECTOR)
    provider.close = AsyncMock()
    return provider


@pytest_asyncio.fixture
async def tasks():
    background = BackgroundTasks()
    yield background
    await background.drain(timeout=5)
