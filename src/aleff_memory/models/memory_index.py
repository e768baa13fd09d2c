from uuid import UUID, uuid4

from pgvector.sqlalchemy import Vector
from sqlalchemy import TEXT, Column
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Field

from .base import EMBEDDING_DIMENSIONS, BaseModel


class MemoryIndexEntry(BaseModel, table=True):
    """Explicitly saved memory (decision, fact, preference...)."""

    __tablename__ = "memory_index"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    key_type: str = Field(
        index=True,
        description="Memory category or auto-capture category",
    )
    key_name: str = Field(index=True, description="Short identifier for retrieval")
    summary: str = Field(sa_column=Column(TEXT, nullable=False))
    importance: int = Field(default=5, description="1-10")
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column(ARRAY(TEXT), nullable=False, server_default="{}"),
    )
    channel: str | None = Field(default=None, index=True)
    embedding: list[float] | None = Field(
        default=None, sa_column=Column(Vector(EMBEDDING_DIMENSIONS))
    )
