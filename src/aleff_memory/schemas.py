"""Result types returned by the memory services."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# Search results
class MessageHit(BaseSchema):
    id: UUID
    conversation_id: UUID | None = None
    role: str
    content: str
    created_at: datetime
    similarity: float = Field(
        default=0.0, description="1 - cosine distance; 0.0 for full-text fallback hits"
    )


class EntityHit(BaseSchema):
    id: UUID
    name: str
    entity_type: str
    description: str | None = None
    similarity: float


class FactHit(BaseSchema):
    id: UUID
    entity_id: UUID
    entity_name: str
    fact_type: str
    content: str
    confidence: float
    similarity: float


class MemoryIndexHit(BaseSchema):
    id: UUID
    key_type: str
    key_name: str
    summary: str
    importance: int
    tags: list[str] = Field(default_factory=list)
    similarity: float


class RecalledMemory(BaseSchema):
    source: str
    category: str
    content: str
    similarity: float


class RecallResult(BaseSchema):
    memories: list[RecalledMemory] = Field(default_factory=list)
    formatted: str | None = None


# Knowledge graph
class RelationshipEdge(BaseSchema):
    entity: str = Field(description="Name of the entity on the other end")
    relationship_type: str
    strength: float


class EntityRelationships(BaseSchema):
    entity: str
    outgoing: list[RelationshipEdge] = Field(default_factory=list)
    incoming: list[RelationshipEdge] = Field(default_factory=list)


class ConnectionPath(BaseSchema):
    found: bool
    entities: list[str] = Field(default_factory=list)
    relationships: list[str] = Field(default_factory=list)
    length: int = 0


class ExtractedRelationship(BaseSchema):
    target: str
    relationship_type: str


# Persistence
@dataclass
class PersistResult:
    success: bool
    conversation_id: UUID | None = None
    message_id: UUID | None = None
    # Resolves once the embedding update has finished (or was skipped)
    embedding_task: asyncio.Task | None = None

    def __bool__(self) -> bool:
        return self.success


# Backfill reports
class EmbeddingCounts(BaseSchema):
    total: int = 0
    with_embedding: int = 0

    @property
    def missing(self) -> int:
        return self.total - self.with_embedding


class EmbeddingBackfillSummary(BaseSchema):
    kind: str
    before: EmbeddingCounts
    after: EmbeddingCounts | None = None
    candidates: int = 0
    updated: int = 0
    errors: int = 0


class RelationshipBackfillSummary(BaseSchema):
    facts_processed: int = 0
    relationships_created: int = 0
    relationships_skipped: int = 0
    entities_created: int = 0
    errors: int = 0
