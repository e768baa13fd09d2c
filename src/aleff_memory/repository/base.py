from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from ..enums import EmbeddingTarget
from ..models import (
    AuditLogEntry,
    Conversation,
    Entity,
    EntityRelationship,
    Fact,
    MemoryIndexEntry,
    Message,
)
from ..schemas import EmbeddingCounts


class MemoryRepository(ABC):
    """Storage primitives used by the memory services.

    Implementations raise ``StoreError`` for any failure of the underlying
    store; they never return partial results on error.
    """

    # Conversations
    @abstractmethod
    async def find_or_create_conversation(
        self,
        user_id: str,
        channel: str,
        agent_id: str,
        user_name: str | None,
        active_since: datetime,
        now: datetime,
    ) -> UUID:
        """Atomically reuse the latest conversation active after ``active_since``
        (bumping last_message_at and message_count) or insert a new one."""
        ...

    @abstractmethod
    async def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        ...

    @abstractmethod
    async def get_latest_conversation(
        self, user_id: str, channel: str
    ) -> Conversation | None:
        ...

    @abstractmethod
    async def get_conversation_messages(
        self, conversation_id: UUID, limit: int
    ) -> list[Message]:
        """Latest ``limit`` messages of a conversation, oldest first."""
        ...

    # Messages
    @abstractmethod
    async def insert_message(self, message: Message) -> Message:
        ...

    @abstractmethod
    async def search_messages(
        self, query: str, limit: int, user_id: str | None = None
    ) -> list[Message]:
        """Portuguese full-text search, most recent first."""
        ...

    @abstractmethod
    async def vector_search_messages(
        self,
        embedding: list[float],
        limit: int,
        threshold: float,
        user_id: str | None = None,
    ) -> list[tuple[Message, float]]:
        """(message, similarity) with similarity > threshold, nearest first."""
        ...

    # Audit
    @abstractmethod
    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        ...

    # Memory index
    @abstractmethod
    async def insert_memory_index_entry(
        self, entry: MemoryIndexEntry
    ) -> MemoryIndexEntry:
        ...

    @abstractmethod
    async def vector_search_memory_index(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[MemoryIndexEntry, float]]:
        ...

    # Entities
    @abstractmethod
    async def get_entity_by_name(self, name: str) -> Entity | None:
        ...

    @abstractmethod
    async def get_entities_by_ids(self, entity_ids: set[UUID]) -> dict[UUID, Entity]:
        ...

    @abstractmethod
    async def upsert_entity(
        self,
        entity_type: str,
        name: str,
        description: str | None = None,
        embedding: list[float] | None = None,
        metadata: dict | None = None,
    ) -> Entity:
        """Insert by name; on conflict only overwrite the values that are given."""
        ...

    @abstractmethod
    async def vector_search_entities(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Entity, float]]:
        ...

    # Relationships
    @abstractmethod
    async def upsert_relationship(
        self,
        from_entity_id: UUID,
        to_entity_id: UUID,
        relationship_type: str,
        strength: float,
        metadata: dict | None = None,
    ) -> EntityRelationship:
        ...

    @abstractmethod
    async def get_outgoing_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        ...

    @abstractmethod
    async def get_incoming_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        ...

    @abstractmethod
    async def get_relationships_touching(
        self, entity_ids: set[UUID]
    ) -> list[EntityRelationship]:
        """Edges with either end in ``entity_ids``, in a single query."""
        ...

    @abstractmethod
    async def count_relationships(self) -> int:
        ...

    # Facts
    @abstractmethod
    async def insert_fact(self, fact: Fact, supersede: bool = False) -> Fact:
        """Insert a fact; with ``supersede`` first close the open facts of the
        same entity and type (valid_to = fact.valid_from) in the same transaction."""
        ...

    @abstractmethod
    async def get_open_facts(
        self,
        entity_id: UUID,
        fact_type: str | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[Fact]:
        """Open facts ordered by confidence desc, created_at desc."""
        ...

    @abstractmethod
    async def get_open_facts_with_entities(self) -> list[tuple[Fact, Entity]]:
        """All open facts joined with their entity, oldest first."""
        ...

    @abstractmethod
    async def vector_search_facts(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Fact, Entity, float]]:
        """Open facts only."""
        ...

    # Embedding maintenance
    @abstractmethod
    async def count_embeddings(self, target: EmbeddingTarget) -> EmbeddingCounts:
        ...

    @abstractmethod
    async def get_rows_missing_embedding(
        self, target: EmbeddingTarget, limit: int | None = None
    ) -> list[tuple[UUID, str]]:
        """(id, text to embed) for rows whose embedding is NULL, oldest first."""
        ...

    @abstractmethod
    async def update_embedding(
        self, target: EmbeddingTarget, row_id: UUID, embedding: list[float]
    ) -> None:
        ...
