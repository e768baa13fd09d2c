"""Dict-backed repository for tests and short-lived processes.

Follows the PostgreSQL semantics closely enough for the service layer:
upserts keep identity, vector searches use cosine similarity and the
conversation find-or-create is serialized per key with an asyncio lock.
Full-text search is a plain lower-cased token match, not Portuguese stemming.
"""

import asyncio
import math
import re
from collections import defaultdict
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
    get_utc_now,
)
from ..schemas import EmbeddingCounts
from .base import MemoryRepository

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _tokens(value: str) -> set[str]:
    return {token.lower() for token in _TOKEN_RE.findall(value)}


class InMemoryRepository(MemoryRepository):
    def __init__(self) -> None:
        self.conversations: dict[UUID, Conversation] = {}
        self.messages: dict[UUID, Message] = {}
        self.audit_log: list[AuditLogEntry] = []
        self.memory_index: dict[UUID, MemoryIndexEntry] = {}
        self.entities: dict[UUID, Entity] = {}
        self.relationships: dict[UUID, EntityRelationship] = {}
        self.facts: dict[UUID, Fact] = {}
        self._conversation_locks: defaultdict[tuple, asyncio.Lock] = defaultdict(
            asyncio.Lock
        )

    def _rows(self, target: EmbeddingTarget) -> tuple[dict, str]:
        return {
            EmbeddingTarget.ENTITIES: (self.entities, "name"),
            EmbeddingTarget.FACTS: (self.facts, "content"),
            EmbeddingTarget.MESSAGES: (self.messages, "content"),
            EmbeddingTarget.MEMORY_INDEX: (self.memory_index, "summary"),
        }[target]

    @staticmethod
    def _rank(rows, embedding: list[float], limit: int, threshold: float) -> list:
        scored = [
            (row, cosine_similarity(row.embedding, embedding))
            for row in rows
            if row.embedding is not None
        ]
        scored = [item for item in scored if item[1] > threshold]
        scored.sort(key=lambda item: item[1], reverse=True)
        return scored[:limit]

    def _message_owner(self, message: Message) -> str | None:
        conversation = self.conversations.get(message.conversation_id)
        return conversation.user_id if conversation else None

    # Conversations
    async def find_or_create_conversation(
        self,
        user_id: str,
        channel: str,
        agent_id: str,
        user_name: str | None,
        active_since: datetime,
        now: datetime,
    ) -> UUID:
        async with self._conversation_locks[(user_id, channel, agent_id)]:
            candidates = [
                c
                for c in self.conversations.values()
                if c.user_id == user_id
                and c.channel == channel
                and c.agent_id == agent_id
                and c.last_message_at > active_since
            ]
            if candidates:
                conversation = max(candidates, key=lambda c: c.last_message_at)
                conversation.last_message_at = now
                conversation.message_count += 1
                return conversation.id

            conversation = Conversation(
                user_id=user_id,
                user_name=user_name,
                channel=channel,
                agent_id=agent_id,
                started_at=now,
                last_message_at=now,
                message_count=1,
            )
            self.conversations[conversation.id] = conversation
            return conversation.id

    async def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        return self.conversations.get(conversation_id)

    async def get_latest_conversation(
        self, user_id: str, channel: str
    ) -> Conversation | None:
        candidates = [
            c
            for c in self.conversations.values()
            if c.user_id == user_id and c.channel == channel
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.last_message_at)

    async def get_conversation_messages(
        self, conversation_id: UUID, limit: int
    ) -> list[Message]:
        rows = [
            m for m in self.messages.values() if m.conversation_id == conversation_id
        ]
        rows.sort(key=lambda m: m.created_at)
        return rows[-limit:] if limit else rows

    # Messages
    async def insert_message(self, message: Message) -> Message:
        self.messages[message.id] = message
        return message

    async def search_messages(
        self, query: str, limit: int, user_id: str | None = None
    ) -> list[Message]:
        terms = _tokens(query)
        if not terms:
            return []
        rows = [
            m
            for m in self.messages.values()
            if terms <= _tokens(m.content)
            and (not user_id or self._message_owner(m) == user_id)
        ]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return rows[:limit]

    async def vector_search_messages(
        self,
        embedding: list[float],
        limit: int,
        threshold: float,
        user_id: str | None = None,
    ) -> list[tuple[Message, float]]:
        rows = [
            m
            for m in self.messages.values()
            if not user_id or self._message_owner(m) == user_id
        ]
        return self._rank(rows, embedding, limit, threshold)

    # Audit
    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        self.audit_log.append(entry)

    # Memory index
    async def insert_memory_index_entry(
        self, entry: MemoryIndexEntry
    ) -> MemoryIndexEntry:
        self.memory_index[entry.id] = entry
        return entry

    async def vector_search_memory_index(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[MemoryIndexEntry, float]]:
        return self._rank(self.memory_index.values(), embedding, limit, threshold)

    # Entities
    async def get_entity_by_name(self, name: str) -> Entity | None:
        for entity in self.entities.values():
            if entity.name == name:
                return entity
        return None

    async def get_entities_by_ids(self, entity_ids: set[UUID]) -> dict[UUID, Entity]:
        return {i: self.entities[i] for i in entity_ids if i in self.entities}

    async def upsert_entity(
        self,
        entity_type: str,
        name: str,
        description: str | None = None,
        embedding: list[float] | None = None,
        metadata: dict | None = None,
    ) -> Entity:
        entity = await self.get_entity_by_name(name)
        if entity is None:
            entity = Entity(
                entity_type=entity_type,
                name=name,
                description=description,
                embedding=embedding,
                meta_data=metadata,
            )
            self.entities[entity.id] = entity
            return entity

        if description is not None:
            entity.description = description
        if embedding is not None:
            entity.embedding = embedding
        if metadata is not None:
            entity.meta_data = metadata
        entity.updated_at = get_utc_now()
        return entity

    async def vector_search_entities(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Entity, float]]:
        return self._rank(self.entities.values(), embedding, limit, threshold)

    # Relationships
    async def upsert_relationship(
        self,
        from_entity_id: UUID,
        to_entity_id: UUID,
        relationship_type: str,
        strength: float,
        metadata: dict | None = None,
    ) -> EntityRelationship:
        for relationship in self.relationships.values():
            if (
                relationship.from_entity_id == from_entity_id
                and relationship.to_entity_id == to_entity_id
                and relationship.relationship_type == relationship_type
            ):
                relationship.strength = strength
                if metadata is not None:
                    relationship.meta_data = metadata
                relationship.updated_at = get_utc_now()
                return relationship

        relationship = EntityRelationship(
            from_entity_id=from_entity_id,
            to_entity_id=to_entity_id,
            relationship_type=relationship_type,
            strength=strength,
            meta_data=metadata,
        )
        self.relationships[relationship.id] = relationship
        return relationship

    async def get_outgoing_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        rows = [r for r in self.relationships.values() if r.from_entity_id == entity_id]
        return sorted(rows, key=lambda r: r.strength, reverse=True)

    async def get_incoming_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        rows = [r for r in self.relationships.values() if r.to_entity_id == entity_id]
        return sorted(rows, key=lambda r: r.strength, reverse=True)

    async def get_relationships_touching(
        self, entity_ids: set[UUID]
    ) -> list[EntityRelationship]:
        return [
            r
            for r in self.relationships.values()
            if r.from_entity_id in entity_ids or r.to_entity_id in entity_ids
        ]

    async def count_relationships(self) -> int:
        return len(self.relationships)

    # Facts
    async def insert_fact(self, fact: Fact, supersede: bool = False) -> Fact:
        if supersede:
            for existing in self.facts.values():
                if (
                    existing.entity_id == fact.entity_id
                    and existing.fact_type == fact.fact_type
                    and existing.valid_to is None
                ):
                    existing.valid_to = fact.valid_from
        self.facts[fact.id] = fact
        return fact

    async def get_open_facts(
        self,
        entity_id: UUID,
        fact_type: str | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[Fact]:
        rows = [
            f
            for f in self.facts.values()
            if f.entity_id == entity_id
            and f.valid_to is None
            and (not fact_type or f.fact_type == fact_type)
            and (min_confidence is None or f.confidence >= min_confidence)
        ]
        rows.sort(key=lambda f: (f.confidence, f.created_at), reverse=True)
        return rows[:limit] if limit else rows

    async def get_open_facts_with_entities(self) -> list[tuple[Fact, Entity]]:
        rows = [
            (f, self.entities[f.entity_id])
            for f in self.facts.values()
            if f.valid_to is None and f.entity_id in self.entities
        ]
        rows.sort(key=lambda item: item[0].created_at)
        return rows

    async def vector_search_facts(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Fact, Entity, float]]:
        open_facts = [
            f
            for f in self.facts.values()
            if f.valid_to is None and f.entity_id in self.entities
        ]
        return [
            (fact, self.entities[fact.entity_id], score)
            for fact, score in self._rank(open_facts, embedding, limit, threshold)
        ]

    # Embedding maintenance
    async def count_embeddings(self, target: EmbeddingTarget) -> EmbeddingCounts:
        rows, _ = self._rows(target)
        return EmbeddingCounts(
            total=len(rows),
            with_embedding=sum(1 for r in rows.values() if r.embedding is not None),
        )

    async def get_rows_missing_embedding(
        self, target: EmbeddingTarget, limit: int | None = None
    ) -> list[tuple[UUID, str]]:
        rows, source = self._rows(target)
        missing = sorted(
            (r for r in rows.values() if r.embedding is None),
            key=lambda r: r.created_at,
        )
        if limit:
            missing = missing[:limit]
        return [(r.id, getattr(r, source)) for r in missing]

    async def update_embedding(
        self, target: EmbeddingTarget, row_id: UUID, embedding: list[float]
    ) -> None:
        rows, _ = self._rows(target)
        if row_id in rows:
            rows[row_id].embedding = embedding
