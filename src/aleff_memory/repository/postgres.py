"""PostgreSQL + pgvector implementation of the memory repository"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import func, literal_column, or_, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..database import Database
from ..enums import EmbeddingTarget
from ..errors import StoreError
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

# Literal so the expression matches the GIN index on messages.content
FTS_CONFIG = literal_column("'portuguese'::regconfig")

EMBEDDING_SOURCES = {
    EmbeddingTarget.ENTITIES: (Entity, Entity.name),
    EmbeddingTarget.FACTS: (Fact, Fact.content),
    EmbeddingTarget.MESSAGES: (Message, Message.content),
    EmbeddingTarget.MEMORY_INDEX: (MemoryIndexEntry, MemoryIndexEntry.summary),
}


def _similarity(model, embedding: list[float]):
    distance = model.embedding.cosine_distance(embedding)
    return distance, (1 - distance)


class PostgresRepository(MemoryRepository):
    def __init__(self, database: Database):
        self._db = database

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._db.session() as session:
                yield session
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise StoreError(str(e), operation=operation) from e

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
        async with self._session("find_or_create_conversation") as session:
            # Serializes concurrent writers of the same key until commit
            await session.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"conversation:{user_id}:{channel}:{agent_id}"},
            )
            statement = (
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .where(Conversation.channel == channel)
                .where(Conversation.agent_id == agent_id)
                .where(Conversation.last_message_at > active_since)
                .order_by(Conversation.last_message_at.desc())
                .limit(1)
            )
            result = await session.exec(statement)
            conversation = result.first()

            if conversation:
                await session.execute(
                    update(Conversation)
                    .where(Conversation.id == conversation.id)
                    .values(
                        last_message_at=now,
                        message_count=Conversation.message_count + 1,
                    )
                )
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
            session.add(conversation)
            await session.flush()
            return conversation.id

    async def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        async with self._session("get_conversation") as session:
            return await session.get(Conversation, conversation_id)

    async def get_latest_conversation(
        self, user_id: str, channel: str
    ) -> Conversation | None:
        async with self._session("get_latest_conversation") as session:
            statement = (
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .where(Conversation.channel == channel)
                .order_by(Conversation.last_message_at.desc())
                .limit(1)
            )
            result = await session.exec(statement)
            return result.first()

    async def get_conversation_messages(
        self, conversation_id: UUID, limit: int
    ) -> list[Message]:
        async with self._session("get_conversation_messages") as session:
            statement = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.desc())
                .limit(limit)
            )
            result = await session.exec(statement)
            return list(reversed(result.all()))

    # Messages
    async def insert_message(self, message: Message) -> Message:
        async with self._session("insert_message") as session:
            session.add(message)
            await session.flush()
            return message

    async def search_messages(
        self, query: str, limit: int, user_id: str | None = None
    ) -> list[Message]:
        async with self._session("search_messages") as session:
            statement = select(Message).where(
                func.to_tsvector(FTS_CONFIG, Message.content).op("@@")(
                    func.plainto_tsquery(FTS_CONFIG, query)
                )
            )
            if user_id:
                statement = statement.join(
                    Conversation, Conversation.id == Message.conversation_id
                ).where(Conversation.user_id == user_id)
            statement = statement.order_by(Message.created_at.desc()).limit(limit)
            result = await session.exec(statement)
            return list(result.all())

    async def vector_search_messages(
        self,
        embedding: list[float],
        limit: int,
        threshold: float,
        user_id: str | None = None,
    ) -> list[tuple[Message, float]]:
        distance, similarity = _similarity(Message, embedding)
        async with self._session("vector_search_messages") as session:
            statement = (
                select(Message, similarity.label("similarity"))
                .where(Message.embedding.isnot(None))
                .where(similarity > threshold)
            )
            if user_id:
                statement = statement.join(
                    Conversation, Conversation.id == Message.conversation_id
                ).where(Conversation.user_id == user_id)
            statement = statement.order_by(distance).limit(limit)
            result = await session.exec(statement)
            return [(message, float(score)) for message, score in result.all()]

    # Audit
    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        async with self._session("insert_audit_entry") as session:
            session.add(entry)

    # Memory index
    async def insert_memory_index_entry(
        self, entry: MemoryIndexEntry
    ) -> MemoryIndexEntry:
        async with self._session("insert_memory_index_entry") as session:
            session.add(entry)
            await session.flush()
            return entry

    async def vector_search_memory_index(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[MemoryIndexEntry, float]]:
        distance, similarity = _similarity(MemoryIndexEntry, embedding)
        async with self._session("vector_search_memory_index") as session:
            statement = (
                select(MemoryIndexEntry, similarity.label("similarity"))
                .where(MemoryIndexEntry.embedding.isnot(None))
                .where(similarity > threshold)
                .order_by(distance)
                .limit(limit)
            )
            result = await session.exec(statement)
            return [(entry, float(score)) for entry, score in result.all()]

    # Entities
    async def get_entity_by_name(self, name: str) -> Entity | None:
        async with self._session("get_entity_by_name") as session:
            result = await session.exec(select(Entity).where(Entity.name == name))
            return result.first()

    async def get_entities_by_ids(self, entity_ids: set[UUID]) -> dict[UUID, Entity]:
        if not entity_ids:
            return {}
        async with self._session("get_entities_by_ids") as session:
            result = await session.exec(
                select(Entity).where(Entity.id.in_(list(entity_ids)))
            )
            return {entity.id: entity for entity in result.all()}

    async def upsert_entity(
        self,
        entity_type: str,
        name: str,
        description: str | None = None,
        embedding: list[float] | None = None,
        metadata: dict | None = None,
    ) -> Entity:
        table = Entity.__table__
        now = get_utc_now()
        statement = pg_insert(table).values(
            id=uuid4(),
            entity_type=entity_type,
            name=name,
            description=description,
            embedding=embedding,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        excluded = statement.excluded
        statement = statement.on_conflict_do_update(
            index_elements=[table.c.name],
            set_={
                "description": func.coalesce(excluded.description, table.c.description),
                "embedding": func.coalesce(excluded.embedding, table.c.embedding),
                "metadata": func.coalesce(excluded.metadata, table.c.metadata),
                "updated_at": now,
            },
        ).returning(table.c.id)

        async with self._session("upsert_entity") as session:
            entity_id = (await session.execute(statement)).scalar_one()
            result = await session.exec(
                select(Entity)
                .where(Entity.id == entity_id)
                .execution_options(populate_existing=True)
            )
            return result.one()

    async def vector_search_entities(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Entity, float]]:
        distance, similarity = _similarity(Entity, embedding)
        async with self._session("vector_search_entities") as session:
            statement = (
                select(Entity, similarity.label("similarity"))
                .where(Entity.embedding.isnot(None))
                .where(similarity > threshold)
                .order_by(distance)
                .limit(limit)
            )
            result = await session.exec(statement)
            return [(entity, float(score)) for entity, score in result.all()]

    # Relationships
    async def upsert_relationship(
        self,
        from_entity_id: UUID,
        to_entity_id: UUID,
        relationship_type: str,
        strength: float,
        metadata: dict | None = None,
    ) -> EntityRelationship:
        table = EntityRelationship.__table__
        now = get_utc_now()
        statement = pg_insert(table).values(
            id=uuid4(),
            from_entity_id=from_entity_id,
            to_entity_id=to_entity_id,
            relationship_type=relationship_type,
            strength=strength,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )
        excluded = statement.excluded
        statement = statement.on_conflict_do_update(
            index_elements=[
                table.c.from_entity_id,
                table.c.to_entity_id,
                table.c.relationship_type,
            ],
            set_={
                "strength": excluded.strength,
                "metadata": func.coalesce(excluded.metadata, table.c.metadata),
                "updated_at": now,
            },
        ).returning(table.c.id)

        async with self._session("upsert_relationship") as session:
            relationship_id = (await session.execute(statement)).scalar_one()
            result = await session.exec(
                select(EntityRelationship)
                .where(EntityRelationship.id == relationship_id)
                .execution_options(populate_existing=True)
            )
            return result.one()

    async def get_outgoing_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        async with self._session("get_outgoing_relationships") as session:
            result = await session.exec(
                select(EntityRelationship)
                .where(EntityRelationship.from_entity_id == entity_id)
                .order_by(EntityRelationship.strength.desc())
            )
            return list(result.all())

    async def get_incoming_relationships(
        self, entity_id: UUID
    ) -> list[EntityRelationship]:
        async with self._session("get_incoming_relationships") as session:
            result = await session.exec(
                select(EntityRelationship)
                .where(EntityRelationship.to_entity_id == entity_id)
                .order_by(EntityRelationship.strength.desc())
            )
            return list(result.all())

    async def get_relationships_touching(
        self, entity_ids: set[UUID]
    ) -> list[EntityRelationship]:
        if not entity_ids:
            return []
        ids = list(entity_ids)
        async with self._session("get_relationships_touching") as session:
            result = await session.exec(
                select(EntityRelationship)
                .where(
                    or_(
                        EntityRelationship.from_entity_id.in_(ids),
                        EntityRelationship.to_entity_id.in_(ids),
                    )
                )
                .order_by(EntityRelationship.created_at)
            )
            return list(result.all())

    async def count_relationships(self) -> int:
        async with self._session("count_relationships") as session:
            result = await session.exec(
                select(func.count()).select_from(EntityRelationship)
            )
            return int(result.one())

    # Facts
    async def insert_fact(self, fact: Fact, supersede: bool = False) -> Fact:
        async with self._session("insert_fact") as session:
            if supersede:
                await session.execute(
                    update(Fact)
                    .where(Fact.entity_id == fact.entity_id)
                    .where(Fact.fact_type == fact.fact_type)
                    .where(Fact.valid_to.is_(None))
                    .values(valid_to=fact.valid_from)
                )
            session.add(fact)
            await session.flush()
            return fact

    async def get_open_facts(
        self,
        entity_id: UUID,
        fact_type: str | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[Fact]:
        statement = (
            select(Fact)
            .where(Fact.entity_id == entity_id)
            .where(Fact.valid_to.is_(None))
        )
        if fact_type:
            statement = statement.where(Fact.fact_type == fact_type)
        if min_confidence is not None:
            statement = statement.where(Fact.confidence >= min_confidence)
        statement = statement.order_by(Fact.confidence.desc(), Fact.created_at.desc())
        if limit:
            statement = statement.limit(limit)
        async with self._session("get_open_facts") as session:
            result = await session.exec(statement)
            return list(result.all())

    async def get_open_facts_with_entities(self) -> list[tuple[Fact, Entity]]:
        async with self._session("get_open_facts_with_entities") as session:
            result = await session.exec(
                select(Fact, Entity)
                .join(Entity, Entity.id == Fact.entity_id)
                .where(Fact.valid_to.is_(None))
                .order_by(Fact.created_at)
            )
            return [(fact, entity) for fact, entity in result.all()]

    async def vector_search_facts(
        self, embedding: list[float], limit: int, threshold: float
    ) -> list[tuple[Fact, Entity, float]]:
        distance, similarity = _similarity(Fact, embedding)
        async with self._session("vector_search_facts") as session:
            statement = (
                select(Fact, Entity, similarity.label("similarity"))
                .join(Entity, Entity.id == Fact.entity_id)
                .where(Fact.valid_to.is_(None))
                .where(Fact.embedding.isnot(None))
                .where(similarity > threshold)
                .order_by(distance)
                .limit(limit)
            )
            result = await session.exec(statement)
            return [(fact, entity, float(sim)) for fact, entity, sim in result.all()]

    # Embedding maintenance
    async def count_embeddings(self, target: EmbeddingTarget) -> EmbeddingCounts:
        model, _ = EMBEDDING_SOURCES[target]
        async with self._session("count_embeddings") as session:
            result = await session.exec(
                select(func.count(), func.count(model.embedding)).select_from(model)
            )
            total, with_embedding = result.one()
            return EmbeddingCounts(total=total, with_embedding=with_embedding)

    async def get_rows_missing_embedding(
        self, target: EmbeddingTarget, limit: int | None = None
    ) -> list[tuple[UUID, str]]:
        model, source = EMBEDDING_SOURCES[target]
        statement = (
            select(model.id, source)
            .where(model.embedding.is_(None))
            .order_by(model.created_at)
        )
        if limit:
            statement = statement.limit(limit)
        async with self._session("get_rows_missing_embedding") as session:
            result = await session.exec(statement)
            return [(row_id, value) for row_id, value in result.all()]

    async def update_embedding(
        self, target: EmbeddingTarget, row_id: UUID, embedding: list[float]
    ) -> None:
        model, _ = EMBEDDING_SOURCES[target]
        async with self._session("update_embedding") as session:
            await session.execute(
                update(model).where(model.id == row_id).values(embedding=embedding)
            )
