from ..embeddings import EmbeddingProvider
from ..errors import AleffMemoryError
from ..logging import LogEventType, get_logger
from ..repository import MemoryRepository
from ..schemas import EntityHit, FactHit, MemoryIndexHit, MessageHit

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.7


class SearchService:
    """Full-text and vector similarity search over persisted memory.

    Similarity is ``1 - cosine distance``; only rows strictly above the
    threshold are returned, nearest first. When no query embedding can be
    produced, message search falls back to full-text with similarity 0.0.
    """

    def __init__(self, repository: MemoryRepository, embeddings: EmbeddingProvider):
        self._repository = repository
        self._embeddings = embeddings

    async def search_messages(
        self, query: str, limit: int = DEFAULT_LIMIT, user_id: str | None = None
    ) -> list[MessageHit]:
        try:
            messages = await self._repository.search_messages(query, limit, user_id)
        except AleffMemoryError as e:
            logger.error(
                "Full-text search failed", query_length=len(query), error=str(e)
            )
            return []

        logger.info(
            "Full-text search completed",
            event_type=LogEventType.MEMORY_SEARCH,
            query_length=len(query),
            results_count=len(messages),
        )
        return [MessageHit.model_validate(m) for m in messages]

    async def vector_search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        user_id: str | None = None,
    ) -> list[MessageHit]:
        embedding = await self._embeddings.generate(query)
        if embedding is None:
            logger.info(
                "No query embedding, falling back to full-text search",
                event_type=LogEventType.MEMORY_SEARCH,
            )
            hits = await self.search_messages(query, limit, user_id)
            return [hit.model_copy(update={"similarity": 0.0}) for hit in hits]

        return await self.search_messages_by_embedding(
            embedding, limit, threshold, user_id
        )

    async def search_entities(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        embedding: list[float] | None = None,
    ) -> list[EntityHit]:
        if embedding is None:
            embedding = await self._embeddings.generate(query)
        if embedding is None:
            return []
        try:
            rows = await self._repository.vector_search_entities(
                embedding, limit, threshold
            )
        except AleffMemoryError as e:
            logger.error("Entity search failed", threshold=threshold, error=str(e))
            return []
        return [
            EntityHit(
                id=entity.id,
                name=entity.name,
                entity_type=entity.entity_type,
                description=entity.description,
                similarity=similarity,
            )
            for entity, similarity in rows
        ]

    async def search_facts(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        embedding: list[float] | None = None,
    ) -> list[FactHit]:
        """Open facts only."""
        if embedding is None:
            embedding = await self._embeddings.generate(query)
        if embedding is None:
            return []
        try:
            rows = await self._repository.vector_search_facts(
                embedding, limit, threshold
            )
        except AleffMemoryError as e:
            logger.error("Fact search failed", threshold=threshold, error=str(e))
            return []
        return [
            FactHit(
                id=fact.id,
                entity_id=entity.id,
                entity_name=entity.name,
                fact_type=fact.fact_type,
                content=fact.content,
                confidence=fact.confidence,
                similarity=similarity,
            )
            for fact, entity, similarity in rows
        ]

    async def search_memory_index(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        embedding: list[float] | None = None,
    ) -> list[MemoryIndexHit]:
        if embedding is None:
            embedding = await self._embeddings.generate(query)
        if embedding is None:
            return []
        try:
            rows = await self._repository.vector_search_memory_index(
                embedding, limit, threshold
            )
        except AleffMemoryError as e:
            logger.error(
                "Memory index search failed", threshold=threshold, error=str(e)
            )
            return []
        return [
            MemoryIndexHit(
                id=entry.id,
                key_type=entry.key_type,
                key_name=entry.key_name,
                summary=entry.summary,
                importance=entry.importance,
                tags=list(entry.tags or []),
                similarity=similarity,
            )
            for entry, similarity in rows
        ]

    async def search_messages_by_embedding(
        self,
        embedding: list[float],
        limit: int = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        user_id: str | None = None,
    ) -> list[MessageHit]:
        try:
            rows = await self._repository.vector_search_messages(
                embedding, limit, threshold, user_id
            )
        except AleffMemoryError as e:
            logger.error("Vector search failed", threshold=threshold, error=str(e))
            return []

        logger.info(
            "Vector search completed",
            event_type=LogEventType.MEMORY_SEARCH,
            threshold=threshold,
            results_count=len(rows),
        )
        return [
            MessageHit(
                id=message.id,
                conversation_id=message.conversation_id,
                role=message.role,
                content=message.content,
                created_at=message.created_at,
                similarity=similarity,
            )
            for message, similarity in rows
        ]
