"""Knowledge graph of entities, relationships and time-bound facts.

Every operation logs and swallows store failures, returning ``None`` or an
empty result, so callers on the chat path never see an exception.
"""

from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from ..enums import EntityType, FactType, RelationshipType
from ..errors import AleffMemoryError
from ..logging import LogEventType, get_logger
from ..models import Entity, EntityRelationship, Fact, get_utc_now
from ..repository import MemoryRepository
from ..schemas import (
    ConnectionPath,
    EntityRelationships,
    ExtractedRelationship,
    RelationshipEdge,
)
from .extraction import EntityClassifier, extract_relationships, infer_entity_type

logger = get_logger(__name__)

DEFAULT_MAX_DEPTH = 3


class KnowledgeGraph:
    def __init__(
        self,
        repository: MemoryRepository,
        classifier: EntityClassifier = infer_entity_type,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self._repository = repository
        self._classify = classifier
        self._clock = clock

    # Entities
    async def find_entity(self, name: str) -> Entity | None:
        try:
            return await self._repository.get_entity_by_name(name)
        except AleffMemoryError as e:
            logger.error("Failed to find entity", name=name, error=str(e))
            return None

    async def upsert_entity(
        self,
        entity_type: EntityType | str,
        name: str,
        description: str | None = None,
        embedding: list[float] | None = None,
        metadata: dict | None = None,
    ) -> Entity | None:
        try:
            entity_type = EntityType(entity_type)
        except ValueError:
            logger.warning("Unknown entity type", name=name, entity_type=entity_type)
            return None

        try:
            entity = await self._repository.upsert_entity(
                entity_type=entity_type.value,
                name=name,
                description=description,
                embedding=embedding,
                metadata=metadata,
            )
        except AleffMemoryError as e:
            logger.error(
                "Failed to upsert entity",
                name=name,
                entity_type=entity_type.value,
                error=str(e),
            )
            return None

        logger.info(
            "Entity upserted",
            event_type=LogEventType.GRAPH_WRITE,
            name=name,
            entity_type=entity.entity_type,
        )
        return entity

    # Relationships
    async def create_relationship(
        self,
        from_name: str,
        to_name: str,
        relationship_type: RelationshipType | str,
        strength: float = 1.0,
        metadata: dict | None = None,
    ) -> EntityRelationship | None:
        """Upsert the edge (from, to, type); both entities must already exist."""
        try:
            relationship_type = RelationshipType(relationship_type)
        except ValueError:
            logger.warning(
                "Unknown relationship type", relationship_type=relationship_type
            )
            return None

        from_entity = await self.find_entity(from_name)
        to_entity = await self.find_entity(to_name)
        if from_entity is None or to_entity is None:
            logger.warning(
                "Cannot create relationship: entity not found",
                from_name=from_name,
                to_name=to_name,
            )
            return None

        try:
            relationship = await self._repository.upsert_relationship(
                from_entity_id=from_entity.id,
                to_entity_id=to_entity.id,
                relationship_type=relationship_type.value,
                strength=strength,
                metadata=metadata,
            )
        except AleffMemoryError as e:
            logger.error(
                "Failed to create relationship",
                from_name=from_name,
                to_name=to_name,
                relationship_type=relationship_type.value,
                error=str(e),
            )
            return None

        logger.info(
            "Relationship upserted",
            event_type=LogEventType.GRAPH_WRITE,
            from_name=from_name,
            to_name=to_name,
            relationship_type=relationship_type.value,
            strength=strength,
        )
        return relationship

    async def get_entity_relationships(self, name: str) -> EntityRelationships | None:
        entity = await self.find_entity(name)
        if entity is None:
            return None

        try:
            outgoing = await self._repository.get_outgoing_relationships(entity.id)
            incoming = await self._repository.get_incoming_relationships(entity.id)
            other_ids = {r.to_entity_id for r in outgoing}
            other_ids |= {r.from_entity_id for r in incoming}
            others = await self._repository.get_entities_by_ids(other_ids)
        except AleffMemoryError as e:
            logger.error("Failed to get relationships", name=name, error=str(e))
            return EntityRelationships(entity=entity.name)

        def edge(other_id: UUID, relationship: EntityRelationship) -> RelationshipEdge:
            return RelationshipEdge(
                entity=others[other_id].name,
                relationship_type=relationship.relationship_type,
                strength=relationship.strength,
            )

        return EntityRelationships(
            entity=entity.name,
            outgoing=[
                edge(r.to_entity_id, r) for r in outgoing if r.to_entity_id in others
            ],
            incoming=[
                edge(r.from_entity_id, r)
                for r in incoming
                if r.from_entity_id in others
            ],
        )

    # Facts
    async def add_fact(
        self,
        entity_name: str,
        fact_type: FactType | str,
        content: str,
        confidence: float = 0.9,
        embedding: list[float] | None = None,
        source_message_id: UUID | None = None,
        metadata: dict | None = None,
        supersede: bool = False,
    ) -> Fact | None:
        """Record a fact, creating the entity with the classifier's type if needed.

        Facts are append-only unless ``supersede`` is set, in which case the
        entity's open facts of the same type are closed at the new fact's
        valid_from.
        """
        try:
            fact_type = FactType(fact_type)
        except ValueError:
            logger.warning("Unknown fact type", entity=entity_name, fact_type=fact_type)
            return None

        entity = await self.find_entity(entity_name)
        if entity is None:
            entity = await self.upsert_entity(self._classify(entity_name), entity_name)
            if entity is None:
                return None

        fact = Fact(
            entity_id=entity.id,
            fact_type=fact_type.value,
            content=content,
            confidence=confidence,
            embedding=embedding,
            source_message_id=source_message_id,
            valid_from=self._clock(),
            valid_to=None,
            meta_data=metadata,
        )
        try:
            fact = await self._repository.insert_fact(fact, supersede=supersede)
        except AleffMemoryError as e:
            logger.error(
                "Failed to add fact",
                entity=entity_name,
                fact_type=fact_type.value,
                error=str(e),
            )
            return None

        logger.info(
            "Fact added",
            event_type=LogEventType.GRAPH_WRITE,
            entity=entity_name,
            fact_type=fact_type.value,
            supersede=supersede,
        )
        return fact

    async def get_entity_facts(
        self,
        name: str,
        fact_type: FactType | str | None = None,
        min_confidence: float | None = None,
        limit: int | None = None,
    ) -> list[Fact]:
        entity = await self.find_entity(name)
        if entity is None:
            return []
        try:
            return await self._repository.get_open_facts(
                entity.id,
                fact_type=FactType(fact_type).value if fact_type else None,
                min_confidence=min_confidence,
                limit=limit,
            )
        except (AleffMemoryError, ValueError) as e:
            logger.error("Failed to get entity facts", name=name, error=str(e))
            return []

    # Paths
    async def find_connection_path(
        self, from_name: str, to_name: str, max_depth: int = DEFAULT_MAX_DEPTH
    ) -> ConnectionPath:
        """Breadth-first search treating edges as undirected.

        One repository query per frontier level; the first path reaching the
        target is a shortest one. Ties between equal-length paths are broken
        by edge order.
        """
        source = await self.find_entity(from_name)
        target = await self.find_entity(to_name)
        if source is None or target is None:
            return ConnectionPath(found=False)
        if source.id == target.id:
            return ConnectionPath(found=True, entities=[source.name], length=0)

        # node -> (previous node, relationship type of the edge used)
        parents: dict[UUID, tuple[UUID, str] | None] = {source.id: None}
        frontier = {source.id}
        try:
            for _ in range(max_depth):
                edges = await self._repository.get_relationships_touching(frontier)
                next_frontier: set[UUID] = set()
                for edge in edges:
                    for near, far in (
                        (edge.from_entity_id, edge.to_entity_id),
                        (edge.to_entity_id, edge.from_entity_id),
                    ):
                        if near not in frontier or far in parents:
                            continue
                        parents[far] = (near, edge.relationship_type)
                        next_frontier.add(far)
                        if far == target.id:
                            return await self._build_path(parents, target.id)
                if not next_frontier:
                    break
                frontier = next_frontier
        except AleffMemoryError as e:
            logger.error(
                "Failed to find connection path",
                from_name=from_name,
                to_name=to_name,
                error=str(e),
            )
        return ConnectionPath(found=False)

    async def _build_path(
        self, parents: dict[UUID, tuple[UUID, str] | None], target_id: UUID
    ) -> ConnectionPath:
        node_ids = [target_id]
        relationship_types = []
        step = parents[target_id]
        while step is not None:
            previous, relationship_type = step
            node_ids.append(previous)
            relationship_types.append(relationship_type)
            step = parents[previous]
        node_ids.reverse()
        relationship_types.reverse()

        entities = await self._repository.get_entities_by_ids(set(node_ids))
        logger.debug(
            "Connection path found",
            event_type=LogEventType.GRAPH_QUERY,
            length=len(relationship_types),
        )
        return ConnectionPath(
            found=True,
            entities=[entities[node_id].name for node_id in node_ids],
            relationships=relationship_types,
            length=len(relationship_types),
        )

    def extract_relationships(
        self, fact_content: str, subject_name: str
    ) -> list[ExtractedRelationship]:
        return extract_relationships(fact_content, subject_name)

    def infer_entity_type(self, name: str) -> EntityType:
        return self._classify(name)
