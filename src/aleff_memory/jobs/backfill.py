"""Backfill jobs for derived data.

EmbeddingBackfill fills in missing embeddings one row at a time with a
fixed delay between provider calls; RelationshipBackfill re-derives graph
edges from open facts. Both are safe to re-run: embedded rows are no longer
selected and relationships are upserted.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

from ..embeddings import EmbeddingProvider
from ..enums import EmbeddingTarget
from ..errors import AleffMemoryError
from ..logging import LogEventType, get_logger
from ..repository import MemoryRepository
from ..schemas import EmbeddingBackfillSummary, RelationshipBackfillSummary
from ..services.knowledge_graph import KnowledgeGraph

logger = get_logger(__name__)

DEFAULT_DELAY_MS = 200
DEFAULT_BATCH_SIZE = 10
BACKFILL_RELATIONSHIP_STRENGTH = 0.9

Sleep = Callable[[float], Awaitable[None]]


class EmbeddingBackfill:
    def __init__(
        self,
        repository: MemoryRepository,
        embeddings: EmbeddingProvider,
        delay_ms: int = DEFAULT_DELAY_MS,
        sleep: Sleep = asyncio.sleep,
    ):
        self._repository = repository
        self._embeddings = embeddings
        self._delay = delay_ms / 1000
        self._sleep = sleep

    async def run(
        self,
        kinds: Iterable[EmbeddingTarget | str] | None = None,
        limit: int | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
    ) -> dict[str, EmbeddingBackfillSummary]:
        """Backfill each kind in turn.

        Store failures while counting or listing rows are fatal and propagate;
        a failure on a single row only increments its kind's error count.
        """
        targets = [EmbeddingTarget(k) for k in (kinds or list(EmbeddingTarget))]
        logger.info(
            "Embedding backfill starting",
            event_type=LogEventType.JOB_START,
            kinds=[t.value for t in targets],
            limit=limit,
            dry_run=dry_run,
        )

        report = {}
        for target in targets:
            report[target.value] = await self._backfill(
                target, limit, max(batch_size, 1), dry_run
            )

        logger.info(
            "Embedding backfill completed",
            event_type=LogEventType.JOB_END,
            report={kind: summary.model_dump() for kind, summary in report.items()},
        )
        return report

    async def _backfill(
        self,
        target: EmbeddingTarget,
        limit: int | None,
        batch_size: int,
        dry_run: bool,
    ) -> EmbeddingBackfillSummary:
        before = await self._repository.count_embeddings(target)
        rows = await self._repository.get_rows_missing_embedding(target, limit)
        summary = EmbeddingBackfillSummary(
            kind=target.value, before=before, candidates=len(rows)
        )
        logger.info(
            "Backfill kind starting",
            kind=target.value,
            total=before.total,
            with_embedding=before.with_embedding,
            candidates=len(rows),
        )
        if dry_run:
            return summary

        for position, (row_id, text) in enumerate(rows, 1):
            try:
                embedding = await self._embeddings.generate(text)
                if embedding is None:
                    summary.errors += 1
                    logger.warning(
                        "Embedding generation failed",
                        kind=target.value,
                        row_id=str(row_id),
                        preview=text[:50],
                    )
                else:
                    await self._repository.update_embedding(target, row_id, embedding)
                    summary.updated += 1
            except AleffMemoryError as e:
                summary.errors += 1
                logger.error(
                    "Backfill row failed",
                    event_type=LogEventType.JOB_ERROR,
                    kind=target.value,
                    row_id=str(row_id),
                    error=str(e),
                )

            if position % batch_size == 0 or position == len(rows):
                logger.info(
                    "Backfill progress",
                    kind=target.value,
                    progress=f"{position}/{len(rows)}",
                    updated=summary.updated,
                    errors=summary.errors,
                )
            if position < len(rows):
                await self._sleep(self._delay)

        summary.after = await self._repository.count_embeddings(target)
        return summary


class RelationshipBackfill:
    def __init__(
        self,
        repository: MemoryRepository,
        graph: KnowledgeGraph,
        embeddings: EmbeddingProvider,
    ):
        self._repository = repository
        self._graph = graph
        self._embeddings = embeddings

    async def run(self, dry_run: bool = False) -> RelationshipBackfillSummary:
        """Extract relationships from every open fact and upsert them.

        In dry-run mode nothing is written and ``relationships_created``
        counts the edges that would be upserted.
        """
        summary = RelationshipBackfillSummary()
        facts = await self._repository.get_open_facts_with_entities()
        logger.info(
            "Relationship backfill starting",
            event_type=LogEventType.JOB_START,
            facts=len(facts),
            dry_run=dry_run,
        )

        for fact, entity in facts:
            summary.facts_processed += 1
            extracted = self._graph.extract_relationships(fact.content, entity.name)
            if not extracted:
                summary.relationships_skipped += 1
                logger.debug(
                    "No relationships detected",
                    fact_id=str(fact.id),
                    entity=entity.name,
                    preview=fact.content[:50],
                )
                continue

            for relationship in extracted:
                if dry_run:
                    summary.relationships_created += 1
                    logger.info(
                        "Would create relationship",
                        from_name=entity.name,
                        to_name=relationship.target,
                        relationship_type=relationship.relationship_type,
                    )
                    continue

                if not await self._ensure_entity(relationship.target, summary):
                    summary.errors += 1
                    continue

                created = await self._graph.create_relationship(
                    entity.name,
                    relationship.target,
                    relationship.relationship_type,
                    strength=BACKFILL_RELATIONSHIP_STRENGTH,
                )
                if created is None:
                    summary.errors += 1
                    continue
                summary.relationships_created += 1
                logger.info(
                    "Relationship created",
                    from_name=entity.name,
                    to_name=relationship.target,
                    relationship_type=relationship.relationship_type,
                    progress=f"{summary.facts_processed}/{len(facts)}",
                )

        if not dry_run:
            try:
                total = await self._repository.count_relationships()
            except AleffMemoryError:
                total = None
            logger.info(
                "Relationship backfill completed",
                event_type=LogEventType.JOB_END,
                total_relationships=total,
                **summary.model_dump(),
            )
        return summary

    async def _ensure_entity(
        self, name: str, summary: RelationshipBackfillSummary
    ) -> bool:
        if await self._graph.find_entity(name) is not None:
            return True
        embedding = await self._embeddings.generate(name)
        entity = await self._graph.upsert_entity(
            self._graph.infer_entity_type(name), name, embedding=embedding
        )
        if entity is None:
            logger.error("Failed to create entity", name=name)
            return False
        summary.entities_created += 1
        return True
