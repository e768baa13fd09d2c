"""Auto-recall: relevant memories for an incoming prompt.

The prompt is embedded once and matched against the memory index, open
facts and past messages concurrently. Results are merged by similarity,
de-duplicated on their first characters and rendered as a
``<relevant-memories>`` block the host prepends to the agent context.
"""

import asyncio

from ..embeddings import EmbeddingProvider
from ..logging import LogEventType, get_logger
from ..schemas import RecalledMemory, RecallResult
from .search import SearchService

logger = get_logger(__name__)

RECALL_THRESHOLD = 0.3
MAX_MEMORIES = 5
MIN_PROMPT_LENGTH = 10
MESSAGE_PREVIEW_CHARS = 300
DEDUP_PREFIX_CHARS = 50


def format_memories(memories: list[RecalledMemory]) -> str:
    if not memories:
        return ""
    lines = [f"  {i}. [{m.category}] {m.content}" for i, m in enumerate(memories, 1)]
    return "<relevant-memories>\n" + "\n".join(lines) + "\n</relevant-memories>"


class MemoryRecall:
    def __init__(
        self,
        search: SearchService,
        embeddings: EmbeddingProvider,
        threshold: float = RECALL_THRESHOLD,
        max_memories: int = MAX_MEMORIES,
        min_prompt_length: int = MIN_PROMPT_LENGTH,
    ):
        self._search = search
        self._embeddings = embeddings
        self.threshold = threshold
        self.max_memories = max_memories
        self.min_prompt_length = min_prompt_length

    async def recall_for_prompt(self, prompt: str) -> RecallResult:
        if len(prompt) < self.min_prompt_length:
            return RecallResult()

        embedding = await self._embeddings.generate(prompt)
        if embedding is None:
            logger.warning(
                "No embedding for recall prompt",
                event_type=LogEventType.MEMORY_RECALL,
                prompt_length=len(prompt),
            )
            return RecallResult()

        index_hits, fact_hits, message_hits = await asyncio.gather(
            self._search.search_memory_index(
                prompt, self.max_memories, self.threshold, embedding=embedding
            ),
            self._search.search_facts(
                prompt, self.max_memories, self.threshold, embedding=embedding
            ),
            self._search.search_messages_by_embedding(
                embedding, self.max_memories, self.threshold
            ),
        )

        candidates = [
            RecalledMemory(
                source="auto" if "auto_capture" in hit.tags else "explicit",
                category=hit.key_type,
                content=hit.summary,
                similarity=hit.similarity,
            )
            for hit in index_hits
        ]
        candidates += [
            RecalledMemory(
                source="knowledge_graph",
                category=f"fact:{hit.fact_type}",
                content=f"{hit.entity_name}: {hit.content}",
                similarity=hit.similarity,
            )
            for hit in fact_hits
        ]
        candidates += [
            RecalledMemory(
                source="conversation",
                category=f"message:{hit.role}",
                content=hit.content[:MESSAGE_PREVIEW_CHARS],
                similarity=hit.similarity,
            )
            for hit in message_hits
        ]
        candidates.sort(key=lambda m: m.similarity, reverse=True)

        seen = set()
        memories = []
        for memory in candidates:
            key = memory.content[:DEDUP_PREFIX_CHARS].lower()
            if key in seen:
                continue
            seen.add(key)
            memories.append(memory)
            if len(memories) >= self.max_memories:
                break

        if not memories:
            return RecallResult()

        logger.info(
            "Auto-recall completed",
            event_type=LogEventType.MEMORY_RECALL,
            prompt_length=len(prompt),
            memories_found=len(memories),
            top_similarity=memories[0].similarity,
        )
        return RecallResult(memories=memories, formatted=format_memories(memories))
