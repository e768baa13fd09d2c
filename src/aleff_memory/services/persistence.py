"""Message persistence.

The message row is written without waiting for its embedding: generation
starts before the insert and a tracked background task attaches the
vector once it arrives. Readers see the message immediately; the
embedding may arrive later or never (provider down, process exit).
"""

import asyncio
from typing import Any
from uuid import UUID

from ..background import BackgroundTasks
from ..embeddings import EmbeddingProvider
from ..enums import EmbeddingTarget, MessageRole
from ..errors import AleffMemoryError
from ..logging import LogEventType, get_logger
from ..models import AuditLogEntry, MemoryIndexEntry, Message
from ..repository import MemoryRepository
from ..schemas import PersistResult
from .conversations import ConversationStore

logger = get_logger(__name__)

AUDIT_MESSAGE_SAVED = "message_saved"


class MessagePersistence:
    def __init__(
        self,
        repository: MemoryRepository,
        conversations: ConversationStore,
        embeddings: EmbeddingProvider,
        tasks: BackgroundTasks,
        enabled: bool = True,
        default_agent_id: str = "aleff",
    ):
        self._repository = repository
        self._conversations = conversations
        self._embeddings = embeddings
        self._tasks = tasks
        self._enabled = enabled
        self._default_agent_id = default_agent_id

    async def persist(
        self,
        user_id: str,
        channel: str,
        role: MessageRole | str,
        content: str,
        agent_id: str | None = None,
        metadata: dict[str, Any] | None = None,
        user_name: str | None = None,
    ) -> PersistResult:
        if not self._enabled:
            logger.warning("PostgreSQL not configured, message not persisted")
            return PersistResult(success=False)

        try:
            role = MessageRole(role)
        except ValueError:
            logger.error("Invalid message role", user_id=user_id, role=str(role))
            return PersistResult(success=False)

        agent_id = agent_id or self._default_agent_id
        conversation_id = await self._conversations.get_or_create(
            user_id=user_id, channel=channel, agent_id=agent_id, user_name=user_name
        )

        generation = self._tasks.spawn(
            self._embeddings.generate(content), name="generate-message-embedding"
        )
        message = Message(
            conversation_id=conversation_id,
            role=role.value,
            content=content,
            agent_id=agent_id,
            meta_data=metadata or {},
        )
        try:
            await self._repository.insert_message(message)
        except AleffMemoryError as e:
            generation.cancel()
            logger.error(
                "Failed to persist message",
                event_type=LogEventType.ERROR,
                user_id=user_id,
                role=role.value,
                error=str(e),
            )
            return PersistResult(success=False, conversation_id=conversation_id)

        embedding_task = self._tasks.spawn(
            self._attach_embedding(message.id, generation),
            name=f"attach-embedding-{message.id}",
        )

        await self._write_audit(
            AuditLogEntry(
                action_type=AUDIT_MESSAGE_SAVED,
                action_detail=f"{role.value} message persisted",
                user_id=user_id,
                conversation_id=conversation_id,
                success=True,
                meta_data={
                    "channel": channel,
                    "agent_id": agent_id,
                    "content_length": len(content),
                },
            )
        )

        logger.info(
            "Message persisted",
            event_type=LogEventType.MESSAGE_SAVE,
            user_id=user_id,
            role=role.value,
            conversation_id=str(conversation_id) if conversation_id else None,
            message_id=str(message.id),
        )
        return PersistResult(
            success=True,
            conversation_id=conversation_id,
            message_id=message.id,
            embedding_task=embedding_task,
        )

    async def _attach_embedding(
        self, message_id: UUID, generation: asyncio.Task
    ) -> bool:
        embedding = await generation
        if embedding is None:
            logger.debug("No embedding for message", message_id=str(message_id))
            return False
        try:
            await self._repository.update_embedding(
                EmbeddingTarget.MESSAGES, message_id, embedding
            )
        except AleffMemoryError as e:
            logger.error(
                "Failed to save message embedding",
                message_id=str(message_id),
                error=str(e),
            )
            return False
        logger.info(
            "Embedding saved for message",
            event_type=LogEventType.EMBEDDING,
            message_id=str(message_id),
            dimensions=len(embedding),
        )
        return True

    async def _write_audit(self, entry: AuditLogEntry) -> None:
        # The message is already visible; an audit failure does not undo that
        try:
            await self._repository.insert_audit_entry(entry)
        except AleffMemoryError as e:
            logger.error(
                "Failed to write audit log",
                action_type=entry.action_type,
                user_id=entry.user_id,
                error=str(e),
            )

    async def save_to_memory_index(
        self,
        content: str,
        key_type: str,
        key_name: str,
        importance: int = 5,
        tags: list[str] | None = None,
        channel: str | None = None,
        embedding_text: str | None = None,
    ) -> bool:
        """Save an explicit memory, with an embedding when one can be produced.

        The embedding is computed from ``embedding_text`` when given, so a
        shortened summary can still be indexed on the full text.
        """
        if not self._enabled:
            logger.warning("PostgreSQL not configured, memory not saved")
            return False

        embedding = await self._embeddings.generate(embedding_text or content)
        entry = MemoryIndexEntry(
            key_type=key_type,
            key_name=key_name,
            summary=content,
            importance=importance,
            tags=list(tags or []),
            channel=channel,
            embedding=embedding,
        )
        try:
            await self._repository.insert_memory_index_entry(entry)
        except AleffMemoryError as e:
            logger.error(
                "Failed to save memory index entry",
                key_type=key_type,
                key_name=key_name,
                error=str(e),
            )
            return False

        if embedding is None:
            logger.warning(
                "Memory saved without embedding",
                event_type=LogEventType.MEMORY_SAVE,
                key_type=key_type,
                key_name=key_name,
            )
        else:
            logger.info(
                "Memory saved",
                event_type=LogEventType.MEMORY_SAVE,
                key_type=key_type,
                key_name=key_name,
                importance=importance,
                dimensions=len(embedding),
            )
        return True
