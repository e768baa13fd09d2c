"""Memory plugin: wires the services together and exposes the host hooks.

Usage:
    async with create_plugin() as plugin:
        await plugin.on_message_received(event, ctx)
        extra = await plugin.before_agent_start({"prompt": prompt})
        result = await plugin.tools.call("search_memory", {"query": "contrato"})
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

from .background import BackgroundTasks
from .config import Settings, get_settings
from .database import Database
from .embeddings import EmbeddingProvider
from .enums import MessageRole
from .logging import (
    LogEventType,
    clear_context,
    configure_logging,
    get_logger,
    set_correlation_id,
    set_user_id,
)
from .models import get_utc_now
from .repository import MemoryRepository, PostgresRepository
from .services import (
    AutoCapture,
    ConversationStore,
    KnowledgeGraph,
    MemoryRecall,
    MessagePersistence,
    SearchService,
)
from .tools import MemoryTools

logger = get_logger(__name__)

DRAIN_TIMEOUT_SECONDS = 5.0


class MemoryPlugin:
    """Composition root owning the database, repository and services.

    Pass ``repository`` (and optionally ``embeddings``) to run on another
    store, e.g. the in-memory repository in tests; otherwise a PostgreSQL
    repository is built from the settings.
    """

    def __init__(
        self,
        settings: Settings,
        repository: MemoryRepository | None = None,
        embeddings: EmbeddingProvider | None = None,
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self.settings = settings
        self.database: Database | None = None
        if repository is None:
            self.database = Database(settings)
            repository = PostgresRepository(self.database)
            self.is_enabled = settings.is_postgres_configured
        else:
            self.is_enabled = True

        self.repository = repository
        self.embeddings = embeddings or EmbeddingProvider(settings)
        self.tasks = BackgroundTasks()

        self.conversations = ConversationStore(
            repository, default_agent_id=settings.DEFAULT_AGENT_ID, clock=clock
        )
        self.persistence = MessagePersistence(
            repository,
            self.conversations,
            self.embeddings,
            self.tasks,
            enabled=self.is_enabled,
            default_agent_id=settings.DEFAULT_AGENT_ID,
        )
        self.graph = KnowledgeGraph(repository, clock=clock)
        self.search = SearchService(repository, self.embeddings)
        self.recall = MemoryRecall(self.search, self.embeddings)
        self.capture = AutoCapture(self.persistence)
        self.tools = MemoryTools(self)

    async def start(self) -> None:
        if not self.is_enabled:
            logger.warning(
                "PostgreSQL not configured. Set DATABASE_URL or POSTGRES_* env "
                "vars to enable persistence.",
                event_type=LogEventType.STARTUP,
            )
            return

        if self.database is not None:
            await self.database.init()
            if self.settings.DB_CREATE_SCHEMA:
                await self.database.create_schema()

        logger.info(
            "Memory plugin started",
            event_type=LogEventType.STARTUP,
            auto_capture=self.settings.AUTO_CAPTURE,
            auto_recall=self.settings.AUTO_RECALL,
            embeddings=self.embeddings.is_configured,
            tools=self.tools.names,
        )

    async def close(self, timeout: float = DRAIN_TIMEOUT_SECONDS) -> None:
        await self.tasks.drain(timeout=timeout)
        await self.embeddings.close()
        if self.database is not None:
            await self.database.close()
        logger.info("Memory plugin closed", event_type=LogEventType.SHUTDOWN)

    async def __aenter__(self) -> "MemoryPlugin":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Host hooks
    async def on_message_received(
        self, event: dict[str, Any], ctx: dict[str, Any] | None = None
    ) -> None:
        """Persist an inbound user message."""
        ctx = ctx or {}
        if not self.is_enabled:
            return
        set_correlation_id(uuid4().hex)
        set_user_id(event.get("from"))
        try:
            result = await self.persistence.persist(
                user_id=event["from"],
                channel=ctx.get("channelId", "unknown"),
                role=MessageRole.USER,
                content=event.get("content") or "",
                agent_id=ctx.get("accountId"),
                metadata={
                    "timestamp": event.get("timestamp"),
                    "conversationId": ctx.get("conversationId"),
                    "accountId": ctx.get("accountId"),
                    **(event.get("metadata") or {}),
                },
                user_name=event.get("senderName"),
            )
            logger.info("Inbound message persisted", success=result.success)
        except Exception as e:
            logger.warning("Failed to persist inbound message", error=str(e))
        finally:
            clear_context()

    async def on_message_sent(
        self, event: dict[str, Any], ctx: dict[str, Any] | None = None
    ) -> None:
        """Persist a delivered assistant message, then auto-capture the turn."""
        ctx = ctx or {}
        if not self.is_enabled:
            return
        if not event.get("success"):
            logger.info("Message not successful, skipping persist")
            return

        set_correlation_id(uuid4().hex)
        set_user_id(event.get("to"))
        channel = ctx.get("channelId", "unknown")
        content = event.get("content") or ""
        try:
            result = await self.persistence.persist(
                user_id=event["to"],
                channel=channel,
                role=MessageRole.ASSISTANT,
                content=content,
                agent_id=ctx.get("accountId"),
                metadata={
                    "conversationId": ctx.get("conversationId"),
                    "accountId": ctx.get("accountId"),
                },
            )
            logger.info("Outbound message persisted", success=result.success)

            last_user_message = ctx.get("lastUserMessage")
            if self.settings.AUTO_CAPTURE and last_user_message:
                captured = await self.capture.capture_from_conversation(
                    ctx.get("conversationId") or result.conversation_id,
                    last_user_message,
                    content,
                    channel=channel,
                )
                if captured.captured:
                    logger.info(
                        "Auto-captured conversation content",
                        event_type=LogEventType.MEMORY_CAPTURE,
                        captured=captured.captured,
                        categories=[c.value for c in captured.categories],
                    )
        except Exception as e:
            logger.warning("Failed to persist outbound message", error=str(e))
        finally:
            clear_context()

    async def before_agent_start(
        self, event: dict[str, Any] | None, ctx: dict[str, Any] | None = None
    ) -> dict[str, str]:
        """Return ``{"prependContext": ...}`` with recalled memories, or ``{}``."""
        if not self.is_enabled or not self.settings.AUTO_RECALL:
            return {}
        event = event or {}
        prompt = event.get("prompt") or event.get("content")
        if not prompt or not isinstance(prompt, str):
            return {}

        set_correlation_id(uuid4().hex)
        try:
            recalled = await self.recall.recall_for_prompt(prompt)
            if not recalled.formatted:
                return {}
            logger.info(
                "Auto-recall added memories to context",
                event_type=LogEventType.MEMORY_RECALL,
                memories=len(recalled.memories),
            )
            return {"prependContext": recalled.formatted}
        except Exception as e:
            logger.warning("Auto-recall failed", error=str(e))
            return {}
        finally:
            clear_context()


def create_plugin(
    settings: Settings | None = None,
    repository: MemoryRepository | None = None,
    embeddings: EmbeddingProvider | None = None,
    setup_logging: bool = True,
) -> MemoryPlugin:
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(
            service_name="aleff-memory",
            log_level=settings.LOG_LEVEL,
            json_format=settings.LOG_JSON_FORMAT,
        )
    return MemoryPlugin(settings, repository=repository, embeddings=embeddings)
