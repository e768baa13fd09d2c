from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID

from ..errors import AleffMemoryError
from ..logging import get_logger
from ..models import Message, get_utc_now
from ..repository import MemoryRepository

logger = get_logger(__name__)

# Messages closer than this to the previous one share a conversation
CONVERSATION_WINDOW = timedelta(hours=24)


class ConversationStore:
    def __init__(
        self,
        repository: MemoryRepository,
        default_agent_id: str = "aleff",
        clock: Callable[[], datetime] = get_utc_now,
    ):
        self._repository = repository
        self._default_agent_id = default_agent_id
        self._clock = clock

    async def get_or_create(
        self,
        user_id: str,
        channel: str,
        agent_id: str | None = None,
        user_name: str | None = None,
    ) -> UUID | None:
        """Return the active conversation for the key, opening a new one when
        the last message is older than the window. ``None`` on store failure."""
        agent_id = agent_id or self._default_agent_id
        now = self._clock()
        try:
            return await self._repository.find_or_create_conversation(
                user_id=user_id,
                channel=channel,
                agent_id=agent_id,
                user_name=user_name,
                active_since=now - CONVERSATION_WINDOW,
                now=now,
            )
        except AleffMemoryError as e:
            logger.error(
                "Failed to get or create conversation",
                user_id=user_id,
                channel=channel,
                agent_id=agent_id,
                error=str(e),
            )
            return None

    async def get_context(
        self, user_id: str, channel: str, limit: int = 50
    ) -> list[Message]:
        """Messages of the user's latest conversation on the channel, oldest first."""
        try:
            conversation = await self._repository.get_latest_conversation(
                user_id, channel
            )
            if conversation is None:
                return []
            return await self._repository.get_conversation_messages(
                conversation.id, limit
            )
        except AleffMemoryError as e:
            logger.error(
                "Failed to load conversation context",
                user_id=user_id,
                channel=channel,
                error=str(e),
            )
            return []
