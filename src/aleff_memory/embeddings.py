"""OpenAI embedding provider"""

import asyncio

import openai
from openai import AsyncOpenAI

from .config import Settings
from .logging import LogEventType, get_logger

logger = get_logger(__name__)


def format_embedding(embedding: list[float]) -> str:
    """Render a vector as a pgvector literal: ``[v1,v2,...]``."""
    return "[" + ",".join(str(float(v)) for v in embedding) + "]"


class EmbeddingProvider:
    """Generates text embeddings; never raises.

    ``None`` means no embedding is available (provider unconfigured, API
    error or timeout) and callers continue in degraded mode. No retries are
    made here, backfill picks missed rows up on its next run.
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.model = settings.EMBEDDING_MODEL
        self.max_chars = settings.EMBEDDING_MAX_CHARS
        self._api_key = settings.OPENAI_API_KEY
        self._timeout = settings.EMBEDDING_TIMEOUT
        self._client = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key) or self._client is not None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self._api_key, max_retries=0, timeout=self._timeout
            )
        return self._client

    async def generate(self, text: str) -> list[float] | None:
        if not self.is_configured:
            logger.warning(
                "OPENAI_API_KEY not set, skipping embedding",
                event_type=LogEventType.EMBEDDING,
            )
            return None

        if len(text) > self.max_chars:
            logger.debug(
                "Truncating text for embedding",
                original_length=len(text),
                max_chars=self.max_chars,
            )
            text = text[: self.max_chars]

        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except openai.APIStatusError as e:
            logger.error(
                "Embedding API error",
                event_type=LogEventType.EMBEDDING,
                status_code=e.status_code,
                body=e.body,
            )
            return None
        except (openai.OpenAIError, asyncio.TimeoutError) as e:
            logger.error(
                "Embedding generation failed",
                event_type=LogEventType.EMBEDDING,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        embedding = response.data[0].embedding
        logger.debug(
            "Generated embedding",
            event_type=LogEventType.EMBEDDING,
            text_length=len(text),
            dimensions=len(embedding),
        )
        return embedding

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None
