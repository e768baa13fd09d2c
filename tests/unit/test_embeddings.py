"""Tests for the OpenAI embedding provider."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from aleff_memory.embeddings import EmbeddingProvider, format_embedding


def make_client(embedding=None, side_effect=None):
    client = MagicMock()
    response = MagicMock()
    response.data = [MagicMock(embedding=embedding or [0.1, 0.2, 0.3])]
    client.embeddings.create = AsyncMock(return_value=response, side_effect=side_effect)
    client.close = AsyncMock()
    return client


class TestFormatEmbedding:
    def test_pgvector_literal(self):
        assert format_embedding([1, 0.5, -2]) == "[1.0,0.5,-2.0]"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_vector(self, settings):
        client = make_client([0.4, 0.5])
        provider = EmbeddingProvider(settings, client=client)

        assert await provider.generate("olá") == [0.4, 0.5]
        client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-small", input="olá"
        )

    @pytest.mark.asyncio
    async def test_long_text_truncated_to_max_chars(self, settings):
        client = make_client()
        provider = EmbeddingProvider(settings, client=client)

        await provider.generate("a" * 40000)

        sent = client.embeddings.create.await_args.kwargs["input"]
        assert len(sent) == 30000

    @pytest.mark.asyncio
    async def test_text_at_limit_not_truncated(self, settings):
        client = make_client()
        provider = EmbeddingProvider(settings, client=client)

        await provider.generate("b" * 30000)

        assert client.embeddings.create.await_args.kwargs["input"] == "b" * 30000

    @pytest.mark.asyncio
    async def test_without_key_returns_none(self, unconfigured_settings):
        provider = EmbeddingProvider(unconfigured_settings)

        assert not provider.is_configured
        assert await provider.generate("texto") is None

    @pytest.mark.asyncio
    async def test_api_status_error_returns_none(self, settings):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        error = openai.RateLimitError(
            "rate limited",
            response=httpx.Response(429, request=request),
            body={"error": "rate limited"},
        )
        provider = EmbeddingProvider(settings, client=make_client(side_effect=error))

        assert await provider.generate("texto") is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self, settings):
        request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        error = openai.APITimeoutError(request=request)
        provider = EmbeddingProvider(settings, client=make_client(side_effect=error))

        assert await provider.generate("texto") is None


class TestClose:
    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, settings):
        client = make_client()
        provider = EmbeddingProvider(settings, client=client)

        await provider.close()

        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self, settings):
        provider = EmbeddingProvider(settings)
        client = make_client()
        provider._client = client

        await provider.close()

        client.close.assert_awaited_once()
        assert provider._client is None
