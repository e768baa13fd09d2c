"""Tests for the plugin hooks and lifecycle."""

from unittest.mock import AsyncMock

import pytest

from aleff_memory.logging import correlation_id_ctx, user_id_ctx
from aleff_memory.models import MemoryIndexEntry
from aleff_memory.plugin import MemoryPlugin, create_plugin
from aleff_memory.schemas import PersistResult

CTX = {"channelId": "telegram", "accountId": "aleff", "conversationId": "chat-1"}


class TestMessageHooks:
    @pytest.mark.asyncio
    async def test_received_and_sent_share_conversation(self, plugin, repository):
        await plugin.on_message_received(
            {"from": "u1", "content": "oi", "timestamp": 1700000000}, CTX
        )
        await plugin.on_message_sent(
            {"to": "u1", "success": True, "content": "olá"}, CTX
        )

        [conversation] = repository.conversations.values()
        assert conversation.message_count == 2
        assert conversation.channel == "telegram"
        roles = sorted(m.role for m in repository.messages.values())
        assert roles == ["assistant", "user"]

    @pytest.mark.asyncio
    async def test_received_metadata(self, plugin, repository):
        await plugin.on_message_received(
            {"from": "u1", "content": "oi", "metadata": {"lang": "pt"}}, CTX
        )

        [message] = repository.messages.values()
        assert message.meta_data["conversationId"] == "chat-1"
        assert message.meta_data["lang"] == "pt"
        assert message.agent_id == "aleff"

    @pytest.mark.asyncio
    async def test_failed_send_not_persisted(self, plugin, repository):
        await plugin.on_message_sent(
            {"to": "u1", "success": False, "content": "olá"}, CTX
        )

        assert repository.messages == {}

    @pytest.mark.asyncio
    async def test_sent_triggers_auto_capture(self, plugin, repository):
        await plugin.on_message_sent(
            {"to": "u1", "success": True, "content": "Ok!"},
            {**CTX, "lastUserMessage": "Decidimos usar Postgres no projeto"},
        )

        [entry] = repository.memory_index.values()
        assert entry.key_type == "decision"
        assert entry.channel == "telegram"

    @pytest.mark.asyncio
    async def test_auto_capture_disabled(self, settings, repository, embeddings):
        settings.AUTO_CAPTURE = False
        plugin = MemoryPlugin(settings, repository=repository, embeddings=embeddings)

        await plugin.on_message_sent(
            {"to": "u1", "success": True, "content": "Ok!"},
            {**CTX, "lastUserMessage": "Decidimos usar Postgres no projeto"},
        )
        await plugin.close(timeout=1)

        assert repository.memory_index == {}
        assert len(repository.messages) == 1

    @pytest.mark.asyncio
    async def test_hook_never_raises(self, plugin):
        plugin.persistence.persist = AsyncMock(side_effect=RuntimeError("boom"))

        await plugin.on_message_received({"from": "u1", "content": "oi"}, CTX)

    @pytest.mark.asyncio
    async def test_not_configured_skips(self, unconfigured_settings, embeddings):
        plugin = MemoryPlugin(unconfigured_settings, embeddings=embeddings)
        plugin.persistence.persist = AsyncMock()

        await plugin.start()
        await plugin.on_message_received({"from": "u1", "content": "oi"}, CTX)

        assert not plugin.is_enabled
        plugin.persistence.persist.assert_not_awaited()
        await plugin.close(timeout=1)


class TestBeforeAgentStart:
    @pytest.mark.asyncio
    async def test_prepends_recalled_memories(self, plugin, repository, vectors):
        prompt = "Qual banco de dados escolhemos?"
        vectors[prompt] = [1.0, 0.0]
        await repository.insert_memory_index_entry(
            MemoryIndexEntry(
                key_type="decision",
                key_name="banco",
                summary="Usar Postgres",
                embedding=[1.0, 0.0],
            )
        )

        result = await plugin.before_agent_start({"prompt": prompt})

        assert result == {
            "prependContext": (
                "<relevant-memories>\n  1. [decision] Usar Postgres\n"
                "</relevant-memories>"
            )
        }

    @pytest.mark.asyncio
    async def test_nothing_recalled(self, plugin):
        assert await plugin.before_agent_start({"prompt": "algo sem memória"}) == {}

    @pytest.mark.asyncio
    async def test_missing_prompt(self, plugin):
        assert await plugin.before_agent_start({}) == {}
        assert await plugin.before_agent_start(None) == {}

    @pytest.mark.asyncio
    async def test_recall_failure_swallowed(self, plugin):
        plugin.recall.recall_for_prompt = AsyncMock(side_effect=RuntimeError("boom"))

        assert await plugin.before_agent_start({"prompt": "uma pergunta longa"}) == {}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes(self, settings, repository, embeddings):
        async with MemoryPlugin(
            settings, repository=repository, embeddings=embeddings
        ) as plugin:
            await plugin.persistence.persist("u1", "tg", "user", "oi")

        embeddings.close.assert_awaited_once()
        assert len(repository.messages) == 1

    def test_create_plugin_builds_postgres_repository(self, settings):
        plugin = create_plugin(settings, setup_logging=False)

        assert plugin.is_enabled
        assert plugin.database is not None
        assert not plugin.database.is_initialized


class TestLogContext:
    @pytest.mark.asyncio
    async def test_each_hook_call_gets_its_own_correlation_id(self, plugin):
        seen = []

        async def record(**kwargs):
            seen.append((correlation_id_ctx.get(), user_id_ctx.get()))
            return PersistResult(success=True)

        plugin.persistence.persist = AsyncMock(side_effect=record)

        await plugin.on_message_received({"from": "u1", "content": "oi"}, CTX)
        await plugin.on_message_received({"from": "u2", "content": "oi"}, CTX)

        (first_cid, first_user), (second_cid, second_user) = seen
        assert first_cid and second_cid
        assert first_cid != second_cid
        assert (first_user, second_user) == ("u1", "u2")
        assert correlation_id_ctx.get() is None
        assert user_id_ctx.get() is None
