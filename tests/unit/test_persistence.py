"""Tests for message persistence and the memory index."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from aleff_memory.enums import MessageRole
from aleff_memory.errors import StoreError
from aleff_memory.services import MessagePersistence


class TestPersist:
    @pytest.mark.asyncio
    async def test_greeting_exchange_shares_conversation(
        self, persistence, repository, clock
    ):
        first = await persistence.persist("u1", "tg", "user", "oi")
        clock.advance(seconds=30)
        second = await persistence.persist("u1", "tg", "assistant", "olá")

        assert first.success and second.success
        assert first.conversation_id == second.conversation_id
        assert repository.conversations[first.conversation_id].message_count == 2

    @pytest.mark.asyncio
    async def test_message_count_matches_messages(self, persistence, repository):
        results = [
            await persistence.persist("u1", "tg", MessageRole.USER, f"mensagem {i}")
            for i in range(4)
        ]
        conversation_id = results[0].conversation_id
        stored = [
            m for m in repository.messages.values()
            if m.conversation_id == conversation_id
        ]

        assert repository.conversations[conversation_id].message_count == len(stored)

    @pytest.mark.asyncio
    async def test_embedding_attached_in_background(
        self, persistence, repository, vectors
    ):
        vectors["reunião amanhã"] = [1.0, 0.0, 0.0]

        result = await persistence.persist("u1", "tg", "user", "reunião amanhã")
        message = repository.messages[result.message_id]

        assert await result.embedding_task is True
        assert message.embedding == [1.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_message_saved_without_embedding(self, persistence, repository):
        result = await persistence.persist("u1", "tg", "user", "sem vetor")

        assert result
        assert await result.embedding_task is False
        assert repository.messages[result.message_id].embedding is None

    @pytest.mark.asyncio
    async def test_writes_audit_entry(self, persistence, repository):
        result = await persistence.persist(
            "u1", "tg", "user", "oi", metadata={"source": "test"}
        )

        [entry] = repository.audit_log
        assert entry.action_type == "message_saved"
        assert entry.user_id == "u1"
        assert entry.conversation_id == result.conversation_id
        assert entry.meta_data["channel"] == "tg"
        assert repository.messages[result.message_id].meta_data == {"source": "test"}

    @pytest.mark.asyncio
    async def test_audit_failure_keeps_success(self, persistence, repository):
        repository.insert_audit_entry = AsyncMock(side_effect=StoreError("down"))

        result = await persistence.persist("u1", "tg", "user", "oi")

        assert result.success
        assert result.message_id in repository.messages

    @pytest.mark.asyncio
    async def test_invalid_role_rejected(self, persistence, repository):
        result = await persistence.persist("u1", "tg", "robot", "oi")

        assert not result
        assert repository.messages == {}

    @pytest.mark.asyncio
    async def test_insert_failure_returns_false(self, persistence, repository):
        repository.insert_message = AsyncMock(side_effect=StoreError("timeout"))

        result = await persistence.persist("u1", "tg", "user", "oi")
        await asyncio.sleep(0)

        assert not result.success
        assert result.embedding_task is None

    @pytest.mark.asyncio
    async def test_orphan_message_when_conversation_unresolved(
        self, persistence, repository
    ):
        repository.find_or_create_conversation = AsyncMock(
            side_effect=StoreError("pool exhausted")
        )

        result = await persistence.persist("u1", "tg", "user", "oi")

        assert result.success
        assert result.conversation_id is None
        assert repository.messages[result.message_id].conversation_id is None

    @pytest.mark.asyncio
    async def test_disabled_does_nothing(
        self, repository, conversations, embeddings, tasks
    ):
        disabled = MessagePersistence(
            repository, conversations, embeddings, tasks, enabled=False
        )

        result = await disabled.persist("u1", "tg", "user", "oi")

        assert not result.success
        assert repository.messages == {}
        embeddings.generate.assert_not_awaited()


class TestSaveToMemoryIndex:
    @pytest.mark.asyncio
    async def test_saved_with_embedding(self, persistence, repository, vectors):
        vectors["Usar Postgres"] = [0.0, 1.0, 0.0]

        saved = await persistence.save_to_memory_index(
            "Usar Postgres", "decision", "banco", importance=8, tags=["infra"]
        )

        [entry] = repository.memory_index.values()
        assert saved
        assert entry.key_type == "decision"
        assert entry.importance == 8
        assert entry.tags == ["infra"]
        assert entry.embedding == [0.0, 1.0, 0.0]

    @pytest.mark.asyncio
    async def test_saved_without_embedding(self, persistence, repository):
        assert await persistence.save_to_memory_index("sem vetor", "fact", "x")
        [entry] = repository.memory_index.values()
        assert entry.embedding is None

    @pytest.mark.asyncio
    async def test_store_failure_returns_false(self, persistence, repository):
        repository.insert_memory_index_entry = AsyncMock(side_effect=StoreError("x"))

        assert not await persistence.save_to_memory_index("texto", "fact", "x")
