"""Tests for auto-capture of conversation content."""

from unittest.mock import AsyncMock

import pytest

from aleff_memory.enums import CaptureCategory
from aleff_memory.services import AutoCapture, detect_category, should_capture


class TestShouldCapture:
    @pytest.mark.parametrize(
        "text",
        [
            "Lembra que a reunião é na sexta",
            "Decidimos usar Postgres para tudo",
            "Eu prefiro reuniões pela manhã",
            "O telefone dele é +5511999998888",
            "Manda para ana@example.com depois",
            "A Carla trabalha na Base Sales",
            "Precisamos fazer o relatório hoje",
        ],
    )
    def test_triggers(self, text):
        assert should_capture(text)

    def test_too_short(self):
        assert not should_capture("lembra disso")

    def test_too_long(self):
        assert not should_capture("lembra " + "x" * 2000)

    def test_no_trigger(self):
        assert not should_capture("Bom dia, tudo certo por aí?")

    def test_injected_memories_ignored(self):
        assert not should_capture(
            "<relevant-memories>\n  1. [decision] Decidimos usar Postgres\n"
            "</relevant-memories>"
        )


class TestDetectCategory:
    @pytest.mark.parametrize(
        "text, category",
        [
            ("Decidimos usar Postgres", CaptureCategory.DECISION),
            ("Não gosto de reuniões longas", CaptureCategory.PREFERENCE),
            ("Contato: ana@example.com", CaptureCategory.CONTACT),
            ("Ela é responsável por vendas", CaptureCategory.FACT),
            ("O prazo é sexta-feira", CaptureCategory.TASK),
            ("Anota isso, decidimos ontem", CaptureCategory.GENERAL),
            ("Nada de especial aqui", CaptureCategory.GENERAL),
        ],
    )
    def test_first_match_wins(self, text, category):
        assert detect_category(text) == category


class TestAutoCapture:
    @pytest.mark.asyncio
    async def test_captures_both_sides(self, persistence, repository):
        capture = AutoCapture(persistence)

        result = await capture.capture_from_conversation(
            "conv-1",
            "Decidimos contratar a ACME",
            "Anotado, vou lembrar da decisão sobre a ACME",
            channel="telegram",
        )

        assert result.captured == 2
        assert result.categories == [
            CaptureCategory.DECISION,
            CaptureCategory.GENERAL,
        ]
        entries = sorted(repository.memory_index.values(), key=lambda e: e.importance)
        general, decision = entries
        assert decision.importance == 8
        assert decision.tags == ["auto_capture", "user", "decision"]
        assert decision.key_name.startswith("auto_user_")
        assert decision.channel == "telegram"
        assert general.importance == 5
        assert general.tags == ["auto_capture", "assistant", "general"]

    @pytest.mark.asyncio
    async def test_contact_importance_and_summary_truncated(
        self, persistence, repository, embeddings
    ):
        capture = AutoCapture(persistence)
        text = "Contato da Ana: ana@example.com. " + "detalhes " * 100

        await capture.capture_from_conversation(None, text, "")

        [entry] = repository.memory_index.values()
        assert entry.importance == 7
        assert entry.summary == text[:500]
        embeddings.generate.assert_awaited_once_with(text)

    @pytest.mark.asyncio
    async def test_nothing_to_capture(self, persistence, repository):
        capture = AutoCapture(persistence)

        result = await capture.capture_from_conversation(
            None, "Bom dia, tudo certo?", "Tudo ótimo por aqui!"
        )

        assert result.captured == 0
        assert repository.memory_index == {}

    @pytest.mark.asyncio
    async def test_failed_save_not_counted(self):
        persistence = AsyncMock()
        persistence.save_to_memory_index.return_value = False
        capture = AutoCapture(persistence)

        result = await capture.capture_from_conversation(
            None, "Decidimos usar Postgres", ""
        )

        assert result.captured == 0
        persistence.save_to_memory_index.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_capture(self, persistence):
        capture = AutoCapture(persistence)

        counts = await capture.batch_capture(
            [
                {"content": "Decidimos usar Postgres", "source": "user"},
                {"content": "Ok!", "source": "assistant"},
                {"content": "Vou lembrar que você prefere chá", "source": "assistant"},
            ]
        )

        assert counts == {"processed": 3, "captured": 2}
