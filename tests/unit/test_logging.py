"""Tests for structlog configuration and context variables."""

import json

import structlog

from aleff_memory.logging import (
    LogEventType,
    clear_context,
    configure_logging,
    correlation_id_ctx,
    get_logger,
    set_correlation_id,
    set_user_id,
    user_id_ctx,
)


class TestContext:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_set_and_clear(self):
        set_correlation_id("req-1")
        set_user_id("5511999998888")

        assert correlation_id_ctx.get() == "req-1"
        assert user_id_ctx.get() == "5511999998888"

        clear_context()

        assert correlation_id_ctx.get() is None
        assert user_id_ctx.get() is None


class TestLogEventType:
    def test_values_are_strings(self):
        assert LogEventType.MESSAGE_SAVE == "message_save"
        assert LogEventType.MEMORY_RECALL.value == "memory_recall"
        assert isinstance(LogEventType.JOB_START, str)


class TestConfigureLogging:
    def setup_method(self):
        structlog.reset_defaults()
        clear_context()

    def teardown_method(self):
        structlog.reset_defaults()
        clear_context()

    def test_json_output(self, capsys):
        configure_logging(service_name="aleff-test", log_level="INFO", json_format=True)
        set_user_id("u1")
        set_correlation_id("req-42")

        get_logger("test").info(
            "Message persisted", event_type=LogEventType.MESSAGE_SAVE, role="user"
        )

        line = capsys.readouterr().err.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["event"] == "Message persisted"
        assert data["event_type"] == "message_save"
        assert data["plugin"] == "aleff-test"
        assert data["user_id"] == "u1"
        assert data["correlation_id"] == "req-42"
        assert data["role"] == "user"
        assert data["level"] == "info"
        assert "timestamp" in data

    def test_level_filtering(self, capsys):
        configure_logging(log_level="WARNING", json_format=True)

        get_logger("test").info("hidden")
        get_logger("test").warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err
