"""
Structured logging for the memory plugin.

Usage:
    from aleff_memory.logging import configure_logging, get_logger, LogEventType

    # Once, when the plugin starts
    configure_logging(
        service_name="aleff-memory",
        log_level=settings.LOG_LEVEL,
        json_format=True
    )

    # In any module
    logger = get_logger(__name__)
    logger.info("message persisted", event_type=LogEventType.MESSAGE_SAVE, user_id="u1")
"""

import logging
import sys
from contextvars import ContextVar
from enum import Enum
from typing import Any

import structlog

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)
user_id_ctx: ContextVar[str | None] = ContextVar("user_id", default=None)


class LogEventType(str, Enum):
    """Event types for filtering in Loki/Grafana."""

    # Memory events
    MESSAGE_SAVE = "message_save"
    MEMORY_SAVE = "memory_save"
    MEMORY_SEARCH = "memory_search"
    MEMORY_RECALL = "memory_recall"
    MEMORY_CAPTURE = "memory_capture"

    # Knowledge graph events
    GRAPH_WRITE = "graph_write"
    GRAPH_QUERY = "graph_query"

    # Embedding events
    EMBEDDING = "embedding"

    # Job events
    JOB_START = "job_start"
    JOB_END = "job_end"
    JOB_ERROR = "job_error"

    # Tool events
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"

    # General events
    ERROR = "error"
    STARTUP = "startup"
    SHUTDOWN = "shutdown"


def _add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Processor to add correlation_id from context."""
    cid = correlation_id_ctx.get()
    if cid:
        event_dict["correlation_id"] = cid
    return event_dict


def _add_user_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Processor to add user_id from context."""
    uid = user_id_ctx.get()
    if uid is not None:
        event_dict.setdefault("user_id", uid)
    return event_dict


def _make_service_processor(service_name: str):
    """Factory for processor that adds service name."""

    def processor(
        logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["plugin"] = service_name
        return event_dict

    return processor


def _normalize_event_type(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Convert LogEventType enum to string if present."""
    event_type = event_dict.get("event_type")
    if isinstance(event_type, LogEventType):
        event_dict["event_type"] = event_type.value
    return event_dict


def configure_logging(
    service_name: str = "aleff-memory",
    log_level: str = "INFO",
    json_format: bool = True,
) -> None:
    """
    Configure structlog for the plugin.

    Args:
        service_name: Name attached to every event as ``plugin``
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON on stderr (log aggregation), False for console
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_correlation_id,
        _add_user_id,
        _make_service_processor(service_name),
        _normalize_event_type,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        shared_processors.append(
            structlog.processors.JSONRenderer(ensure_ascii=False)
        )
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=True, sort_keys=True)
        )

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


def set_correlation_id(cid: str) -> None:
    """Set correlation_id for current context."""
    correlation_id_ctx.set(cid)


def set_user_id(user_id: str) -> None:
    """Set user_id for current context."""
    user_id_ctx.set(user_id)


def clear_context() -> None:
    """Clear all context variables."""
    correlation_id_ctx.set(None)
    user_id_ctx.set(None)
