"""Error types for the memory subsystem.

Public operations never let these escape: services translate them into
``False`` / ``None`` / empty results and tools into ``{"success": False}``.
"""

from typing import Any


class AleffMemoryError(Exception):
    """Base exception for all memory-related errors"""


class ConfigurationError(AleffMemoryError):
    """Raised when a required credential or connection string is missing"""

    def __init__(self, message: str, setting: str | None = None):
        self.setting = setting
        super().__init__(message)


class StoreError(AleffMemoryError):
    """Raised by repositories when the store is unreachable or a query fails.

    Connection errors, pool exhaustion and timeouts all end up here and are
    treated as transient by callers.
    """

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(f"[{operation or 'store'}] {message}")


class ToolError(AleffMemoryError):
    """Raised inside a tool; converted into a failed tool result"""

    def __init__(
        self,
        message: str,
        tool_name: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.tool_name = tool_name
        self.error_code = error_code
        self.details = details or {}
        super().__init__(f"[{tool_name or 'Unknown'}] {message} (code: {error_code})")


class InvalidInputError(ToolError):
    """Raised when tool parameters fail schema validation"""
