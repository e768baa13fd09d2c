"""Aleff memory: persistent conversation memory and knowledge graph."""

from .config import Settings, get_settings
from .errors import (
    AleffMemoryError,
    ConfigurationError,
    InvalidInputError,
    StoreError,
    ToolError,
)
from .plugin import MemoryPlugin, create_plugin

__version__ = "2.1.0"

__all__ = [
    "AleffMemoryError",
    "ConfigurationError",
    "InvalidInputError",
    "MemoryPlugin",
    "Settings",
    "StoreError",
    "ToolError",
    "create_plugin",
    "get_settings",
]
