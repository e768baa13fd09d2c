from .base import MemoryRepository
from .in_memory import InMemoryRepository
from .postgres import PostgresRepository

__all__ = ["InMemoryRepository", "MemoryRepository", "PostgresRepository"]
