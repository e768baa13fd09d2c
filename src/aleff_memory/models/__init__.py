from .audit_log import AuditLogEntry
from .base import EMBEDDING_DIMENSIONS, BaseModel, get_utc_now
from .conversation import Conversation, Message
from .knowledge_graph import Entity, EntityRelationship, Fact
from .memory_index import MemoryIndexEntry

__all__ = [
    "EMBEDDING_DIMENSIONS",
    "AuditLogEntry",
    "BaseModel",
    "Conversation",
    "Entity",
    "EntityRelationship",
    "Fact",
    "MemoryIndexEntry",
    "Message",
    "get_utc_now",
]
