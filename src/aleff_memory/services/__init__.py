from .capture import AutoCapture, CaptureResult, detect_category, should_capture
from .conversations import CONVERSATION_WINDOW, ConversationStore
from .extraction import extract_relationships, infer_entity_type
from .knowledge_graph import KnowledgeGraph
from .persistence import MessagePersistence
from .recall import MemoryRecall, format_memories
from .search import SearchService

__all__ = [
    "CONVERSATION_WINDOW",
    "AutoCapture",
    "CaptureResult",
    "ConversationStore",
    "KnowledgeGraph",
    "MemoryRecall",
    "MessagePersistence",
    "SearchService",
    "detect_category",
    "extract_relationships",
    "format_memories",
    "infer_entity_type",
    "should_capture",
]
