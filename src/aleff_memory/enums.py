import enum


# Message related enums
class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


# Knowledge graph enums
class EntityType(str, enum.Enum):
    PERSON = "person"
    COMPANY = "company"
    PROJECT = "project"
    CONCEPT = "concept"


class RelationshipType(str, enum.Enum):
    WORKS_AT = "works_at"
    MANAGES = "manages"
    OWNS = "owns"
    PART_OF = "part_of"
    KNOWS = "knows"
    RELATED_TO = "related_to"
    RESPONSIBLE_FOR = "responsible_for"


class FactType(str, enum.Enum):
    PREFERENCE = "preference"
    DECISION = "decision"
    OBSERVATION = "observation"
    SKILL = "skill"
    STATUS = "status"


# Memory index enums
class MemoryCategory(str, enum.Enum):
    DECISION = "decision"
    FACT = "fact"
    PREFERENCE = "preference"
    TODO = "todo"
    IDEA = "idea"
    LEARNING = "learning"


class CaptureCategory(str, enum.Enum):
    DECISION = "decision"
    PREFERENCE = "preference"
    CONTACT = "contact"
    FACT = "fact"
    TASK = "task"
    GENERAL = "general"


# Backfill enums
class EmbeddingTarget(str, enum.Enum):
    ENTITIES = "entities"
    FACTS = "facts"
    MESSAGES = "messages"
    MEMORY_INDEX = "memory_index"
