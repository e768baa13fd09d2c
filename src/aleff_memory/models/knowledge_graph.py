from datetime import datetime
from uuid import UUID, uuid4

from pgvector.sqlalchemy import Vector
from sqlalchemy import TEXT, TIMESTAMP, Column, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import EMBEDDING_DIMENSIONS, BaseModel, get_utc_now


class Entity(BaseModel, table=True):
    """Named node of the knowledge graph (person, company, project, concept)."""

    __tablename__ = "entities"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    entity_type: str = Field(index=True)
    # Identity is the name; lookups are case-sensitive
    name: str = Field(unique=True, index=True)
    description: str | None = Field(default=None, sa_column=Column(TEXT))
    meta_data: dict | None = Field(
        default=None, sa_column=Column("metadata", JSONB)
    )
    embedding: list[float] | None = Field(
        default=None, sa_column=Column(Vector(EMBEDDING_DIMENSIONS))
    )


class EntityRelationship(BaseModel, table=True):
    """Directed, typed edge between two entities."""

    __tablename__ = "relationships"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    from_entity_id: UUID = Field(foreign_key="entities.id", index=True)
    to_entity_id: UUID = Field(foreign_key="entities.id", index=True)
    relationship_type: str = Field(index=True)
    strength: float = Field(default=1.0, description="0-1")
    meta_data: dict | None = Field(
        default=None, sa_column=Column("metadata", JSONB)
    )

    __table_args__ = (
        UniqueConstraint(
            "from_entity_id",
            "to_entity_id",
            "relationship_type",
            name="uq_relationships_from_to_type",
        ),
    )


class Fact(SQLModel, table=True):
    """Time-bound assertion about an entity. valid_to = None means current."""

    __tablename__ = "facts"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    entity_id: UUID = Field(foreign_key="entities.id", index=True)
    fact_type: str = Field(index=True)
    content: str = Field(sa_column=Column(TEXT, nullable=False))
    confidence: float = Field(default=0.9, description="0-1")
    embedding: list[float] | None = Field(
        default=None, sa_column=Column(Vector(EMBEDDING_DIMENSIONS))
    )
    source_message_id: UUID | None = Field(
        default=None, foreign_key="messages.id", description="Link to origin message"
    )
    valid_from: datetime = Field(
        default_factory=get_utc_now, nullable=False, sa_type=TIMESTAMP(timezone=True)
    )
    valid_to: datetime | None = Field(
        default=None, sa_type=TIMESTAMP(timezone=True), index=True
    )
    meta_data: dict | None = Field(
        default=None, sa_column=Column("metadata", JSONB)
    )
    created_at: datetime = Field(
        default_factory=get_utc_now, nullable=False, sa_type=TIMESTAMP(timezone=True)
    )
