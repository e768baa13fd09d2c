from datetime import datetime
from uuid import UUID, uuid4

from pgvector.sqlalchemy import Vector
from sqlalchemy import TEXT, TIMESTAMP, Column, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import EMBEDDING_DIMENSIONS, get_utc_now


class Conversation(SQLModel, table=True):
    """Session bucket for one user on one channel talking to one agent.

    Messages within a 24 hour window of the previous one share a row.
    """

    __tablename__ = "conversations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True)
    user_name: str | None = Field(default=None)
    channel: str = Field(index=True)
    agent_id: str = Field(default="aleff", index=True)
    started_at: datetime = Field(
        default_factory=get_utc_now, nullable=False, sa_type=TIMESTAMP(timezone=True)
    )
    last_message_at: datetime = Field(
        default_factory=get_utc_now, nullable=False, sa_type=TIMESTAMP(timezone=True)
    )
    message_count: int = Field(default=1)

    __table_args__ = (
        Index(
            "ix_conversations_user_channel_agent_last",
            "user_id",
            "channel",
            "agent_id",
            "last_message_at",
        ),
    )


class Message(SQLModel, table=True):
    __tablename__ = "messages"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    # Nullable: a message is kept even when its conversation could not be resolved
    conversation_id: UUID | None = Field(
        default=None, foreign_key="conversations.id", index=True
    )
    role: str = Field(index=True)
    content: str = Field(sa_column=Column(TEXT, nullable=False))
    agent_id: str = Field(default="aleff", index=True)
    meta_data: dict = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default="{}"),
    )
    embedding: list[float] | None = Field(
        default=None,
        sa_column=Column(Vector(EMBEDDING_DIMENSIONS)),
        description="Filled asynchronously after insert",
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False, index=True),
    )
