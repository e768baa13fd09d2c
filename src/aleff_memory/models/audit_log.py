from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import TEXT, TIMESTAMP, Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from .base import get_utc_now


class AuditLogEntry(SQLModel, table=True):
    """Append-only record of persistence actions."""

    __tablename__ = "audit_log"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    action_type: str = Field(index=True)
    action_detail: str | None = Field(default=None, sa_column=Column(TEXT))
    user_id: str | None = Field(default=None, index=True)
    conversation_id: UUID | None = Field(default=None, foreign_key="conversations.id")
    success: bool = Field(default=True)
    meta_data: dict = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSONB, nullable=False, server_default="{}"),
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False, index=True),
    )
