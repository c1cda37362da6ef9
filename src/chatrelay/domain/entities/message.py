"""Message entity and its update patch."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import Column, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel

from chatrelay.domain.entities.base import new_id, utc_now


class MessageRole(str, Enum):
    """Author role of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(SQLModel, table=True):
    """A single message owned by a conversation.

    Attributes:
        id: ULID identifier.
        conversation_id: Owning conversation; rows cascade on its deletion.
        role: user, assistant or system.
        content: Message text.
        platform_message_id: Platform-side id used for reverse lookup.
        platform_data: Free-form platform metadata.
        token_count: Tokens consumed, when known.
        ai_provider: Provider that produced an assistant message.
        ai_model: Model that produced an assistant message.
        ai_cost: Cost of producing an assistant message.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    role: MessageRole
    content: str
    platform_message_id: str | None = Field(default=None, index=True)
    platform_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    token_count: int | None = None
    ai_provider: str | None = Field(default=None, index=True)
    ai_model: str | None = None
    ai_cost: Decimal | None = Field(
        default=None, sa_column=Column(Numeric(10, 6), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), index=True
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True)
    )


class MessageOptions(BaseModel):
    """Optional attributes recorded when a message is added."""

    platform_message_id: str | None = None
    platform_data: dict[str, Any] | None = None
    token_count: int | None = None
    ai_provider: str | None = None
    ai_model: str | None = None
    ai_cost: Decimal | None = None


class MessagePatch(BaseModel):
    """Fields of a message that may be changed after creation.

    Fields left unset are not touched.
    """

    content: str | None = None
    platform_data: dict[str, Any] | None = None
    token_count: int | None = None
    ai_provider: str | None = None
    ai_model: str | None = None
    ai_cost: Decimal | None = None
