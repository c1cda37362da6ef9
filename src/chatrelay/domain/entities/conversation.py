"""Conversation entity and its update patch."""

from datetime import datetime

from pydantic import BaseModel, field_validator
from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel

from chatrelay.domain.entities.base import new_id, utc_now


class Conversation(SQLModel, table=True):
    """A persistent thread of messages keyed by platform, channel and user.

    Only one *active* conversation may exist per (platform, channel_id,
    user_id); deactivated conversations with the same key are kept as
    history.

    Attributes:
        id: ULID identifier.
        platform: Originating platform name.
        channel_id: Platform channel/chat identifier.
        user_id: Platform user identifier.
        title: Optional human readable title.
        message_count: Number of persisted messages.
        is_active: False once the conversation has been closed.
        last_message_at: created_at of the newest message.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        Index("idx_conversations_platform_channel", "platform", "channel_id"),
        Index("idx_conversations_active_last", "is_active", "last_message_at"),
        Index(
            "uq_conversations_active_key",
            "platform",
            "channel_id",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    platform: str = Field(index=True)
    channel_id: str
    user_id: str = Field(index=True)
    title: str | None = None
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True)
    )
    last_message_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True)
    )
    message_count: int = Field(default=0)
    is_active: bool = Field(default=True)


class ConversationPatch(BaseModel):
    """Fields of a conversation that may be changed after creation.

    Fields left unset are not touched. ``is_active`` may be omitted but
    not set to None.
    """

    title: str | None = None
    is_active: bool = True

    @field_validator("is_active", mode="before")
    @classmethod
    def _reject_null_active(cls, value: object) -> object:
        if value is None:
            raise ValueError("is_active cannot be null")
        return value
