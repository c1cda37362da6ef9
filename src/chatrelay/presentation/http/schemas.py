"""Webhook payload schemas.

Only the fields the relay consumes are modelled; unknown fields are ignored.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str | None = None
    username: str | None = None
    language_code: str | None = None


class TelegramChat(BaseModel):
    id: int
    type: Literal["private", "group", "supergroup", "channel"]
    first_name: str | None = None
    username: str | None = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    from_: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    date: int
    text: str | None = None


class TelegramUpdate(BaseModel):
    """A Telegram Bot API update."""

    update_id: int
    message: TelegramMessage | None = None


class SlackInnerEvent(BaseModel):
    type: str
    channel: str | None = None
    user: str | None = None
    text: str | None = None
    ts: str | None = None
    bot_id: str | None = None
    subtype: str | None = None

    @property
    def is_from_bot(self) -> bool:
        return self.bot_id is not None or self.subtype is not None


class SlackEnvelope(BaseModel):
    """A Slack Events API request."""

    type: str
    token: str | None = None
    team_id: str | None = None
    api_app_id: str | None = None
    challenge: str | None = None
    event: SlackInnerEvent | None = None
