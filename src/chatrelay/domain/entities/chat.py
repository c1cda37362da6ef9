"""Value objects exchanged with AI providers."""

from typing import Literal

from pydantic import BaseModel

ChatRole = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """A role/content pair in a chat completion request."""

    role: ChatRole
    content: str


class TokenUsage(BaseModel):
    """Token accounting reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class AIResponse(BaseModel):
    """Completion returned by a provider."""

    content: str
    usage: TokenUsage | None = None
    provider: str | None = None
    model: str | None = None


class AIHealth(BaseModel):
    """Aggregated provider health."""

    primary: bool
    fallback: bool | None = None
    overall: bool
