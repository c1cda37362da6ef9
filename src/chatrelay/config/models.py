"""Pydantic models for application configuration."""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Respond concisely and helpfully to user messages."
)
DEFAULT_APOLOGY_TEXT = (
    "Sorry, I encountered an error processing your message. Please try again later."
)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    max_body_bytes: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Maximum accepted webhook body size in bytes.",
    )
    body_read_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds allowed for reading a webhook body.",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/chatrelay.db",
        description=(
            "SQLAlchemy-style async database connection URL "
            "(e.g., 'sqlite+aiosqlite:///path/to/db')."
        ),
    )


class QueueConfig(BaseModel):
    """Job queue configuration."""

    concurrency: int = Field(default=5, ge=1)
    attempts: int = Field(
        default=3, ge=1, description="Total attempts per job, first run included."
    )
    backoff_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base delay in seconds; doubles after every failed attempt.",
    )
    remove_on_complete: int = Field(
        default=100, ge=0, description="Completed jobs kept for inspection."
    )
    remove_on_fail: int = Field(
        default=20, ge=0, description="Permanently failed jobs kept for inspection."
    )
    stalled_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds without a progress report before a job is stalled.",
    )


class ProviderConfig(BaseModel):
    """Configuration of a single AI completion provider."""

    kind: Literal["hosted", "self_hosted"] = "hosted"
    model_id: str
    api_key: str | None = None
    base_url: str | None = None
    params: dict[str, Any] = Field(
        default_factory=lambda: {"temperature": 0.7, "max_tokens": 1000}
    )

    @model_validator(mode="after")
    def _require_base_url_for_self_hosted(self) -> "ProviderConfig":
        if self.kind == "self_hosted" and not self.base_url:
            raise ValueError("self_hosted providers require base_url")
        return self


class AIConfig(BaseModel):
    """AI orchestration configuration."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    primary: ProviderConfig
    fallback: ProviderConfig | None = None


class ProcessorConfig(BaseModel):
    """Message processor configuration."""

    context_max_tokens: int = Field(default=4000, ge=0)
    apology_text: str = DEFAULT_APOLOGY_TEXT


class TelegramConfig(BaseModel):
    """Telegram integration configuration."""

    bot_token: str | None = Field(
        default=None,
        description="Bot token used for the send API and HMAC verification.",
    )
    webhook_secret: str | None = Field(
        default=None,
        description=(
            "Secret echoed by Telegram in X-Telegram-Bot-Api-Secret-Token. "
            "When set it takes precedence over HMAC verification."
        ),
    )
    allow_unsigned: bool = Field(
        default=False,
        description=(
            "Accept webhooks that carry no signature at all when no "
            "webhook_secret is configured. Logged as a warning."
        ),
    )


class SlackConfig(BaseModel):
    """Slack integration configuration."""

    bot_token: str | None = Field(
        default=None,
        description="Slack bot token used for chat.postMessage ('xoxb-...').",
    )
    signing_secret: str | None = Field(
        default=None,
        description="Signing secret used to verify X-Slack-Signature.",
    )


class AppConfig(BaseModel):
    """Application configuration."""

    ai: AIConfig
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
