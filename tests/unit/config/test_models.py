"""Tests for config Pydantic models."""

import pytest
from pydantic import ValidationError

from chatrelay.config.models import (
    DEFAULT_APOLOGY_TEXT,
    DEFAULT_SYSTEM_PROMPT,
    AIConfig,
    AppConfig,
    LoggingConfig,
    ProviderConfig,
    QueueConfig,
    ServerConfig,
    TelegramConfig,
)


class TestProviderConfig:
    """Tests for ProviderConfig model."""

    def test_minimal_config(self) -> None:
        """ProviderConfig with only required field model_id."""
        config = ProviderConfig(model_id="openai/gpt-4o-mini")

        assert config.kind == "hosted"
        assert config.api_key is None
        assert config.base_url is None
        assert config.params == {"temperature": 0.7, "max_tokens": 1000}

    def test_missing_model_id_raises_error(self) -> None:
        """ProviderConfig without model_id raises ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            ProviderConfig()  # type: ignore[call-arg]

        errors = exc_info.value.errors()
        assert len(errors) == 1
        assert errors[0]["loc"] == ("model_id",)
        assert errors[0]["type"] == "missing"

    def test_self_hosted_requires_base_url(self) -> None:
        """A self-hosted provider without base_url is rejected."""
        with pytest.raises(ValidationError, match="base_url"):
            ProviderConfig(kind="self_hosted", model_id="openai/local")

    def test_self_hosted_with_base_url(self) -> None:
        config = ProviderConfig(
            kind="self_hosted",
            model_id="openai/local",
            base_url="http://localhost:8000/v1",
            api_key="secret",
        )

        assert config.base_url == "http://localhost:8000/v1"

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ProviderConfig(kind="local", model_id="x")  # type: ignore[arg-type]


class TestAIConfig:
    """Tests for AIConfig model."""

    def test_defaults(self) -> None:
        config = AIConfig(primary=ProviderConfig(model_id="openai/gpt-4o-mini"))

        assert config.system_prompt == DEFAULT_SYSTEM_PROMPT
        assert config.fallback is None

    def test_missing_primary_raises_error(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            AIConfig()  # type: ignore[call-arg]

        assert any(e["loc"] == ("primary",) for e in exc_info.value.errors())


class TestQueueConfig:
    """Tests for QueueConfig model."""

    def test_defaults(self) -> None:
        config = QueueConfig()

        assert config.concurrency == 5
        assert config.attempts == 3
        assert config.backoff_delay == 1.0
        assert config.remove_on_complete == 100
        assert config.remove_on_fail == 20

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            QueueConfig(attempts=0)


class TestServerConfig:
    """Tests for ServerConfig model."""

    def test_defaults(self) -> None:
        config = ServerConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.max_body_bytes == 1024 * 1024
        assert config.body_read_timeout == 10.0

    def test_non_positive_body_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(max_body_bytes=0)


class TestLoggingConfig:
    """Tests for LoggingConfig model."""

    def test_defaults(self) -> None:
        config = LoggingConfig()

        assert config.level == "INFO"
        assert config.format == "json"

    def test_invalid_level(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(level="VERBOSE")  # type: ignore[arg-type]

    def test_invalid_format(self) -> None:
        with pytest.raises(ValidationError):
            LoggingConfig(format="xml")  # type: ignore[arg-type]


class TestAppConfig:
    """Tests for AppConfig model."""

    def test_optional_sections_default(self) -> None:
        """Only the ai section is required."""
        config = AppConfig(ai=AIConfig(primary=ProviderConfig(model_id="m")))

        assert config.server == ServerConfig()
        assert config.telegram == TelegramConfig()
        assert config.telegram.allow_unsigned is False
        assert config.slack.signing_secret is None
        assert config.processor.apology_text == DEFAULT_APOLOGY_TEXT
        assert config.database.url.startswith("sqlite+aiosqlite://")
