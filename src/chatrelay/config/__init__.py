"""Configuration module for chatrelay."""

from chatrelay.config.loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    load_config,
    parse_cli_args,
)
from chatrelay.config.models import (
    AIConfig,
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    ProcessorConfig,
    ProviderConfig,
    QueueConfig,
    ServerConfig,
    SlackConfig,
    TelegramConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "EnvVarNotFoundError",
    # Functions
    "load_config",
    "parse_cli_args",
    # Models
    "AIConfig",
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "ProcessorConfig",
    "ProviderConfig",
    "QueueConfig",
    "ServerConfig",
    "SlackConfig",
    "TelegramConfig",
]
