"""Logging setup module using structlog."""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.stdlib import BoundLogger
from structlog.typing import EventDict, Processor, WrappedLogger

from chatrelay.config.models import LoggingConfig

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("aiohttp.access", "LiteLLM", "httpx", "strands")

REDACTED = "[REDACTED]"
SECRET_KEYS = frozenset(
    {
        "api_key",
        "authorization",
        "bot_token",
        "signing_secret",
        "token",
        "webhook_secret",
    }
)
# Telegram puts the bot token in the request path
_TELEGRAM_TOKEN_RE = re.compile(r"/bot\d+:[A-Za-z0-9_-]+")


def redact_secrets(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask credentials before an event is rendered.

    Values under secret-looking keys are replaced, and Telegram bot tokens
    embedded in URLs or error messages are stripped from string values.
    """
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and "/bot" in value:
            event_dict[key] = _TELEGRAM_TOKEN_RE.sub(f"/bot{REDACTED}", value)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(config: LoggingConfig) -> None:
    """Initialize logging configuration.

    Both structlog loggers and plain stdlib loggers (aiohttp, LiteLLM, ...)
    end up in one stdout handler with the same processors, so third-party
    records are rendered and redacted like our own.

    Args:
        config: Logging configuration specifying level and format.
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(config.format),
            ],
        )
    )


def get_logger(name: str | None = None, **initial_values: Any) -> BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name, typically the module name (__name__).
        **initial_values: Context bound to every event of the logger.

    Returns:
        A bound logger instance that can be used for logging.
    """
    logger: BoundLogger = structlog.stdlib.get_logger(name)
    if initial_values:
        return logger.bind(**initial_values)
    return logger
