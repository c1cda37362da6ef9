"""Logging infrastructure module."""

from chatrelay.infrastructure.logging.setup import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
