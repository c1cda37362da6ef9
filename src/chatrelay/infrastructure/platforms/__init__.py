"""Chat platform integrations."""

from chatrelay.infrastructure.platforms.dispatcher import (
    PlatformDispatcher,
    UnsupportedPlatformError,
)

__all__ = ["PlatformDispatcher", "UnsupportedPlatformError"]
