"""Shared helpers for domain entities."""

from datetime import datetime, timezone
from enum import Enum

import ulid


class Platform(str, Enum):
    """Chat platforms the relay can receive from and deliver to."""

    TELEGRAM = "telegram"
    SLACK = "slack"


def new_id() -> str:
    """Return a new sortable unique identifier."""
    return str(ulid.new())


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
