"""Persistence infrastructure."""

from chatrelay.infrastructure.persistence.conversation_repository import (
    ConversationStats,
    SqlConversationRepository,
)
from chatrelay.infrastructure.persistence.database import Database
from chatrelay.infrastructure.persistence.job_repository import SqlJobRepository

__all__ = [
    "ConversationStats",
    "Database",
    "SqlConversationRepository",
    "SqlJobRepository",
]
