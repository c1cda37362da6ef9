"""Repository protocols."""

from chatrelay.domain.repositories.conversation_repository import (
    ConversationRepository,
)
from chatrelay.domain.repositories.job_repository import JobRepository

__all__ = ["ConversationRepository", "JobRepository"]
