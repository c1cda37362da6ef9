"""Domain entities."""

from chatrelay.domain.entities.base import Platform, as_utc, new_id, utc_now
from chatrelay.domain.entities.chat import AIHealth, AIResponse, ChatMessage, TokenUsage
from chatrelay.domain.entities.conversation import Conversation, ConversationPatch
from chatrelay.domain.entities.job import (
    PROCESS_MESSAGE_JOB,
    Job,
    JobOptions,
    JobStatus,
    MessageData,
    MessageJob,
)
from chatrelay.domain.entities.job_record import JobRecord
from chatrelay.domain.entities.message import (
    Message,
    MessageOptions,
    MessagePatch,
    MessageRole,
)

__all__ = [
    "AIHealth",
    "AIResponse",
    "ChatMessage",
    "Conversation",
    "ConversationPatch",
    "Job",
    "JobOptions",
    "JobRecord",
    "JobStatus",
    "Message",
    "MessageData",
    "MessageJob",
    "MessageOptions",
    "MessagePatch",
    "MessageRole",
    "PROCESS_MESSAGE_JOB",
    "Platform",
    "TokenUsage",
    "as_utc",
    "new_id",
    "utc_now",
]
