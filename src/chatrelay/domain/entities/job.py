"""Queue job entities."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chatrelay.domain.entities.base import Platform, new_id, utc_now

PROCESS_MESSAGE_JOB = "process-message"


class JobStatus(str, Enum):
    """Lifecycle state of a queued job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobOptions(BaseModel):
    """Per-job scheduling options."""

    priority: int = 0
    delay: float = Field(default=0, ge=0)
    attempts: int | None = Field(default=None, ge=1)


class Job(BaseModel):
    """One unit of asynchronous work.

    ``data`` holds the JSON payload handed to the registered handler.
    ``attempts_made`` counts finished attempts, successful or not.
    """

    id: str = Field(default_factory=new_id)
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    opts: JobOptions = Field(default_factory=JobOptions)
    status: JobStatus = JobStatus.WAITING
    attempts_made: int = 0
    progress: int = 0
    result: Any = None
    failed_reason: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    processed_at: datetime | None = None
    finished_at: datetime | None = None


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageData(_CamelModel):
    """Platform message fields consumed by the processor."""

    text: str
    channel_id: str
    message_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageJob(_CamelModel):
    """Payload of a ``process-message`` job.

    Serialised with camelCase keys:
    ``{platform, messageData, conversationId, userId, timestamp}``.
    """

    platform: Platform
    message_data: MessageData
    conversation_id: str
    user_id: str
    timestamp: datetime = Field(default_factory=utc_now)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible job payload."""
        return self.model_dump(mode="json", by_alias=True)
