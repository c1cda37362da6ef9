"""Infrastructure layer."""

from chatrelay.infrastructure.job_queue import JobQueue
from chatrelay.infrastructure.persistence import Database

__all__ = ["Database", "JobQueue"]
