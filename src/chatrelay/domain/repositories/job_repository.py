"""JobRepository protocol."""

from datetime import datetime
from typing import Protocol

from chatrelay.domain.entities.job import Job, JobStatus


class JobRepository(Protocol):
    """Durable storage for queued jobs."""

    async def save(self, job: Job, run_at: datetime | None = None) -> None:
        """Insert or replace the stored state of a job.

        Args:
            job: Job to store.
            run_at: When a delayed job becomes runnable, None for now.
        """
        ...

    async def get(self, job_id: str) -> Job | None:
        """Get a stored job by ID."""
        ...

    async def list_unfinished(self) -> list[tuple[Job, datetime | None]]:
        """Return waiting, delayed and active jobs, oldest first.

        Returns:
            Pairs of job and its ``run_at``.
        """
        ...

    async def prune(self, status: JobStatus, keep: int) -> int:
        """Delete all but the ``keep`` most recently finished jobs in a state.

        Returns:
            Number of deleted jobs.
        """
        ...
