"""Stored form of a queued job."""

from datetime import datetime
from typing import Any

from sqlalchemy import Column, DateTime, Index
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel

from chatrelay.domain.entities.base import as_utc, utc_now
from chatrelay.domain.entities.job import Job, JobOptions, JobStatus


class JobRecord(SQLModel, table=True):
    """Stored state of a queued job.

    Attributes:
        status: Last persisted state. ``active`` rows left behind by a
            stopped process are reclaimed when a queue starts.
        run_at: When a delayed job becomes runnable; None means now.
    """

    __tablename__ = "jobs"
    __table_args__ = (Index("idx_jobs_status_created", "status", "created_at"),)

    id: str = Field(primary_key=True)
    name: str = Field(index=True)
    data: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    priority: int = 0
    delay: float = 0
    attempts: int | None = None
    status: JobStatus
    attempts_made: int = 0
    failed_reason: str | None = None
    run_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True)
    )
    processed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    finished_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))

    @classmethod
    def from_job(cls, job: Job, run_at: datetime | None = None) -> "JobRecord":
        return cls(
            id=job.id,
            name=job.name,
            data=job.data,
            priority=job.opts.priority,
            delay=job.opts.delay,
            attempts=job.opts.attempts,
            status=job.status,
            attempts_made=job.attempts_made,
            failed_reason=job.failed_reason,
            run_at=run_at,
            created_at=job.created_at,
            processed_at=job.processed_at,
            finished_at=job.finished_at,
        )

    def to_job(self) -> Job:
        return Job(
            id=self.id,
            name=self.name,
            data=self.data,
            opts=JobOptions(
                priority=self.priority, delay=self.delay, attempts=self.attempts
            ),
            status=self.status,
            attempts_made=self.attempts_made,
            failed_reason=self.failed_reason,
            created_at=as_utc(self.created_at),
            processed_at=_as_utc_or_none(self.processed_at),
            finished_at=_as_utc_or_none(self.finished_at),
        )


def _as_utc_or_none(value: datetime | None) -> datetime | None:
    return as_utc(value) if value is not None else None
