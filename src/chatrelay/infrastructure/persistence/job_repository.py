"""SQL implementation of JobRepository."""

from datetime import datetime

from sqlalchemy import delete, select

from chatrelay.domain.entities.base import as_utc
from chatrelay.domain.entities.job import Job, JobStatus
from chatrelay.domain.entities.job_record import JobRecord
from chatrelay.infrastructure.persistence.database import Database

UNFINISHED = (JobStatus.WAITING, JobStatus.DELAYED, JobStatus.ACTIVE)


class SqlJobRepository:
    """Stores jobs in the ``jobs`` table of the relay database."""

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def save(self, job: Job, run_at: datetime | None = None) -> None:
        async with self._database.get_session() as session:
            await session.merge(JobRecord.from_job(job, run_at))

    async def get(self, job_id: str) -> Job | None:
        async with self._database.get_session() as session:
            record = await session.get(JobRecord, job_id)
            return record.to_job() if record is not None else None

    async def list_unfinished(self) -> list[tuple[Job, datetime | None]]:
        """Return waiting, delayed and active jobs, oldest first."""
        async with self._database.get_session() as session:
            statement = (
                select(JobRecord)
                .where(JobRecord.status.in_(UNFINISHED))  # type: ignore[attr-defined]
                .order_by(
                    JobRecord.created_at,  # type: ignore[arg-type]
                    JobRecord.id,  # type: ignore[arg-type]
                )
            )
            records = (await session.execute(statement)).scalars().all()
            return [
                (
                    record.to_job(),
                    as_utc(record.run_at) if record.run_at is not None else None,
                )
                for record in records
            ]

    async def prune(self, status: JobStatus, keep: int) -> int:
        """Delete all but the ``keep`` most recently finished jobs in a state.

        Raises:
            ValueError: If keep is negative.
        """
        if keep < 0:
            raise ValueError("keep must not be negative")

        async with self._database.get_session() as session:
            keep_statement = (
                select(JobRecord.id)
                .where(JobRecord.status == status)
                .order_by(
                    JobRecord.finished_at.desc(),  # type: ignore[union-attr]
                    JobRecord.id.desc(),  # type: ignore[attr-defined]
                )
                .limit(keep)
            )
            keep_ids = list((await session.execute(keep_statement)).scalars().all())

            statement = delete(JobRecord).where(
                JobRecord.status == status  # type: ignore[arg-type]
            )
            if keep_ids:
                statement = statement.where(
                    JobRecord.id.not_in(keep_ids)  # type: ignore[attr-defined]
                )
            result = await session.execute(
                statement.execution_options(synchronize_session=False)
            )
            return result.rowcount or 0
