"""JobQueue implementation with retries, backoff and bounded retention."""

import asyncio
import itertools
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from structlog.stdlib import BoundLogger

from chatrelay.config.models import QueueConfig
from chatrelay.domain.entities.base import utc_now
from chatrelay.domain.entities.job import Job, JobOptions, JobStatus
from chatrelay.domain.repositories.job_repository import JobRepository

JOB_EVENTS = ("active", "progress", "completed", "failed", "stalled")


class JobQueueClosedError(RuntimeError):
    """Raised when enqueueing onto a closed queue."""


class JobContext:
    """Handle given to a job handler for one attempt of a job."""

    def __init__(self, job: Job, queue: "JobQueue") -> None:
        self._job = job
        self._queue = queue
        self.heartbeat = 0

    @property
    def id(self) -> str:
        return self._job.id

    @property
    def name(self) -> str:
        return self._job.name

    @property
    def data(self) -> dict[str, Any]:
        return self._job.data

    @property
    def attempts_made(self) -> int:
        """Number of attempts finished before this one."""
        return self._job.attempts_made

    async def progress(self, value: int) -> None:
        """Report a progress checkpoint between 0 and 100.

        Reporting progress also counts as a liveness signal.

        Raises:
            ValueError: If value is out of range or lower than the last one.
        """
        if not 0 <= value <= 100:
            raise ValueError(f"Progress must be between 0 and 100, got {value}")
        if value < self._job.progress:
            raise ValueError(
                f"Progress must not go backwards ({self._job.progress} -> {value})"
            )
        self._job.progress = value
        self.heartbeat += 1
        self._queue._emit("progress", self._job, value)


JobHandler = Callable[[JobContext], Awaitable[Any]]
JobListener = Callable[..., Any]


class JobQueue:
    """At-least-once job queue.

    With a :class:`JobRepository` every state change is written through
    before it takes effect, so waiting, delayed and interrupted jobs outlive
    the process and are picked up by the next queue started on the same
    store. Without one the queue only lives in memory.

    Supports:
    - Priority ordering (lower number first, FIFO within a priority)
    - Delayed enqueue
    - A bounded worker pool per job name
    - Retry with exponential backoff, then a terminal failed state
    - Bounded retention of completed and failed jobs
    - Lifecycle events: active, progress, completed, failed, stalled
    """

    def __init__(
        self,
        config: QueueConfig,
        logger: BoundLogger,
        repository: JobRepository | None = None,
    ) -> None:
        """Initialize the job queue.

        Args:
            config: Retry, concurrency and retention settings.
            logger: Structured logger.
            repository: Durable job store.
        """
        self._config = config
        self._logger = logger
        self._repository = repository
        self._queues: dict[str, asyncio.PriorityQueue[tuple[int, int, str]]] = {}
        self._jobs: dict[str, Job] = {}
        self._completed: deque[Job] = deque(maxlen=config.remove_on_complete)
        self._failed: deque[Job] = deque(maxlen=config.remove_on_fail)
        self._delay_tasks: dict[str, asyncio.Task[None]] = {}
        self._handlers: dict[str, tuple[JobHandler, int]] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._running: set[asyncio.Task[Any]] = set()
        self._listeners: dict[str, list[JobListener]] = {e: [] for e in JOB_EVENTS}
        self._sequence = itertools.count()
        self._started = False
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def completed_jobs(self) -> list[Job]:
        """Retained completed jobs, oldest first."""
        return list(self._completed)

    @property
    def failed_jobs(self) -> list[Job]:
        """Retained permanently failed jobs, oldest first."""
        return list(self._failed)

    def backoff_delay(self, attempts_made: int) -> float:
        """Delay before the next attempt after ``attempts_made`` failures."""
        return self._config.backoff_delay * (2 ** (attempts_made - 1))

    def on(self, event: str, listener: JobListener) -> None:
        """Register a listener for a lifecycle event.

        Listeners are called synchronously as ``listener(job, *args)``:
        ``progress`` receives the value, ``completed`` the handler result and
        ``failed`` the exception.

        Raises:
            ValueError: If the event name is unknown.
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown job event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event: str, job: Job, *args: Any) -> None:
        for listener in self._listeners[event]:
            try:
                listener(job, *args)
            except Exception:
                self._logger.exception(
                    "Job event listener failed", job_event=event, job_id=job.id
                )

    def register(
        self, name: str, handler: JobHandler, concurrency: int | None = None
    ) -> None:
        """Register the handler for a job name.

        Args:
            name: Job name the handler processes.
            handler: Coroutine function called with a :class:`JobContext`.
            concurrency: Worker count, defaults to the configured concurrency.

        Raises:
            ValueError: If a handler is already registered for the name.
        """
        if name in self._handlers:
            raise ValueError(f"Handler already registered for job: {name}")
        workers = concurrency or self._config.concurrency
        self._handlers[name] = (handler, workers)
        if self._started:
            self._spawn_workers(name)

    async def start(self) -> None:
        """Recover stored jobs and start workers for every registered handler."""
        if self._started:
            return
        self._started = True
        # Handlers registered while recovering spawn their own workers
        names = list(self._handlers)
        recovered = await self._recover()
        for name in names:
            self._spawn_workers(name)
        self._logger.info(
            "Job queue started",
            handlers=list(self._handlers),
            workers=len(self._workers),
            recovered=recovered,
        )

    async def _recover(self) -> int:
        """Schedule unfinished jobs left in the store by an earlier queue.

        Jobs stored as active were interrupted mid-attempt. They go back to
        waiting and the interrupted attempt is not counted.
        """
        if self._repository is None:
            return 0

        recovered = 0
        for job, run_at in await self._repository.list_unfinished():
            if job.id in self._jobs:
                continue
            if job.status == JobStatus.ACTIVE:
                self._logger.warning(
                    "Reclaiming interrupted job",
                    job_id=job.id,
                    job_name=job.name,
                    attempts_made=job.attempts_made,
                )
                job.status = JobStatus.WAITING
                await self._repository.save(job, run_at)
            delay = 0.0
            if run_at is not None:
                delay = max(0.0, (run_at - utc_now()).total_seconds())
            self._jobs[job.id] = job
            self._schedule(job, delay)
            recovered += 1
        return recovered

    def _spawn_workers(self, name: str) -> None:
        _, workers = self._handlers[name]
        for index in range(workers):
            task = asyncio.create_task(
                self._worker(name), name=f"job-worker:{name}:{index}"
            )
            self._workers.append(task)

    def _queue_for(self, name: str) -> asyncio.PriorityQueue[tuple[int, int, str]]:
        if name not in self._queues:
            self._queues[name] = asyncio.PriorityQueue()
        return self._queues[name]

    async def _save(self, job: Job, delay: float = 0) -> None:
        if self._repository is None:
            return
        run_at: datetime | None = None
        if delay > 0:
            run_at = utc_now() + timedelta(seconds=delay)
        await self._repository.save(job, run_at)

    async def enqueue(
        self,
        name: str,
        data: dict[str, Any],
        priority: int = 0,
        delay: float = 0,
        attempts: int | None = None,
    ) -> str:
        """Add a job to the queue.

        The job is stored before this returns.

        Args:
            name: Job name used to select the handler.
            data: JSON-compatible payload.
            priority: Lower numbers run first.
            delay: Seconds to wait before the job becomes runnable.
            attempts: Overrides the configured attempt count for this job.

        Returns:
            The job id.

        Raises:
            JobQueueClosedError: If the queue has been closed.
        """
        if self._closed:
            raise JobQueueClosedError("Job queue is closed")

        job = Job(
            name=name,
            data=data,
            opts=JobOptions(priority=priority, delay=delay, attempts=attempts),
        )
        if delay > 0:
            job.status = JobStatus.DELAYED
        await self._save(job, delay)
        self._jobs[job.id] = job
        self._schedule(job, delay)
        return job.id

    def _schedule(self, job: Job, delay: float) -> None:
        if delay > 0:
            job.status = JobStatus.DELAYED
            self._delay_tasks[job.id] = asyncio.create_task(
                self._delayed_put(job, delay)
            )
        else:
            self._put(job)

    def _put(self, job: Job) -> None:
        job.status = JobStatus.WAITING
        self._queue_for(job.name).put_nowait(
            (job.opts.priority, next(self._sequence), job.id)
        )

    async def _delayed_put(self, job: Job, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            self._put(job)
        finally:
            self._delay_tasks.pop(job.id, None)

    async def _worker(self, name: str) -> None:
        handler, _ = self._handlers[name]
        queue = self._queue_for(name)
        while True:
            _, _, job_id = await queue.get()
            job = self._jobs.get(job_id)
            if job is None:
                continue
            try:
                await self._process(job, handler)
            except Exception:
                # The job stays stored and is retried by the next queue
                self._logger.exception(
                    "Job processing failed", job_id=job.id, job_name=job.name
                )

    async def _process(self, job: Job, handler: JobHandler) -> None:
        job.status = JobStatus.ACTIVE
        job.processed_at = utc_now()
        await self._save(job)
        context = JobContext(job, self)
        self._emit("active", job)

        task = asyncio.create_task(handler(context))
        self._running.add(task)
        try:
            result = await self._watch(task, job, context)
        except asyncio.CancelledError as e:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # The handler cancelled itself; the worker carries on
            job.attempts_made += 1
            await self._handle_failure(job, e)
        except Exception as e:
            job.attempts_made += 1
            await self._handle_failure(job, e)
        else:
            job.attempts_made += 1
            job.status = JobStatus.COMPLETED
            job.result = result
            job.failed_reason = None
            job.finished_at = utc_now()
            await self._save(job)
            await self._prune(JobStatus.COMPLETED, self._config.remove_on_complete)
            self._jobs.pop(job.id, None)
            self._completed.append(job)
            self._emit("completed", job, result)
        finally:
            self._running.discard(task)

    async def _watch(
        self, task: asyncio.Task[Any], job: Job, context: JobContext
    ) -> Any:
        """Wait for a handler, emitting ``stalled`` while it shows no progress."""
        last_heartbeat = context.heartbeat
        try:
            while True:
                done, _ = await asyncio.wait(
                    {task}, timeout=self._config.stalled_interval
                )
                if done:
                    return task.result()
                if context.heartbeat == last_heartbeat:
                    self._emit("stalled", job)
                last_heartbeat = context.heartbeat
        except asyncio.CancelledError:
            task.cancel()
            raise

    async def _handle_failure(self, job: Job, error: BaseException) -> None:
        job.failed_reason = str(error) or type(error).__name__
        max_attempts = job.opts.attempts or self._config.attempts

        if job.attempts_made < max_attempts:
            delay = self.backoff_delay(job.attempts_made)
            job.progress = 0
            job.status = JobStatus.DELAYED if delay > 0 else JobStatus.WAITING
            await self._save(job, delay)
            self._emit("failed", job, error)
            if self._closed:
                self._logger.info(
                    "Job retry left for the next queue",
                    job_id=job.id,
                    attempts_made=job.attempts_made,
                )
                return
            self._schedule(job, delay)
            self._logger.info(
                "Job scheduled for retry",
                job_id=job.id,
                attempts_made=job.attempts_made,
                retry_in=delay,
            )
            return

        job.status = JobStatus.FAILED
        job.finished_at = utc_now()
        await self._save(job)
        await self._prune(JobStatus.FAILED, self._config.remove_on_fail)
        self._jobs.pop(job.id, None)
        self._failed.append(job)
        self._emit("failed", job, error)

    async def _prune(self, status: JobStatus, keep: int) -> None:
        if self._repository is not None:
            await self._repository.prune(status, keep)

    def get_job(self, job_id: str) -> Job | None:
        """Look up a pending, active or retained job by id."""
        job = self._jobs.get(job_id)
        if job is not None:
            return job
        for retained in itertools.chain(self._completed, self._failed):
            if retained.id == job_id:
                return retained
        return None

    def counts(self) -> dict[str, int]:
        """Return the number of jobs in each state."""
        result = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            result[job.status.value] += 1
        result[JobStatus.COMPLETED.value] = len(self._completed)
        result[JobStatus.FAILED.value] = len(self._failed)
        return result

    async def close(self, timeout: float | None = None) -> None:
        """Stop accepting jobs and shut the workers down.

        Active handlers get up to ``timeout`` seconds to finish before they
        are cancelled. Nothing is dropped from the store: waiting and delayed
        jobs stay as they are, and cancelled jobs stay active until the next
        queue on the store reclaims them.
        """
        if self._closed:
            return
        self._closed = True

        for task in list(self._delay_tasks.values()):
            task.cancel()
        self._delay_tasks.clear()

        if self._running and timeout:
            await asyncio.wait(set(self._running), timeout=timeout)

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._logger.info("Job queue closed", **self.counts())
