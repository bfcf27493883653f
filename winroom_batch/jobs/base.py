"""
SubJob protocol, JobRegistry, and the checkpointed job runner.

Contract:
    ``SubJob`` defines what the poller needs from a periodic job: a name,
    a checkpoint key, a cadence, the cursor to start from on first sight,
    and ``run()``.  ``JobRunner.run_due(now)`` gives every registered job a
    chance to run.

Invariants enforced:
    - Each job runs in its own transaction, together with the advance of its
      checkpoint.  A failure rolls both back, so the job is retried on its
      next cadence check and other jobs are unaffected.
    - First-sight initialization of a job's checkpoint commits on its own,
      before the cadence check.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Iterator, Protocol, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from winroom_kernel.db.engine import session_scope
from winroom_kernel.domain.clock import Clock
from winroom_kernel.exceptions import WinRoomError
from winroom_kernel.logging_config import LogContext, get_logger
from winroom_kernel.services.checkpoint_store import CheckpointStore

from winroom_batch.domain.cadence import is_due
from winroom_batch.domain.types import JobRunResult, JobRunStatus

logger = get_logger("batch.jobs")


@runtime_checkable
class SubJob(Protocol):
    """Interface for a periodic poller sub-job.

    Contract:
        - ``name``: unique key in the JobRegistry, used in logs and results.
        - ``checkpoint_key``: cache key holding the last successful run.
        - ``interval``: minimum time between runs.
        - ``checkpoint_ttl_seconds``: TTL of the checkpoint row, or None.
        - ``initial_cursor(now)``: cursor written the first time the job is
          seen; None leaves the key empty so the job runs immediately.
        - ``run(session, clock, last_run, now)``: does the work inside the
          caller's transaction and returns a small detail dict.

    Non-goals:
        - Does NOT commit -- the runner owns the transaction.
    """

    @property
    def name(self) -> str: ...

    @property
    def checkpoint_key(self) -> str: ...

    @property
    def interval(self) -> timedelta: ...

    @property
    def checkpoint_ttl_seconds(self) -> int | None: ...

    def initial_cursor(self, now: datetime) -> datetime | None: ...

    def run(
        self,
        session: Session,
        clock: Clock,
        last_run: datetime | None,
        now: datetime,
    ) -> dict[str, Any]: ...


class JobRegistry:
    """Registry of sub-jobs, iterated in registration order.

    Contract:
        - ``register()`` adds a job; raises ValueError on duplicate name.
        - ``get()`` retrieves by name; raises KeyError if missing.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, SubJob] = {}

    def register(self, job: SubJob) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Job '{job.name}' is already registered")
        self._jobs[job.name] = job

    def get(self, name: str) -> SubJob:
        try:
            return self._jobs[name]
        except KeyError:
            raise KeyError(
                f"No job registered as '{name}'. Available: {sorted(self._jobs)}"
            ) from None

    def list_jobs(self) -> tuple[str, ...]:
        return tuple(self._jobs)

    def __iter__(self) -> Iterator[SubJob]:
        return iter(list(self._jobs.values()))

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, name: str) -> bool:
        return name in self._jobs


class JobRunner:
    """Runs due sub-jobs, each in its own transaction."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        registry: JobRegistry,
        clock: Clock,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._clock = clock

    def run_due(self, now: datetime) -> tuple[JobRunResult, ...]:
        return tuple(self.run_job(job, now) for job in self._registry)

    def run_job(self, job: SubJob, now: datetime) -> JobRunResult:
        with LogContext.bind(job=job.name):
            try:
                last_run = self._last_run(job, now)
            except (WinRoomError, SQLAlchemyError) as exc:
                logger.error(
                    "job_checkpoint_unavailable",
                    extra={
                        "job_name": job.name,
                        "error_code": getattr(exc, "code", None),
                        "error_type": type(exc).__name__,
                    },
                )
                return JobRunResult(job.name, JobRunStatus.FAILED, error=str(exc))

            if not is_due(last_run, now, job.interval):
                return JobRunResult(job.name, JobRunStatus.SKIPPED)

            try:
                with session_scope(self._session_factory) as session:
                    detail = job.run(session, self._clock, last_run, now)
                    CheckpointStore(session, self._clock).advance(
                        job.checkpoint_key, now, job.checkpoint_ttl_seconds,
                    )
            except Exception as exc:
                logger.exception(
                    "job_failed",
                    extra={"job_name": job.name, "error_type": type(exc).__name__},
                )
                return JobRunResult(job.name, JobRunStatus.FAILED, error=str(exc))

            logger.info("job_completed", extra={"job_name": job.name, **detail})
            return JobRunResult(job.name, JobRunStatus.RAN, detail=detail)

    def _last_run(self, job: SubJob, now: datetime) -> datetime | None:
        with session_scope(self._session_factory) as session:
            store = CheckpointStore(session, self._clock)
            last_run = store.get_timestamp(job.checkpoint_key)
            if last_run is None:
                initial = job.initial_cursor(now)
                if initial is not None:
                    last_run = store.initialize(
                        job.checkpoint_key, initial, job.checkpoint_ttl_seconds,
                    )
            return last_run
