"""In-process sync job scheduler.

A fixed pool of asyncio worker tasks consumes an asyncio.Queue of job ids.

Deduplication:
    The job id is derived from (kind, scope, secondary scope, tag). Enqueueing
    an id that is pending or active, or that finished less than
    retention_seconds ago, returns the existing job instead of a new one.

Retries:
    tenacity AsyncRetrying with stop_after_attempt(max_attempts) and
    wait_exponential(multiplier=backoff_base, max=backoff_max). Validation and
    not-found failures are not retried. After the last attempt the job is
    marked failed with the error chain stored on the job.

Cascade:
    A job tagged "coordinator" runs the coordinator registered for its kind,
    which returns secondary scopes; one child job (source "cascade") is
    enqueued per secondary scope.

Execution is at-least-once: a retried handler may run again after a partial
first attempt, which the idempotent store upsert absorbs.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from fpl_sync.errors import ErrorKind, ServiceError, SyncError, find_in_chain, root_cause
from fpl_sync.jobs.fanout import SyncTally
from fpl_sync.jobs.ids import COORDINATOR_TAG, SYNC_TAG, job_id
from fpl_sync.monitoring import bind_correlation_id, get_logger, unbind_correlation_id

log = get_logger()

_NOT_RETRIED = (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND)


class JobStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobSource(str, Enum):
    MANUAL = "manual"
    CRON = "cron"
    CASCADE = "cascade"


@dataclass
class SyncJob:
    """One sync request and its lifecycle."""

    id: str
    kind: str
    scope: Any
    secondary_scope: Any
    source: JobSource
    tag: str
    requested_at: datetime
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    error: dict | None = None
    finished_monotonic: float | None = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "scope": _plain(self.scope),
            "secondary_scope": _plain(self.secondary_scope),
            "source": self.source.value,
            "tag": self.tag,
            "status": self.status.value,
            "attempts": self.attempts,
            "requested_at": self.requested_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result,
            "error": _public_error(self.error),
        }


@dataclass(frozen=True)
class JobHandle:
    """Returned by enqueue(); deduplicated is True when an existing job was reused."""

    id: str
    kind: str
    deduplicated: bool = False


JobHandler = Callable[[SyncJob], Awaitable[Any]]
Coordinator = Callable[[SyncJob], Awaitable[Iterable[Any]]]


class JobScheduler:
    """Deduplicating, bounded, retrying job runner.

    Example:
        scheduler = JobScheduler(handler, concurrency=5)
        await scheduler.start()
        handle = scheduler.enqueue("fixtures", scope=12)
        await scheduler.join()
        scheduler.status(handle.id)  # JobStatus.COMPLETED
    """

    def __init__(
        self,
        handler: JobHandler,
        concurrency: int = 5,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 120.0,
        retention_seconds: float = 300.0,
        coordinators: dict[str, Coordinator] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._handler = handler
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.retention_seconds = retention_seconds
        self._coordinators = dict(coordinators or {})
        self._sleep = sleep
        self._clock = clock

        self._jobs: dict[str, SyncJob] = {}
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._active = 0
        self.max_active_observed = 0

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def enqueue(
        self,
        kind: str,
        scope: Any = None,
        secondary_scope: Any = None,
        source: JobSource | str = JobSource.MANUAL,
        tag: str | None = None,
    ) -> JobHandle:
        """Queue a sync job unless an equivalent one is pending, active or recent.

        Raises:
            ServiceError: kind VALIDATION for a coordinator job of a kind
                without a registered coordinator
        """
        tag = tag or SYNC_TAG
        if tag == COORDINATOR_TAG and kind not in self._coordinators:
            raise ServiceError(
                ErrorKind.VALIDATION,
                f"{kind} has no coordinator",
                details={"kind": kind},
            )

        self._prune()
        jid = job_id(kind, scope, secondary_scope, tag)
        existing = self._jobs.get(jid)
        if existing is not None:
            log.info("job_deduplicated", job_id=jid, status=existing.status.value, source=JobSource(source).value)
            return JobHandle(jid, kind, deduplicated=True)

        self._jobs[jid] = SyncJob(
            id=jid,
            kind=kind,
            scope=scope,
            secondary_scope=secondary_scope,
            source=JobSource(source),
            tag=tag,
            requested_at=datetime.now(timezone.utc),
        )
        self._queue.put_nowait(jid)
        log.info("job_enqueued", job_id=jid, kind=kind, source=JobSource(source).value, queued=self._queue.qsize())
        return JobHandle(jid, kind)

    def get(self, job_id: str) -> SyncJob | None:
        self._prune()
        return self._jobs.get(job_id)

    def status(self, job_id: str) -> JobStatus | None:
        job = self.get(job_id)
        return job.status if job else None

    def jobs(self, status: JobStatus | None = None) -> list[SyncJob]:
        self._prune()
        jobs = sorted(self._jobs.values(), key=lambda j: j.requested_at)
        return [j for j in jobs if status is None or j.status is status]

    def tally(self, handles: Iterable[JobHandle]) -> SyncTally:
        """Count finished jobs: skipped results, other completions, failures.

        Jobs still pending or active are not counted.
        """
        tally = SyncTally()
        for handle in handles:
            job = self._jobs.get(handle.id)
            if job is None or not job.finished:
                continue
            if job.status is JobStatus.FAILED:
                tally.errors += 1
                tally.failures.append((job.id, (job.error or {}).get("message", "")))
            elif isinstance(job.result, dict) and job.result.get("status") == "skipped":
                tally.skipped += 1
            else:
                tally.synced += 1
        tally.max_in_flight = self.max_active_observed
        return tally

    def stats(self) -> dict[str, Any]:
        self._prune()
        counts = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            counts[job.status.value] += 1
        return {
            **counts,
            "queued": self._queue.qsize(),
            "active_now": self._active,
            "max_active_observed": self.max_active_observed,
            "workers": len(self._workers),
        }

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [asyncio.create_task(self._worker(n), name=f"sync-worker-{n}") for n in range(self.concurrency)]
        log.info("scheduler_started", workers=self.concurrency)

    async def stop(self) -> None:
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        log.info("scheduler_stopped", pending=self._queue.qsize())

    async def join(self) -> None:
        """Wait until every queued job (including cascaded children) has finished."""
        await self._queue.join()

    async def _worker(self, number: int) -> None:
        while True:
            jid = await self._queue.get()
            try:
                job = self._jobs.get(jid)
                if job is not None and job.status is JobStatus.PENDING:
                    await self._execute(job)
            finally:
                self._queue.task_done()

    async def _execute(self, job: SyncJob) -> None:
        job.status = JobStatus.ACTIVE
        job.started_at = datetime.now(timezone.utc)
        self._active += 1
        self.max_active_observed = max(self.max_active_observed, self._active)
        bind_correlation_id(job.id)
        try:
            if job.tag == COORDINATOR_TAG:
                result = await self._with_retry(job, self._coordinate)
            else:
                result = await self._with_retry(job, self._handler)
        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = {"kind": ErrorKind.OPERATION.value, "message": "cancelled"}
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            if isinstance(e, SyncError):
                job.error = e.to_dict()
            else:
                job.error = {
                    "kind": ErrorKind.OPERATION.value,
                    "message": "Unexpected error",
                    "cause": {"type": type(e).__name__, "message": str(e)},
                }
            log.error(
                "job_failed",
                job_id=job.id,
                kind=job.kind,
                scope=job.scope,
                secondary_scope=job.secondary_scope,
                attempts=job.attempts,
                error=str(e),
                cause=root_cause(e),
                error_kind=e.kind.value if isinstance(e, SyncError) else None,
                error_type=type(e).__name__,
            )
        else:
            job.status = JobStatus.COMPLETED
            job.result = result.to_dict() if hasattr(result, "to_dict") else result
            log.info("job_completed", job_id=job.id, kind=job.kind, attempts=job.attempts)
        finally:
            job.finished_at = datetime.now(timezone.utc)
            job.finished_monotonic = self._clock()
            self._active -= 1
            unbind_correlation_id()

    async def _with_retry(self, job: SyncJob, fn: Callable[[SyncJob], Awaitable[Any]]) -> Any:
        def log_retry(retry_state: RetryCallState) -> None:
            log.warning(
                "job_retry_scheduled",
                job_id=job.id,
                attempt=retry_state.attempt_number,
                wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_retryable),
            before_sleep=log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                job.attempts = attempt.retry_state.attempt_number
                return await fn(job)

    async def _coordinate(self, job: SyncJob) -> dict[str, Any]:
        secondaries = list(await self._coordinators[job.kind](job))
        children = [
            self.enqueue(job.kind, job.scope, secondary, source=JobSource.CASCADE)
            for secondary in secondaries
        ]
        log.info("job_cascaded", job_id=job.id, children=len(children))
        return {"status": "cascaded", "children": [c.id for c in children]}

    def _prune(self) -> None:
        if not self._jobs:
            return
        now = self._clock()
        expired = [
            jid
            for jid, job in self._jobs.items()
            if job.finished
            and job.finished_monotonic is not None
            and now - job.finished_monotonic >= self.retention_seconds
        ]
        for jid in expired:
            del self._jobs[jid]


def _retryable(exc: BaseException) -> bool:
    # Cancellation must propagate, never be retried.
    if not isinstance(exc, Exception):
        return False
    return not any(find_in_chain(exc, kind) for kind in _NOT_RETRIED)


def _public_error(error: dict | None) -> dict | None:
    # Only kind and message are rendered; the cause chain stays on job.error.
    if error is None:
        return None
    return {"kind": error.get("kind"), "message": error.get("message")}


def _plain(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value
