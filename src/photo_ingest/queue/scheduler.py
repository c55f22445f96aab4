"""Bounded worker scheduler.

Dispatches waiting jobs onto asyncio tasks without ever exceeding
``job_concurrency`` jobs in the processing state. Dispatch is event driven:
enqueues and job completions set a wake-up event; an optional periodic
nudge also sets it as a safety net.

The queue, the processing set and the finished lists are only mutated
here, from the event loop.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING, Deque, Dict, List, Optional

from ..errors import (
    AllFilesFailed,
    JobCancelled,
    SchedulerClosed,
    describe_error,
    is_retryable,
)
from ..events import EventBus, JobCompleted, JobFailed, JobQueued, JobRetrying, JobStarted
from .models import JobDescriptor, JobOutcome, JobPayload, JobStatus, QueueStats, SessionStats
from .priority import PriorityJobQueue

if TYPE_CHECKING:
    from ..pipeline.processor import JobProcessor

logger = logging.getLogger(__name__)


class Scheduler:
    """Priority queue + bounded dispatcher + retry bookkeeping.

    Construct once at startup and pass it to whatever submits work.

    Args:
        processor: Runs one job
        job_concurrency: Max jobs processing at once
        max_attempts: Default attempt budget per job
        max_queue_depth: Waiting-job limit (None/0 = unbounded)
        retry_policy: "classified" retries transient errors only, "all" retries everything
        nudge_interval_s: Optional periodic dispatch wake-up
        keep_finished: Completed/failed jobs retained for stats and lookup
        events: Optional event bus
    """

    def __init__(
        self,
        processor: "JobProcessor",
        job_concurrency: int,
        max_attempts: int = 3,
        max_queue_depth: Optional[int] = None,
        retry_policy: str = "classified",
        nudge_interval_s: Optional[float] = None,
        keep_finished: int = 500,
        events: Optional[EventBus] = None,
    ):
        if job_concurrency < 1:
            raise ValueError("job_concurrency must be >= 1")
        self.processor = processor
        self.job_concurrency = job_concurrency
        self.max_attempts = max_attempts
        self.retry_policy = retry_policy
        self.nudge_interval_s = nudge_interval_s
        self.events = events

        self._queue = PriorityJobQueue(max_depth=max_queue_depth)
        self._processing: Dict[str, JobDescriptor] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._completed: Deque[JobDescriptor] = deque()
        self._failed: Deque[JobDescriptor] = deque()
        self._keep_finished = keep_finished
        self._index: Dict[str, JobDescriptor] = {}
        self._done: Dict[str, asyncio.Event] = {}

        self._wakeup = asyncio.Event()
        self._dispatcher: Optional[asyncio.Task] = None
        self._nudger: Optional[asyncio.Task] = None
        self._accepting = True
        self._dispatching = True
        self.peak_active = 0

    # --- Lifecycle ---

    @property
    def running(self) -> bool:
        return self._dispatcher is not None and not self._dispatcher.done()

    async def start(self) -> None:
        if self.running:
            return
        self._accepting = True
        self._dispatching = True
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="photo-ingest-dispatch")
        if self.nudge_interval_s:
            self._nudger = asyncio.create_task(self._nudge_loop(), name="photo-ingest-nudge")
        self._wakeup.set()
        logger.info(f"Scheduler started (job_concurrency={self.job_concurrency})")

    async def stop(self, grace_period_s: float = 30.0) -> None:
        """Stop accepting jobs, let in-flight jobs finish, cancel stragglers.

        Waiting jobs are not dispatched once stop begins; they stay waiting.
        """
        self._accepting = False
        self._dispatching = False
        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"Draining {len(tasks)} in-flight jobs (grace {grace_period_s:g}s)")
            _, pending = await asyncio.wait(tasks, timeout=grace_period_s)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning(f"Cancelled {len(pending)} jobs still running after grace period")

        for task in (self._nudger, self._dispatcher):
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        self._dispatcher = None
        self._nudger = None
        if len(self._queue):
            logger.info(f"Scheduler stopped with {len(self._queue)} jobs still waiting")
        else:
            logger.info("Scheduler stopped")

    async def _nudge_loop(self) -> None:
        while True:
            await asyncio.sleep(self.nudge_interval_s)
            self._wakeup.set()

    async def _dispatch_loop(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            self._drain()

    def _drain(self) -> None:
        while (
            self._dispatching
            and len(self._processing) < self.job_concurrency
            and len(self._queue) > 0
        ):
            job = self._queue.dequeue_next()
            if job is None:
                break
            job.status = JobStatus.PROCESSING
            job.started_at = datetime.now()
            self._processing[job.id] = job
            self.peak_active = max(self.peak_active, len(self._processing))
            self._tasks[job.id] = asyncio.create_task(self._run_job(job), name=f"job-{job.id}")
            logger.info(f"Dispatched {job.id} (priority={job.priority}, attempt {job.attempts + 1}/{job.max_attempts})")
            self._publish(JobStarted(job_id=job.id, session_id=job.session_id, attempt=job.attempts + 1))

    # --- Submission ---

    def submit(
        self, payload: JobPayload, priority: int = 0, max_attempts: Optional[int] = None
    ) -> JobDescriptor:
        """Queue a job and wake the dispatcher.

        Raises:
            SchedulerClosed: scheduler is shutting down
            BackpressureRejected: queue is full
        """
        if not self._accepting:
            raise SchedulerClosed("scheduler is not accepting new jobs")
        job = JobDescriptor(
            payload=payload,
            priority=priority,
            max_attempts=max_attempts or self.max_attempts,
        )
        self._queue.enqueue(job)
        self._index[job.id] = job
        self._done[job.id] = asyncio.Event()
        logger.info(
            f"Queued {job.id}: {job.file_count} files for {payload.parent_name!r} "
            f"(priority={priority}, session={payload.session_id or '-'})"
        )
        self._publish(JobQueued(job_id=job.id, session_id=job.session_id, priority=priority, file_count=job.file_count))
        self._wakeup.set()
        return job

    async def process_now(self, payload: JobPayload) -> JobOutcome:
        """Synchronous bypass: run the processor directly, outside the queue.

        Job-level errors propagate to the caller; nothing is retried.
        """
        if not self._accepting:
            raise SchedulerClosed("scheduler is not accepting new jobs")
        job = JobDescriptor(payload=payload, max_attempts=1, status=JobStatus.PROCESSING)
        try:
            return await self.processor.run(job)
        finally:
            job.release_files()

    # --- Job execution ---

    async def _run_job(self, job: JobDescriptor) -> None:
        try:
            outcome = await self.processor.run(job, should_cancel=lambda: job.cancel_requested)
        except asyncio.CancelledError:
            job.last_error = "cancelled during shutdown"
            self._finish(job, JobStatus.FAILED)
            raise
        except Exception as e:
            self._handle_failure(job, e)
        else:
            job.outcome = outcome
            self._finish(job, JobStatus.COMPLETED)
        finally:
            self._processing.pop(job.id, None)
            self._tasks.pop(job.id, None)
            self._wakeup.set()

    def _should_retry(self, job: JobDescriptor, error: Exception) -> bool:
        if job.cancel_requested or isinstance(error, (JobCancelled, AllFilesFailed)):
            return False
        if job.attempts >= job.max_attempts:
            return False
        if self.retry_policy == "all":
            return True
        return is_retryable(error)

    def _handle_failure(self, job: JobDescriptor, error: Exception) -> None:
        job.attempts += 1
        job.last_error = describe_error(error)
        if isinstance(error, AllFilesFailed) and error.outcome is not None:
            job.outcome = error.outcome

        if self._should_retry(job, error):
            logger.warning(
                f"Job {job.id} failed (attempt {job.attempts}/{job.max_attempts}), retrying: {job.last_error}"
            )
            self._processing.pop(job.id, None)
            self._queue.requeue_front(job)
            self._publish(JobRetrying(job_id=job.id, session_id=job.session_id, attempt=job.attempts, error=job.last_error))
            return

        logger.error(f"Job {job.id} failed after {job.attempts} attempts: {job.last_error}")
        self._finish(job, JobStatus.FAILED)

    def _finish(self, job: JobDescriptor, status: JobStatus) -> None:
        job.status = status
        job.finished_at = datetime.now()
        job.release_files()
        self._processing.pop(job.id, None)
        if status == JobStatus.COMPLETED:
            self._retain(self._completed, job)
            outcome = job.outcome or JobOutcome()
            self._publish(
                JobCompleted(
                    job_id=job.id,
                    session_id=job.session_id,
                    parent_id=outcome.parent_id,
                    succeeded=len(outcome.succeeded),
                    failed=len(outcome.failed),
                )
            )
        else:
            self._retain(self._failed, job)
            self._publish(JobFailed(job_id=job.id, session_id=job.session_id, error=job.last_error or ""))
        done = self._done.get(job.id)
        if done is not None:
            done.set()

    def _retain(self, finished: Deque[JobDescriptor], job: JobDescriptor) -> None:
        finished.append(job)
        while len(finished) > self._keep_finished:
            evicted = finished.popleft()
            self._index.pop(evicted.id, None)
            self._done.pop(evicted.id, None)

    def _publish(self, event) -> None:
        if self.events is not None:
            self.events.publish(event)

    # --- Cancellation ---

    def cancel(self, job_id: str) -> bool:
        """Cancel a job.

        Waiting jobs are withdrawn and failed immediately; processing jobs
        stop between file batches. Returns False for unknown or finished jobs.
        """
        job = self._queue.remove(job_id)
        if job is not None:
            job.cancel_requested = True
            job.last_error = str(JobCancelled("cancelled before dispatch"))
            self._finish(job, JobStatus.FAILED)
            logger.info(f"Cancelled waiting job {job_id}")
            return True
        job = self._processing.get(job_id)
        if job is not None:
            job.cancel_requested = True
            logger.info(f"Cancellation requested for processing job {job_id}")
            return True
        return False

    def cancel_session(self, session_id: str) -> int:
        """Cancel every waiting or processing job of a session."""
        ids = [job.id for job in self._queue.jobs(session_id)]
        ids += [job.id for job in self._processing.values() if job.session_id == session_id]
        return sum(1 for job_id in ids if self.cancel(job_id))

    # --- Lookup ---

    def get_job(self, job_id: str) -> Optional[JobDescriptor]:
        return self._index.get(job_id)

    async def wait(self, job_id: str, timeout: Optional[float] = None) -> JobDescriptor:
        """Wait until a job is terminal.

        Raises:
            KeyError: unknown job
            asyncio.TimeoutError: not finished within timeout
        """
        job = self._index.get(job_id)
        done = self._done.get(job_id)
        if job is None or done is None:
            raise KeyError(job_id)
        await asyncio.wait_for(done.wait(), timeout=timeout)
        return job

    async def join(self, timeout: Optional[float] = None) -> None:
        """Wait until no job is waiting or processing."""
        pending = [
            self._done[job_id]
            for job_id, job in self._index.items()
            if not job.is_terminal and job_id in self._done
        ]
        if pending:
            await asyncio.wait_for(asyncio.gather(*(e.wait() for e in pending)), timeout=timeout)

    # --- Stats ---

    @property
    def processing_count(self) -> int:
        return len(self._processing)

    def waiting_jobs(self, session_id: Optional[str] = None) -> List[JobDescriptor]:
        return self._queue.jobs(session_id)

    def get_stats(self) -> QueueStats:
        return QueueStats(
            waiting=self._queue.count(),
            active=len(self._processing),
            completed=len(self._completed),
            failed=len(self._failed),
        )

    def get_stats_for_session(self, session_id: str) -> SessionStats:
        waiting = self._queue.count(session_id)
        active = sum(1 for job in self._processing.values() if job.session_id == session_id)
        completed = sum(1 for job in self._completed if job.session_id == session_id)
        failed = sum(1 for job in self._failed if job.session_id == session_id)
        return SessionStats(
            session_id=session_id,
            waiting=waiting,
            active=active,
            completed=completed,
            failed=failed,
            total_jobs=waiting + active + completed + failed,
        )
