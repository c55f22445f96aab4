"""In-process priority queue for waiting jobs.

Ordering:
    1. Retried jobs (requeued at the front), FIFO among themselves
    2. Higher priority first
    3. Earlier submission first (monotonic sequence, stable)

Not thread-safe: it is owned by the scheduler and only touched from the
event loop.
"""

import heapq
import itertools
from typing import Dict, List, Optional, Tuple

from ..errors import BackpressureRejected
from .models import JobDescriptor, JobStatus

# Heap entry: (lane, -priority, sequence, job_id)
_Entry = Tuple[int, int, int, str]

_FRONT_LANE = 0
_NORMAL_LANE = 1


class PriorityJobQueue:
    """Heap-backed queue of ``JobDescriptor`` objects.

    Args:
        max_depth: Maximum number of waiting jobs; ``None`` or 0 = unbounded
    """

    def __init__(self, max_depth: Optional[int] = None):
        self.max_depth = max_depth or None
        self._heap: List[_Entry] = []
        # job_id -> (sequence of its live heap entry, job)
        self._jobs: Dict[str, Tuple[int, JobDescriptor]] = {}
        self._seq = itertools.count()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def enqueue(self, job: JobDescriptor) -> str:
        """Add a waiting job.

        Raises:
            BackpressureRejected: queue is at max_depth
            ValueError: job id already queued
        """
        if self.max_depth is not None and len(self._jobs) >= self.max_depth:
            raise BackpressureRejected(f"queue is full ({self.max_depth} waiting jobs)")
        self._push(job, _NORMAL_LANE)
        return job.id

    def requeue_front(self, job: JobDescriptor) -> None:
        """Put a retried job ahead of all other waiting work.

        Retries bypass max_depth: the job was already admitted once.
        """
        self._push(job, _FRONT_LANE)

    def _push(self, job: JobDescriptor, lane: int) -> None:
        if job.id in self._jobs:
            raise ValueError(f"job {job.id} is already queued")
        job.status = JobStatus.WAITING
        seq = next(self._seq)
        self._jobs[job.id] = (seq, job)
        heapq.heappush(self._heap, (lane, -job.priority, seq, job.id))

    def _is_live(self, entry: _Entry) -> bool:
        live = self._jobs.get(entry[3])
        return live is not None and live[0] == entry[2]

    def dequeue_next(self) -> Optional[JobDescriptor]:
        """Pop the next job to dispatch, or None if empty."""
        while self._heap:
            entry = heapq.heappop(self._heap)
            if self._is_live(entry):
                return self._jobs.pop(entry[3])[1]
            # Stale entry left behind by remove()
        return None

    def peek(self) -> Optional[JobDescriptor]:
        while self._heap:
            entry = self._heap[0]
            if self._is_live(entry):
                return self._jobs[entry[3]][1]
            heapq.heappop(self._heap)
        return None

    def remove(self, job_id: str) -> Optional[JobDescriptor]:
        """Withdraw a waiting job (lazy deletion from the heap)."""
        live = self._jobs.pop(job_id, None)
        return live[1] if live else None

    def jobs(self, session_id: Optional[str] = None) -> List[JobDescriptor]:
        """Waiting jobs in dispatch order, optionally filtered by session."""
        ordered = [self._jobs[e[3]][1] for e in sorted(self._heap) if self._is_live(e)]
        if session_id is None:
            return ordered
        return [job for job in ordered if job.session_id == session_id]

    def count(self, session_id: Optional[str] = None) -> int:
        if session_id is None:
            return len(self._jobs)
        return sum(1 for _, job in self._jobs.values() if job.session_id == session_id)
