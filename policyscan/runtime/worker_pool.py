"""Thread-based worker pool for remote queries.

This module provides WorkerPool, a bounded-concurrency pool that runs one
query function invocation per target on a ThreadPoolExecutor.

Key features:
- Zero-overhead design: executor created on first admission
- Admission capped at ``concurrency_limit`` by the pool's own slots
- Non-blocking poll: failures are captured on the job, never raised
- Best-effort cancellation with cooperative cancel events
- Abandoned threads never block queued work: the executor is replaced
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Deque, Dict, Optional, Set, Tuple

from policyscan.runtime.errors import CapacityExceeded, PoolClosedError
from policyscan.runtime.job_types import Credential, Job, JobState, PoolConfig, QueryContext
from policyscan.runtime.protocols import QueryFunction

logger = logging.getLogger("policyscan.runtime.worker_pool")


class WorkerPool:
    """Bounded-concurrency executor for query jobs.

    Jobs are accepted without blocking. The pool keeps a FIFO of jobs waiting
    for a slot and hands a job to the executor only when one of its
    ``concurrency_limit`` slots is free. A job only becomes RUNNING, and only
    starts its timeout clock, once a worker thread picks it up.

    Cancelling a running job frees its slot at once. The query may ignore
    the cancel event and keep its thread; such a thread is abandoned and the
    executor it belongs to is retired, so admitted work always gets a fresh
    thread.

    Usage:
        with WorkerPool(PoolConfig(concurrency_limit=4)) as pool:
            job = pool.submit("host01", query)
            while pool.poll(job) is JobState.RUNNING:
                time.sleep(0.1)

    Attributes:
        config: Pool limits.
        name: Name of the pool for logging.
    """

    def __init__(
        self,
        config: PoolConfig,
        name: str = "WorkerPool",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the worker pool.

        Args:
            config: Pool limits for this batch.
            name: Name of the pool for logging and worker thread names.
            clock: Monotonic clock used for job start times.
        """
        self.config = config
        self.name = name
        self._clock = clock

        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        self._job_ids = itertools.count(1)
        self._submitted = 0
        self._outstanding: Dict[int, Job] = {}

        # Guards slots, the waiting queue and state transitions shared with
        # worker threads
        self._lock = threading.Lock()
        self._waiting: Deque[Tuple[Job, QueryFunction]] = deque()
        self._slot_holders: Set[int] = set()
        self._abandoned = 0

        logger.debug(
            "%s initialized with concurrency_limit=%d", self.name, config.concurrency_limit
        )

    @property
    def submitted_count(self) -> int:
        """Number of jobs submitted over the pool's lifetime."""
        return self._submitted

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.concurrency_limit,
                thread_name_prefix=self.name,
            )
            logger.info(
                "%s: Thread pool created with %d workers",
                self.name,
                self.config.concurrency_limit,
            )
        return self._executor

    def _retire_executor(self) -> None:
        """Stop admitting work to the current executor. Caller holds the lock."""
        if self._executor is None:
            return
        self._executor.shutdown(wait=False)
        self._executor = None
        logger.debug(
            "%s: Retired executor, %d abandoned thread(s) so far", self.name, self._abandoned
        )

    def _admit_waiting(self) -> None:
        """Start queued jobs while slots are free. Caller holds the lock."""
        while (
            not self._closed
            and self._waiting
            and len(self._slot_holders) < self.config.concurrency_limit
        ):
            job, query_fn = self._waiting.popleft()
            self._slot_holders.add(job.job_id)
            job.handle = self._ensure_executor().submit(self._execute, job, query_fn)

    def submit(
        self,
        target: str,
        query_fn: QueryFunction,
        credential: Optional[Credential] = None,
    ) -> Job:
        """Submit a query against ``target``.

        Args:
            target: Host to query.
            query_fn: Function executed on a worker thread.
            credential: Alternate credential handed to the query function.

        Returns:
            Job: The tracking record for the new job.

        Raises:
            PoolClosedError: If the pool has been shut down.
            CapacityExceeded: If ``max_outstanding`` is set and already reached.
        """
        if self._closed:
            raise PoolClosedError(f"{self.name} is shut down, cannot submit new jobs")

        limit = self.config.max_outstanding
        if limit is not None and len(self._outstanding) >= limit:
            raise CapacityExceeded(len(self._outstanding), limit)

        job = Job(
            job_id=next(self._job_ids),
            target=target,
            context=QueryContext(
                credential=credential,
                timeout=self.config.per_job_timeout,
            ),
        )
        self._outstanding[job.job_id] = job
        self._submitted += 1

        with self._lock:
            self._waiting.append((job, query_fn))
            self._admit_waiting()

        logger.debug("%s: Submitted job %d for %s", self.name, job.job_id, target)
        return job

    def _execute(self, job: Job, query_fn: QueryFunction) -> Any:
        """Run the query on a worker thread."""
        with self._lock:
            if job.state is not JobState.PENDING:
                # Abandoned before a worker picked it up
                return None
            job.start_time = self._clock()
            job.worker_id = threading.current_thread().name
            job.state = JobState.RUNNING

        try:
            return query_fn(job.target, job.context)
        finally:
            with self._lock:
                self._release_slot(job)

    def _release_slot(self, job: Job) -> None:
        """Free the job's slot and admit waiting work. Caller holds the lock."""
        if job.job_id in self._slot_holders:
            self._slot_holders.discard(job.job_id)
            self._admit_waiting()
        if job.end_time is None and job.start_time is not None:
            job.end_time = self._clock()

    def poll(self, job: Job) -> JobState:
        """Return the job's state without blocking.

        When the underlying execution has finished, its value or error is
        stored on the job and the job becomes COMPLETED or FAILED.

        Args:
            job: Job to check.

        Returns:
            JobState: Current state of the job.
        """
        if job.state.is_terminal:
            return job.state

        future: Optional[Future] = job.handle
        if future is None or not future.done():
            return job.state

        if future.cancelled():
            job.state = JobState.CANCELLED
            job.error = "Job cancelled before it started"
        else:
            error = future.exception()
            if error is None:
                job.value = future.result()
                job.state = JobState.COMPLETED
            else:
                job.error = str(error) or type(error).__name__
                job.state = JobState.FAILED

        job.handle = None
        self._outstanding.pop(job.job_id, None)
        return job.state

    def cancel(self, job: Job, state: JobState = JobState.CANCELLED) -> None:
        """Abandon a job and free its slot.

        The job's cancel event is set so cooperative query functions can stop;
        the remote operation itself may keep running. A job that was already
        running leaves its thread behind and the current executor is retired.

        Args:
            job: Job to abandon.
            state: Terminal state to record (CANCELLED or TIMED_OUT).
        """
        job.context.cancel_event.set()

        with self._lock:
            if job.state.is_terminal:
                return
            was_running = job.start_time is not None and job.end_time is None
            job.state = state
            if job.handle is not None:
                job.handle.cancel()
                job.handle = None
            else:
                self._waiting = deque(
                    entry for entry in self._waiting if entry[0] is not job
                )
            if was_running:
                self._abandoned += 1
                self._retire_executor()
            self._release_slot(job)

        self._outstanding.pop(job.job_id, None)
        logger.debug("%s: Cancelled job %d (%s)", self.name, job.job_id, state.value)

    def active_count(self) -> int:
        """Get number of jobs currently holding a slot."""
        with self._lock:
            return len(self._slot_holders)

    def abandoned_count(self) -> int:
        """Get number of cancelled jobs whose threads were left running."""
        with self._lock:
            return self._abandoned

    def outstanding_count(self) -> int:
        """Get number of submitted jobs that have not reached a terminal state."""
        return len(self._outstanding)

    def shutdown(self, wait: bool = False) -> None:
        """Shutdown the pool and release resources.

        Jobs still outstanding are cancelled. Abandoned threads are never
        waited for.

        Args:
            wait: Whether to wait for the current executor's threads to finish.
        """
        if self._closed:
            return
        self._closed = True

        for job in list(self._outstanding.values()):
            self.cancel(job)

        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            logger.debug("%s shutting down (wait=%s)", self.name, wait)
            executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "WorkerPool":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.shutdown(wait=False)
