"""Reaping of finished and overdue jobs.

The Reaper polls tracked jobs, harvests completed ones, evicts the ones
that outlived their timeout, and reports batch progress to an optional
observer. The tracked-jobs list is owned by the caller's thread; the reaper
iterates over a snapshot and removes entries from the live list.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from policyscan.runtime.job_types import BatchProgress, Job, JobState, TargetResult
from policyscan.runtime.protocols import ProgressObserver
from policyscan.runtime.worker_pool import WorkerPool

logger = logging.getLogger("policyscan.runtime.reaper")


@dataclass
class ReapOutcome:
    """Results harvested by one reap call.

    Attributes:
        results: Terminal results harvested, in harvest order.
        still_pending: True if tracked jobs remain.
    """

    results: List[TargetResult] = field(default_factory=list)
    still_pending: bool = False


class Reaper:
    """Harvests terminal jobs from a WorkerPool.

    Attributes:
        pool: Pool whose jobs are polled and cancelled.
        observer: Optional progress observer.
    """

    def __init__(
        self,
        pool: WorkerPool,
        observer: Optional[ProgressObserver] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the reaper.

        Args:
            pool: Pool to reap from.
            observer: Called with a BatchProgress snapshot every cycle.
            clock: Monotonic clock, must match the pool's clock.
            sleep: Sleep function used between cycles while waiting.
        """
        self.pool = pool
        self.observer = observer
        self._clock = clock
        self._sleep = sleep

    def reap(
        self,
        jobs: List[Job],
        timeout: Optional[float] = None,
        wait: bool = False,
    ) -> ReapOutcome:
        """Harvest finished jobs and evict overdue ones.

        Args:
            jobs: Live list of tracked jobs. Harvested jobs are removed.
            timeout: Per-job timeout in seconds. Defaults to the pool's
                ``per_job_timeout``; ``<= 0`` disables eviction.
            wait: Keep cycling every ``poll_interval`` until no job remains.

        Returns:
            ReapOutcome: Harvested results and whether jobs remain.
        """
        outcome = ReapOutcome()
        for result in self._cycles(jobs, timeout, wait):
            outcome.results.append(result)
        outcome.still_pending = bool(jobs)
        return outcome

    def drain(self, jobs: List[Job], timeout: Optional[float] = None) -> Iterator[TargetResult]:
        """Block until every tracked job is gone, yielding results as harvested.

        This is the streaming form of ``reap(jobs, wait=True)``.
        """
        return self._cycles(jobs, timeout, wait=True)

    def _cycles(
        self,
        jobs: List[Job],
        timeout: Optional[float],
        wait: bool,
    ) -> Iterator[TargetResult]:
        if timeout is None:
            timeout = self.pool.config.per_job_timeout

        while True:
            harvested = self._reap_once(jobs, timeout)
            self._report_progress(jobs)
            yield from harvested

            if not (wait and jobs):
                return
            self._sleep(self.pool.config.poll_interval)

    def _reap_once(self, jobs: List[Job], timeout: float) -> List[TargetResult]:
        harvested: List[TargetResult] = []

        for job in list(jobs):
            state = self.pool.poll(job)

            if state is JobState.RUNNING and self._is_overdue(job, timeout):
                self.pool.cancel(job, state=JobState.TIMED_OUT)
                job.error = f"Query timed out after {timeout:g}s"
                state = job.state

            if not state.is_terminal:
                continue

            jobs.remove(job)
            result = TargetResult.from_job(job)
            if not result.success:
                logger.warning("%s: %s", job.target, result.error)
            else:
                logger.debug(
                    "%s: completed in %.2fs (job %d)",
                    job.target,
                    result.execution_time,
                    job.job_id,
                )
            harvested.append(result)

        return harvested

    def _is_overdue(self, job: Job, timeout: float) -> bool:
        if timeout <= 0 or job.start_time is None:
            return False
        return self._clock() - job.start_time >= timeout

    def _report_progress(self, jobs: List[Job]) -> None:
        if self.observer is None:
            return
        submitted = self.pool.submitted_count
        try:
            self.observer(BatchProgress(submitted=submitted, completed=submitted - len(jobs)))
        except Exception as e:  # noqa: BLE001 - observers never affect control flow
            logger.debug("Progress observer error: %s", e)
