"""Per-batch driver loop.

The Dispatcher submits one job per target, reaps after every submission so
finished work streams out while later targets are still being queued, and
drains the pool once the last target is submitted.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Iterator, List, Optional

from policyscan.runtime.identity import LocalIdentityResolver
from policyscan.runtime.job_types import Credential, Job, PoolConfig, TargetResult
from policyscan.runtime.protocols import ProgressObserver, QueryFunction
from policyscan.runtime.reaper import Reaper
from policyscan.runtime.worker_pool import WorkerPool

logger = logging.getLogger("policyscan.runtime.dispatcher")


class Dispatcher:
    """Runs one batch of targets through a WorkerPool.

    Submission never blocks on pool saturation unless ``max_outstanding`` is
    configured; in that case the dispatcher reaps until the outstanding count
    drops below the ceiling before submitting the next target.

    Usage:
        dispatcher = Dispatcher(PoolConfig(concurrency_limit=8), query)
        for result in dispatcher.run_batch(["host01", "host02"]):
            print(result.target, result.success)

    Attributes:
        config: Pool limits.
        query_fn: Query executed for every target.
        credential: Alternate credential for remote targets.
        observer: Optional progress observer.
    """

    def __init__(
        self,
        config: PoolConfig,
        query_fn: QueryFunction,
        credential: Optional[Credential] = None,
        observer: Optional[ProgressObserver] = None,
        identity_factory: Callable[[], LocalIdentityResolver] = LocalIdentityResolver,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            config: Pool limits for each batch.
            query_fn: Query function run once per target.
            credential: Credential passed to queries against remote targets.
            observer: Progress observer called on every reap cycle.
            identity_factory: Creates the per-batch local identity resolver.
            clock: Monotonic clock shared by pool and reaper.
            sleep: Sleep function used while draining.
        """
        self.config = config
        self.query_fn = query_fn
        self.credential = credential
        self.observer = observer
        self._identity_factory = identity_factory
        self._clock = clock
        self._sleep = sleep

    def run_batch(self, targets: Iterable[str]) -> Iterator[TargetResult]:
        """Query every target and yield results in completion order.

        The returned generator is single-pass. Closing it early cancels the
        jobs still in flight.

        Args:
            targets: Hosts to query, submitted in order.

        Yields:
            TargetResult: Exactly one per target.
        """
        identity = self._identity_factory()
        pool = WorkerPool(self.config, clock=self._clock)
        reaper = Reaper(pool, observer=self.observer, clock=self._clock, sleep=self._sleep)
        jobs: List[Job] = []
        start_time = time.time()
        succeeded = failed = 0

        logger.info(
            "Starting batch (throttle=%d, timeout=%gs)",
            self.config.concurrency_limit,
            self.config.per_job_timeout,
        )

        try:
            for result in self._submit_all(targets, identity, pool, reaper, jobs):
                if result.success:
                    succeeded += 1
                else:
                    failed += 1
                yield result

        finally:
            if jobs:
                logger.info("Batch interrupted, cancelling %d job(s)", len(jobs))
                for job in jobs:
                    pool.cancel(job)
                jobs.clear()
            pool.shutdown(wait=False)
            logger.info(
                "Batch finished in %.2fs: %d succeeded, %d failed",
                time.time() - start_time,
                succeeded,
                failed,
            )

    def _submit_all(
        self,
        targets: Iterable[str],
        identity: LocalIdentityResolver,
        pool: WorkerPool,
        reaper: Reaper,
        jobs: List[Job],
    ) -> Iterator[TargetResult]:
        for target in targets:
            yield from self._throttle(reaper, jobs)

            credential = None if identity.is_local(target) else self.credential
            jobs.append(pool.submit(target, self.query_fn, credential=credential))

            yield from reaper.reap(jobs).results

        logger.debug("All %d targets submitted, draining", pool.submitted_count)
        yield from reaper.drain(jobs)

    def _throttle(self, reaper: Reaper, jobs: List[Job]) -> Iterator[TargetResult]:
        limit = self.config.max_outstanding
        if limit is None:
            return
        while len(jobs) >= limit:
            yield from reaper.reap(jobs).results
            if len(jobs) >= limit:
                self._sleep(self.config.poll_interval)

