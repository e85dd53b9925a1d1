"""Rich-based progress reporting for batch execution.

The ProgressManager is a progress observer: the reaper calls it with a
BatchProgress snapshot every cycle and it renders a single progress bar.
"""

# Progress manager shields rendering errors so batches continue even if the UI fails.


import logging
import threading
from contextlib import contextmanager
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from policyscan.runtime.job_types import BatchProgress

logger = logging.getLogger("policyscan.runtime.progress")


class ProgressManager:
    """Rich-based batch progress display.

    Features:
    - Single progress bar tracking completed vs submitted jobs
    - Thread-safe updates
    - Graceful degradation if disabled
    """

    def __init__(
        self,
        enabled: bool = True,
        console: Optional[Console] = None,
        description: str = "Querying hosts",
    ) -> None:
        """Initialize progress manager.

        Args:
            enabled: Enable/disable progress display.
            console: Rich console (creates new if None).
            description: Label shown next to the bar.
        """
        self.enabled = enabled
        self.description = description
        # Use stderr for Console to align with logging conventions
        self.console = console or Console(stderr=True)

        self._lock = threading.Lock()
        self._progress: Optional[Progress] = None
        self._task_id: Optional[TaskID] = None
        self._last: Optional[BatchProgress] = None

        if self.enabled:
            self._init_progress_display()

    def _init_progress_display(self) -> None:
        """Initialize Rich progress bar."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            MofNCompleteColumn(),
            TextColumn("•"),
            TimeElapsedColumn(),
            console=self.console,
            expand=False,
        )
        self._task_id = self._progress.add_task(self.description, total=0)

    @property
    def last(self) -> Optional[BatchProgress]:
        """Most recent snapshot received."""
        return self._last

    def __call__(self, progress: BatchProgress) -> None:
        """Record a progress snapshot and refresh the bar.

        Args:
            progress: Snapshot from the reaper.
        """
        with self._lock:
            self._last = progress
            if not self.enabled or self._progress is None or self._task_id is None:
                return
            try:
                self._progress.update(
                    self._task_id,
                    total=progress.submitted,
                    completed=progress.completed,
                    description=f"{self.description} ({progress.pending} pending)",
                )
            except Exception as e:
                logger.debug("Progress update error: %s", e)

    @contextmanager
    def live_display(self):
        """Context manager for live progress display.

        Yields:
            ProgressManager: Self for chaining.
        """
        if not self.enabled or not self._progress:
            yield self
            return

        try:
            self._progress.start()
        except Exception as e:
            logger.error("Progress display error: %s", e)
            yield self
            return

        try:
            yield self
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop the progress display."""
        if self._progress:
            try:
                self._progress.stop()
            except Exception as e:
                logger.debug("Progress stop error: %s", e)
