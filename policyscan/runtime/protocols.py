"""
Protocol definitions for runtime components.

Protocols provide abstract interfaces for dependency injection,
keeping the pool free of any presentation or query specifics.
"""

from typing import Any, Protocol

from policyscan.runtime.job_types import BatchProgress, QueryContext


class QueryFunction(Protocol):
    """
    Callable issuing one remote query.

    Invocations run in parallel on worker threads and must not share
    mutable state. Raising marks the target as failed; any return value,
    including an empty one, marks it as successful.

    Example:
        def query(target: str, context: QueryContext) -> PolicyReport:
            ...
    """

    def __call__(self, target: str, context: QueryContext) -> Any:
        ...


class ProgressObserver(Protocol):
    """
    Receives a BatchProgress snapshot on every reap cycle.

    Observers are informational only and must not raise.
    """

    def __call__(self, progress: BatchProgress) -> None:
        ...
