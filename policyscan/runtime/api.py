"""Library-facing helpers for running a batch.

The CLI builds a ``Dispatcher`` directly. This module provides a slim
convenience wrapper so library users can run a batch with a custom query
function in a single call.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from policyscan.runtime.dispatcher import Dispatcher
from policyscan.runtime.job_types import Credential, PoolConfig, TargetResult
from policyscan.runtime.protocols import ProgressObserver, QueryFunction


def run_batch(
    targets: Iterable[str],
    query_fn: QueryFunction,
    config: Optional[PoolConfig] = None,
    credential: Optional[Credential] = None,
    observer: Optional[ProgressObserver] = None,
) -> Iterator[TargetResult]:
    """Query every target and stream results in completion order.

    Args:
        targets: Hosts to query.
        query_fn: Function called as ``query_fn(target, context)`` on a
            worker thread for each target.
        config: Pool limits. Defaults to ``PoolConfig()``.
        credential: Alternate credential for remote targets.
        observer: Optional progress observer.

    Returns:
        Lazy single-pass iterator yielding one TargetResult per target.
    """
    dispatcher = Dispatcher(
        config or PoolConfig(),
        query_fn,
        credential=credential,
        observer=observer,
    )
    return dispatcher.run_batch(targets)


__all__ = ["run_batch"]
