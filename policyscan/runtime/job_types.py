"""Job type definitions for the batch query pool.

This module defines the core data structures for the job-based execution model:
- JobState: Lifecycle states of a single job
- Job: Mutable record of one in-flight unit of work
- PoolConfig: Immutable pool limits for one batch
- TargetResult: Typed terminal outcome for one target
- PolicyReport / PolicyRecord: Value produced by a policy query
- QueryContext / Credential: Per-invocation context handed to query functions
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class JobState(Enum):
    """States a job moves through while tracked by the pool."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Whether the job has left the active set for good."""
        return self not in (JobState.PENDING, JobState.RUNNING)


class FailureKind(Enum):
    """Why a target did not produce a successful result."""

    TIMEOUT = "timeout"
    QUERY_FAILURE = "query_failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PoolConfig:
    """Limits applied to one batch.

    Attributes:
        concurrency_limit: Maximum number of queries running at once.
        per_job_timeout: Seconds a running job may take before it is
            reclaimed. Zero or negative disables the check.
        poll_interval: Seconds slept between reap cycles while draining.
        max_outstanding: Optional ceiling on submitted-but-unreaped jobs.
            None keeps submission free of backpressure.
    """

    concurrency_limit: int = 32
    per_job_timeout: float = 120.0
    poll_interval: float = 0.2
    max_outstanding: Optional[int] = None

    def __post_init__(self) -> None:
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.max_outstanding is not None and self.max_outstanding < 1:
            raise ValueError("max_outstanding must be >= 1 when set")


@dataclass(frozen=True)
class Credential:
    """Alternate credentials for remote targets."""

    username: str
    password: str = field(repr=False, default="")


@dataclass(frozen=True)
class QueryContext:
    """Context passed to a query function at submission time.

    Attributes:
        credential: Alternate credential, None for the local machine.
        cancel_event: Set when the pool abandons the job. Long-running
            queries should check it and stop early.
        timeout: Per-job timeout in seconds (<= 0 means unbounded).
    """

    credential: Optional[Credential] = None
    cancel_event: threading.Event = field(default_factory=threading.Event, compare=False)
    timeout: float = 0.0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class Job:
    """One in-flight unit of work tied to a single target.

    ``start_time`` and the RUNNING transition are written by the worker
    thread under the pool lock; everything else is written by the thread
    that owns the pool.
    """

    job_id: int
    target: str
    context: QueryContext
    state: JobState = JobState.PENDING
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    worker_id: Optional[str] = None
    handle: Optional[Future] = None
    value: Any = None
    error: Optional[str] = None

    @property
    def execution_time(self) -> float:
        if self.start_time is None:
            return 0.0
        if self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot of batch progress, recomputed every reap cycle."""

    submitted: int
    completed: int

    @property
    def pending(self) -> int:
        return self.submitted - self.completed

    @property
    def percent(self) -> float:
        if self.submitted == 0:
            return 100.0
        return 100.0 * self.completed / self.submitted


@dataclass(frozen=True)
class PolicyRecord:
    """One Group Policy object as reported for a host.

    Attributes:
        name: Display name of the GPO.
        applied: False when the GPO was filtered out.
        reason: Filtering reason for GPOs that were not applied.
    """

    name: str
    applied: bool = True
    reason: Optional[str] = None


@dataclass(frozen=True)
class PolicyReport:
    """Effective policy configuration of one host."""

    target: str
    subject_dn: Optional[str] = None
    applied_from: Optional[str] = None
    domain: Optional[str] = None
    last_applied: Optional[str] = None
    policies: Tuple[PolicyRecord, ...] = ()

    @property
    def applied_policies(self) -> Tuple[PolicyRecord, ...]:
        return tuple(p for p in self.policies if p.applied)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to JSON-serializable dictionary."""
        return {
            "target": self.target,
            "subject_dn": self.subject_dn,
            "applied_from": self.applied_from,
            "domain": self.domain,
            "last_applied": self.last_applied,
            "policies": [
                {"name": p.name, "applied": p.applied, "reason": p.reason}
                for p in self.policies
            ],
        }


@dataclass(frozen=True)
class TargetResult:
    """Terminal outcome for one target.

    Exactly one TargetResult is produced per submitted target. ``success``
    distinguishes a failed query from one that completed with an empty value.

    Attributes:
        target: Target the job was submitted for.
        job_id: Batch-unique job id.
        success: Whether the query returned normally.
        value: Return value of the query function (if successful).
        error: Error message (if failed).
        failure: Failure category (if failed).
        execution_time: Seconds between job start and completion.
    """

    target: str
    job_id: int
    success: bool
    value: Any = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None
    execution_time: float = 0.0

    @classmethod
    def from_job(cls, job: Job) -> "TargetResult":
        """Build the terminal result for a job that has left the active set."""
        if job.state is JobState.COMPLETED:
            return cls(
                target=job.target,
                job_id=job.job_id,
                success=True,
                value=job.value,
                execution_time=job.execution_time,
            )

        failure = {
            JobState.TIMED_OUT: FailureKind.TIMEOUT,
            JobState.FAILED: FailureKind.QUERY_FAILURE,
            JobState.CANCELLED: FailureKind.CANCELLED,
        }.get(job.state)
        if failure is None:
            raise ValueError(f"Job {job.job_id} is still {job.state.value}")

        return cls(
            target=job.target,
            job_id=job.job_id,
            success=False,
            error=job.error,
            failure=failure,
            execution_time=job.execution_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to JSON-serializable dictionary."""
        value = self.value
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        return {
            "target": self.target,
            "job_id": self.job_id,
            "success": self.success,
            "value": value,
            "error": self.error,
            "failure": self.failure.value if self.failure else None,
            "execution_time": self.execution_time,
        }
