"""Exception hierarchy for policyscan.

Per-job failures never propagate out of the dispatcher; they are turned into
failed ``TargetResult`` records. The classes below are raised only for
misuse of the pool or for configuration problems.
"""


class PolicyScanError(Exception):
    """Base class for all policyscan errors."""


class PoolError(PolicyScanError):
    """Raised when the worker pool is used outside its contract."""


class PoolClosedError(PoolError):
    """Raised when a job is submitted to a pool that has been shut down."""


class CapacityExceeded(PoolError):
    """Raised when a submission would exceed the outstanding-job ceiling.

    Attributes:
        outstanding: Number of submitted jobs not yet reaped.
        limit: Configured ceiling.
    """

    def __init__(self, outstanding: int, limit: int) -> None:
        super().__init__(
            f"{outstanding} jobs outstanding, limit is {limit}; reap before submitting"
        )
        self.outstanding = outstanding
        self.limit = limit


class QueryFailure(PolicyScanError):
    """Raised by a query function when the remote query itself failed.

    Attributes:
        target: Host the query was issued against.
        exit_code: Exit code of the underlying command, if any.
    """

    def __init__(self, target: str, message: str, exit_code=None) -> None:
        super().__init__(message)
        self.target = target
        self.exit_code = exit_code


class ConfigError(PolicyScanError):
    """Raised when scan configuration cannot be loaded or validated."""
