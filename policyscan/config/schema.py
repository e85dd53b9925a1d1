"""Configuration schema definitions using Pydantic for validation.

Scan settings are validated here so range errors surface before any
host is contacted.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from policyscan.runtime.job_types import PoolConfig


class ScanSettings(BaseModel):
    """Settings for one batch of policy queries.

    Attributes:
        throttle_limit: Maximum number of hosts queried at once.
        timeout: Seconds a single host query may run before it is reclaimed.
        show_progress: Whether to render a progress bar.
        poll_interval: Seconds between reap cycles while draining.
        max_outstanding: Optional ceiling on submitted-but-unreaped jobs.
        scope: gpresult scope, ``computer`` or ``user``.
        markers: Policy name fragments reported per host.
    """

    throttle_limit: int = Field(default=32, ge=1, le=65535)
    timeout: int = Field(default=120, ge=1, le=65535)
    show_progress: bool = False
    poll_interval: float = Field(default=0.2, gt=0.0, le=60.0)
    max_outstanding: Optional[int] = Field(default=None, ge=1)
    scope: str = "computer"
    markers: List[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @field_validator("scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        """Ensure scope is one gpresult understands."""
        normalized = v.strip().lower()
        if normalized not in {"computer", "user"}:
            raise ValueError(f"Invalid scope: {v}. Must be 'computer' or 'user'")
        return normalized

    @field_validator("markers")
    @classmethod
    def validate_markers(cls, v: List[str]) -> List[str]:
        """Drop blank marker entries."""
        return [m.strip() for m in v if m and m.strip()]

    def to_pool_config(self) -> PoolConfig:
        """Build the immutable pool configuration for a batch."""
        return PoolConfig(
            concurrency_limit=self.throttle_limit,
            per_job_timeout=float(self.timeout),
            poll_interval=self.poll_interval,
            max_outstanding=self.max_outstanding,
        )
