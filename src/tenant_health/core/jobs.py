"""Runtime-independent job model for batch recalculation.

A Job is a {kind, payload} unit of work carrying its own retry policy.
The Celery runtime (adapters/celery_app.py) executes jobs; services
never depend on a particular runtime.
"""

import enum
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class JobKind(str, enum.Enum):
    """The three kinds of batch work the engine schedules."""

    SINGLE_TENANT = "health.single_tenant"
    ALL_TENANTS = "health.all_tenants"
    NIGHTLY_BENCHMARK = "benchmark.nightly"


class JobState(str, enum.Enum):
    """Lifecycle state of a queued job.

    Transitions:
        waiting -> active -> completed
        waiting -> active -> delayed -> active ... -> failed
    """

    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit with exponential backoff.

    The delay before attempt ``n + 1`` is ``base_delay_seconds * 2 ** (n - 1)``,
    so with a 5s base the waits are 5s then 10s.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be non-negative")

    def should_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def backoff_seconds(self, attempts_made: int) -> float:
        """Delay to wait after ``attempts_made`` failed attempts."""
        return self.base_delay_seconds * (2 ** max(0, attempts_made - 1))


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Job:
    """A unit of batch work and its observable status.

    Attributes:
        kind: What the job does.
        payload: JSON-serialisable arguments (e.g. tenant_id, collect_metrics).
        retry_policy: Attempt limit and backoff for this job.
        state: Current lifecycle state.
        progress: 0-100, reported by the handler.
        attempts: Attempts started so far.
        result: Handler return value once completed.
        failed_reason: Last error message, if any attempt failed.
    """

    kind: JobKind
    payload: dict[str, Any]
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: JobState = JobState.WAITING
    progress: int = 0
    attempts: int = 0
    result: dict[str, Any] | None = None
    failed_reason: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)


# Reports progress (0-100) for the job currently executing.
ProgressReporter = Callable[[int], Awaitable[None]]


def default_retry_policies(
    max_attempts: int = 3,
    single_tenant_backoff_seconds: float = 5.0,
    batch_backoff_seconds: float = 10.0,
) -> dict[JobKind, RetryPolicy]:
    """Retry policy per job kind: single-tenant jobs back off faster than batches."""
    batch = RetryPolicy(max_attempts=max_attempts, base_delay_seconds=batch_backoff_seconds)
    return {
        JobKind.SINGLE_TENANT: RetryPolicy(
            max_attempts=max_attempts, base_delay_seconds=single_tenant_backoff_seconds
        ),
        JobKind.ALL_TENANTS: batch,
        JobKind.NIGHTLY_BENCHMARK: batch,
    }
