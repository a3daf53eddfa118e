"""Abstract interfaces (Protocol classes) for the Tenant Health Engine.

All services depend on these interfaces, not concrete implementations.
This enables dependency injection and makes services independently testable.

The ``I*Source`` interfaces are read-only ports onto collaborator data
(tenants, users, cases, campaigns, features, support tickets). Concrete
SQL implementations live in ``adapters/sources.py``; repository
implementations for the engine's own tables live in
``adapters/repositories.py``.
"""

import uuid
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from tenant_health.core.jobs import Job, JobKind
from tenant_health.core.types import (
    AssignmentStats,
    BenchmarkFilter,
    BenchmarkStats,
    CaseStats,
    HealthAssessment,
    TenantMetrics,
    TenantProfile,
    UserActivity,
)

# ---------------------------------------------------------------------------
# Collaborator sources
# ---------------------------------------------------------------------------


@runtime_checkable
class ITenantDirectory(Protocol):
    """Directory of tenants and their cohort attributes."""

    async def list_active_tenants(self) -> list[TenantProfile]:
        """Return every active tenant."""
        ...

    async def get_tenant(self, tenant_id: uuid.UUID) -> TenantProfile | None:
        """Return one tenant by id, active or not."""
        ...


@runtime_checkable
class IIdentitySource(Protocol):
    """User login activity per tenant."""

    async def count_users(self, tenant_id: uuid.UUID, since: datetime) -> UserActivity:
        """Count active users (logged in since ``since``) and all active accounts."""
        ...


@runtime_checkable
class ICaseSource(Protocol):
    """Case creation, closure and SLA outcomes per tenant."""

    async def get_case_stats(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> CaseStats:
        """Return case counts for the ``[start, end)`` window."""
        ...


@runtime_checkable
class ICampaignSource(Protocol):
    """Campaign and assignment completion per tenant."""

    async def get_assignment_stats(self, tenant_id: uuid.UUID) -> AssignmentStats:
        """Return active campaign and assignment completion counts."""
        ...


@runtime_checkable
class IFeatureAdoptionSource(Protocol):
    """Adopted-feature records per tenant."""

    async def count_adopted_features(self, tenant_id: uuid.UUID) -> int:
        """Return the number of distinct tracked features the tenant has adopted."""
        ...


@runtime_checkable
class ISupportTicketSource(Protocol):
    """Support ticket volume per tenant."""

    async def count_tickets(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> int:
        """Return the number of tickets opened in ``[start, end)``."""
        ...


@runtime_checkable
class ITenantActivitySource(Protocol):
    """Most recent user-visible activity per tenant."""

    async def last_activity(self, tenant_ids: list[uuid.UUID]) -> dict[uuid.UUID, datetime]:
        """Return the latest activity timestamp of each tenant that has any."""
        ...


@runtime_checkable
class IMetricsReader(Protocol):
    """Reads every raw count for one tenant and window."""

    async def read(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> TenantMetrics:
        """Read all usage counts concurrently."""
        ...


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@runtime_checkable
class IUsageMetricsRepository(Protocol):
    """Repository interface for UsageMetricSnapshot persistence."""

    async def upsert(
        self, tenant_id: uuid.UUID, metric_date: date, metrics: TenantMetrics
    ) -> Any:
        """Insert or overwrite the snapshot for (tenant_id, metric_date)."""
        ...

    async def list_since(self, tenant_id: uuid.UUID, since: date) -> list[Any]:
        """List snapshots on or after ``since``, oldest first."""
        ...


@runtime_checkable
class IHealthScoreRepository(Protocol):
    """Repository interface for HealthScoreRecord persistence (append-only)."""

    async def create(
        self,
        tenant_id: uuid.UUID,
        calculated_at: datetime,
        assessment: HealthAssessment,
    ) -> Any:
        """Append a new health score record."""
        ...

    async def get_latest(self, tenant_id: uuid.UUID) -> Any | None:
        """Return the most recent record by calculated_at."""
        ...

    async def list_since(self, tenant_id: uuid.UUID, since: datetime) -> list[Any]:
        """List records calculated at or after ``since``, oldest first."""
        ...

    async def list_latest_per_tenant(
        self,
        tenant_ids: list[uuid.UUID] | None = None,
        risk_level: str | None = None,
    ) -> list[Any]:
        """Return the most recent record of each tenant.

        The risk filter applies to each tenant's latest record only.
        """
        ...


@runtime_checkable
class IPeerBenchmarkRepository(Protocol):
    """Repository interface for PeerBenchmark persistence."""

    async def upsert(
        self,
        metric_name: str,
        benchmark_filter: BenchmarkFilter,
        calculated_at: date,
        stats: BenchmarkStats,
    ) -> Any:
        """Insert or overwrite the aggregate for (metric, filter, day)."""
        ...

    async def get_latest(
        self, metric_name: str, benchmark_filter: BenchmarkFilter
    ) -> Any | None:
        """Return the most recent aggregate matching the filter exactly."""
        ...


# ---------------------------------------------------------------------------
# Events and jobs
# ---------------------------------------------------------------------------


@runtime_checkable
class IEventPublisher(Protocol):
    """Publishes domain events. Delivery failures must not affect callers' data."""

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        """Publish an event to the given topic."""
        ...


@runtime_checkable
class IJobQueue(Protocol):
    """Background job queue with retry and bounded retention."""

    async def enqueue(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        """Accept a job for background execution and return it immediately."""
        ...

    async def get_job(self, job_id: str) -> Job | None:
        """Return the job's current status, or None if unknown or disposed."""
        ...
