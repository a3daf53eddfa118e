"""Test fixtures for tenant-health-engine.

In-memory fakes stand in for the SQLAlchemy repositories and the tenant
directory so services can be exercised without a database.
"""

import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest

from tenant_health.core.models import HealthScoreRecord, PeerBenchmark, UsageMetricSnapshot
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

FIXED_NOW = datetime(2026, 10, 18, 2, 0, tzinfo=UTC)
FIXED_TODAY = date(2026, 10, 18)


# ---------------------------------------------------------------------------
# In-memory fakes
# ---------------------------------------------------------------------------


class FakeTenantDirectory:
    """Tenant directory over a fixed list of profiles."""

    def __init__(self, tenants: list[TenantProfile] | None = None) -> None:
        self.tenants = list(tenants or [])

    async def list_active_tenants(self) -> list[TenantProfile]:
        return [t for t in self.tenants if t.is_active]

    async def get_tenant(self, tenant_id: uuid.UUID) -> TenantProfile | None:
        return next((t for t in self.tenants if t.id == tenant_id), None)


class FakeUsageMetricsRepository:
    """Snapshots keyed by (tenant_id, metric_date), last write wins."""

    def __init__(self) -> None:
        self.rows: dict[tuple[uuid.UUID, date], UsageMetricSnapshot] = {}

    async def upsert(
        self, tenant_id: uuid.UUID, metric_date: date, metrics: TenantMetrics
    ) -> UsageMetricSnapshot:
        snapshot = UsageMetricSnapshot(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            metric_date=metric_date,
            active_users=metrics.users.active_users,
            total_users=metrics.users.total_users,
            cases_created=metrics.cases.cases_created,
            cases_closed=metrics.cases.cases_closed,
            cases_on_time=metrics.cases.cases_on_time,
            cases_overdue=metrics.cases.cases_overdue,
            campaigns_active=metrics.assignments.campaigns_active,
            assignments_total=metrics.assignments.assignments_total,
            assignments_completed=metrics.assignments.assignments_completed,
            support_tickets=metrics.support_tickets,
        )
        self.rows[(tenant_id, metric_date)] = snapshot
        return snapshot

    async def list_since(self, tenant_id: uuid.UUID, since: date) -> list[UsageMetricSnapshot]:
        return sorted(
            (s for (t, d), s in self.rows.items() if t == tenant_id and d >= since),
            key=lambda s: s.metric_date,
        )


class FakeHealthScoreRepository:
    """Append-only list of HealthScoreRecord rows."""

    def __init__(self) -> None:
        self.records: list[HealthScoreRecord] = []

    def add(self, record: HealthScoreRecord) -> HealthScoreRecord:
        self.records.append(record)
        return record

    async def create(
        self,
        tenant_id: uuid.UUID,
        calculated_at: datetime,
        assessment: HealthAssessment,
    ) -> HealthScoreRecord:
        components = assessment.components
        return self.add(
            HealthScoreRecord(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                calculated_at=calculated_at,
                login_score=components.login,
                case_resolution_score=components.case_resolution,
                campaign_completion_score=components.campaign_completion,
                feature_adoption_score=components.feature_adoption,
                support_ticket_score=components.support_tickets,
                overall_score=assessment.overall_score,
                trend=assessment.trend.value,
                risk_level=assessment.risk_level.value,
                alert_level=assessment.alert_level.value,
                previous_score=assessment.previous_score,
            )
        )

    async def get_latest(self, tenant_id: uuid.UUID) -> HealthScoreRecord | None:
        mine = [r for r in self.records if r.tenant_id == tenant_id]
        if not mine:
            return None
        # max() keeps the first of equal keys; reverse so the newest insert wins ties
        return max(reversed(mine), key=lambda r: r.calculated_at)

    async def list_since(self, tenant_id: uuid.UUID, since: datetime) -> list[HealthScoreRecord]:
        return sorted(
            (r for r in self.records if r.tenant_id == tenant_id and r.calculated_at >= since),
            key=lambda r: r.calculated_at,
        )

    async def list_latest_per_tenant(
        self,
        tenant_ids: list[uuid.UUID] | None = None,
        risk_level: str | None = None,
    ) -> list[HealthScoreRecord]:
        ids = {r.tenant_id for r in self.records} if tenant_ids is None else set(tenant_ids)
        latest = [await self.get_latest(tenant_id) for tenant_id in ids]
        rows = [r for r in latest if r is not None]
        if risk_level is not None:
            rows = [r for r in rows if r.risk_level == risk_level]
        return sorted(rows, key=lambda r: r.overall_score)


class FakePeerBenchmarkRepository:
    """Benchmarks keyed by (metric, filter, day)."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, BenchmarkFilter, date], PeerBenchmark] = {}
        self.fail_on: set[tuple[str, BenchmarkFilter]] = set()

    async def upsert(
        self,
        metric_name: str,
        benchmark_filter: BenchmarkFilter,
        calculated_at: date,
        stats: BenchmarkStats,
    ) -> PeerBenchmark:
        if (metric_name, benchmark_filter) in self.fail_on:
            raise RuntimeError(f"write failed for {metric_name}")
        row = PeerBenchmark(
            id=uuid.uuid4(),
            metric_name=metric_name,
            industry_sector=benchmark_filter.industry_sector,
            employee_min=benchmark_filter.employee_min,
            employee_max=benchmark_filter.employee_max,
            calculated_at=calculated_at,
            peer_count=stats.peer_count,
            p25=stats.p25,
            median=stats.median,
            p75=stats.p75,
            mean=stats.mean,
            min_value=stats.min_value,
            max_value=stats.max_value,
        )
        self.rows[(metric_name, benchmark_filter, calculated_at)] = row
        return row

    async def get_latest(
        self, metric_name: str, benchmark_filter: BenchmarkFilter
    ) -> PeerBenchmark | None:
        matches = [
            row
            for (metric, f, _), row in self.rows.items()
            if metric == metric_name and f == benchmark_filter
        ]
        return max(matches, key=lambda r: r.calculated_at, default=None)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def build_metrics(
    tenant_id: uuid.UUID | None = None,
    active_users: int = 7,
    total_users: int = 10,
    cases_closed: int = 10,
    cases_on_time: int = 9,
    assignments_total: int = 20,
    assignments_completed: int = 17,
    adopted_features: int = 7,
    support_tickets: int = 0,
) -> TenantMetrics:
    """TenantMetrics that score 100 on every component by default."""
    return TenantMetrics(
        tenant_id=tenant_id or uuid.uuid4(),
        users=UserActivity(active_users=active_users, total_users=total_users),
        cases=CaseStats(
            cases_created=cases_closed,
            cases_closed=cases_closed,
            cases_on_time=cases_on_time,
            cases_overdue=cases_closed - cases_on_time,
        ),
        assignments=AssignmentStats(
            campaigns_active=1,
            assignments_total=assignments_total,
            assignments_completed=assignments_completed,
        ),
        adopted_features=adopted_features,
        support_tickets=support_tickets,
    )


@pytest.fixture()
def make_tenant() -> Callable[..., TenantProfile]:
    """Factory for TenantProfile with sensible defaults."""

    def _make(
        name: str = "Acme",
        industry_sector: str | None = None,
        employee_count: int | None = None,
        is_active: bool = True,
    ) -> TenantProfile:
        return TenantProfile(
            id=uuid.uuid4(),
            name=name,
            is_active=is_active,
            industry_sector=industry_sector,
            employee_count=employee_count,
        )

    return _make


@pytest.fixture()
def make_score_record() -> Callable[..., HealthScoreRecord]:
    """Factory for HealthScoreRecord rows with every component set to ``component``."""

    def _make(
        tenant_id: uuid.UUID,
        overall_score: int = 75,
        component: int = 75,
        previous_score: int | None = None,
        risk_level: str = "MEDIUM",
        trend: str = "STABLE",
        alert_level: str = "DASHBOARD_ONLY",
        calculated_at: datetime = FIXED_NOW,
        **overrides: Any,
    ) -> HealthScoreRecord:
        values: dict[str, Any] = {
            "login_score": component,
            "case_resolution_score": component,
            "campaign_completion_score": component,
            "feature_adoption_score": component,
            "support_ticket_score": component,
        }
        values.update(overrides)
        return HealthScoreRecord(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            calculated_at=calculated_at,
            overall_score=overall_score,
            previous_score=previous_score,
            risk_level=risk_level,
            trend=trend,
            alert_level=alert_level,
            **values,
        )

    return _make


@pytest.fixture()
def score_repo() -> FakeHealthScoreRepository:
    return FakeHealthScoreRepository()


@pytest.fixture()
def benchmark_repo() -> FakePeerBenchmarkRepository:
    return FakePeerBenchmarkRepository()


@pytest.fixture()
def metrics_repo() -> FakeUsageMetricsRepository:
    return FakeUsageMetricsRepository()


@pytest.fixture()
def mock_publisher() -> AsyncMock:
    """Mock IEventPublisher."""
    return AsyncMock()


@pytest.fixture()
def make_metrics() -> Callable[..., TenantMetrics]:
    """Factory for TenantMetrics; see build_metrics for defaults."""
    return build_metrics


@pytest.fixture()
def make_directory() -> Callable[[list[TenantProfile]], FakeTenantDirectory]:
    return FakeTenantDirectory
