"""SQLAlchemy repository implementations for the Tenant Health Engine.

All repositories take an AsyncSession and implement the interfaces in
core/interfaces.py. They flush but never commit; the caller's session
scope owns the transaction.
"""

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_health.core.models import HealthScoreRecord, PeerBenchmark, UsageMetricSnapshot
from tenant_health.core.types import (
    BenchmarkFilter,
    BenchmarkStats,
    HealthAssessment,
    TenantMetrics,
)
from tenant_health.observability import get_logger

logger = get_logger(__name__)


def _snapshot_values(metrics: TenantMetrics) -> dict[str, Any]:
    return {
        "active_users": metrics.users.active_users,
        "total_users": metrics.users.total_users,
        "cases_created": metrics.cases.cases_created,
        "cases_closed": metrics.cases.cases_closed,
        "cases_on_time": metrics.cases.cases_on_time,
        "cases_overdue": metrics.cases.cases_overdue,
        "campaigns_active": metrics.assignments.campaigns_active,
        "assignments_total": metrics.assignments.assignments_total,
        "assignments_completed": metrics.assignments.assignments_completed,
        "support_tickets": metrics.support_tickets,
    }


class UsageMetricsRepository:
    """Repository for UsageMetricSnapshot persistence."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialise with async database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def upsert(
        self, tenant_id: uuid.UUID, metric_date: date, metrics: TenantMetrics
    ) -> UsageMetricSnapshot:
        """Insert or overwrite the snapshot for (tenant_id, metric_date).

        Uses INSERT ... ON CONFLICT DO UPDATE on the (tenant_id, metric_date)
        unique constraint, so concurrent re-collection is last-write-wins.

        Args:
            tenant_id: Owning tenant.
            metric_date: Snapshot day.
            metrics: Counts to store.

        Returns:
            The persisted snapshot.
        """
        values = _snapshot_values(metrics)
        statement = (
            insert(UsageMetricSnapshot)
            .values(id=uuid.uuid4(), tenant_id=tenant_id, metric_date=metric_date, **values)
            .on_conflict_do_update(
                constraint="uq_th_usage_metrics_tenant_date",
                set_={**values, "updated_at": func.now()},
            )
            .returning(UsageMetricSnapshot)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        return result.scalar_one()

    async def list_since(self, tenant_id: uuid.UUID, since: date) -> list[UsageMetricSnapshot]:
        """List snapshots on or after ``since``, oldest first."""
        result = await self.session.execute(
            select(UsageMetricSnapshot)
            .where(
                UsageMetricSnapshot.tenant_id == tenant_id,
                UsageMetricSnapshot.metric_date >= since,
            )
            .order_by(UsageMetricSnapshot.metric_date.asc())
        )
        return list(result.scalars().all())


class HealthScoreRepository:
    """Repository for append-only HealthScoreRecord persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        tenant_id: uuid.UUID,
        calculated_at: datetime,
        assessment: HealthAssessment,
    ) -> HealthScoreRecord:
        """Append a new health score record.

        Args:
            tenant_id: Scored tenant.
            calculated_at: Calculation timestamp.
            assessment: Component scores and classifications.

        Returns:
            Newly created HealthScoreRecord.
        """
        components = assessment.components
        record = HealthScoreRecord(
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
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return record

    async def get_latest(self, tenant_id: uuid.UUID) -> HealthScoreRecord | None:
        """Return the tenant's most recent record by calculated_at."""
        result = await self.session.execute(
            select(HealthScoreRecord)
            .where(HealthScoreRecord.tenant_id == tenant_id)
            .order_by(HealthScoreRecord.calculated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_since(
        self, tenant_id: uuid.UUID, since: datetime
    ) -> list[HealthScoreRecord]:
        """List records calculated at or after ``since``, oldest first."""
        result = await self.session.execute(
            select(HealthScoreRecord)
            .where(
                HealthScoreRecord.tenant_id == tenant_id,
                HealthScoreRecord.calculated_at >= since,
            )
            .order_by(HealthScoreRecord.calculated_at.asc())
        )
        return list(result.scalars().all())

    async def list_latest_per_tenant(
        self,
        tenant_ids: list[uuid.UUID] | None = None,
        risk_level: str | None = None,
    ) -> list[HealthScoreRecord]:
        """Return each tenant's most recent record.

        Ranks records per tenant with row_number() over calculated_at desc
        and keeps rank 1. The risk filter is applied after ranking so it
        only ever matches a tenant's current record.

        Args:
            tenant_ids: Restrict to these tenants; None means all tenants.
            risk_level: Optional risk level the latest record must have.

        Returns:
            One record per tenant that has any record.
        """
        if tenant_ids is not None and not tenant_ids:
            return []

        ranked = select(
            HealthScoreRecord.id.label("record_id"),
            func.row_number()
            .over(
                partition_by=HealthScoreRecord.tenant_id,
                order_by=HealthScoreRecord.calculated_at.desc(),
            )
            .label("rank"),
        )
        if tenant_ids is not None:
            ranked = ranked.where(HealthScoreRecord.tenant_id.in_(tenant_ids))
        ranked_subquery = ranked.subquery()

        query = select(HealthScoreRecord).join(
            ranked_subquery,
            (HealthScoreRecord.id == ranked_subquery.c.record_id)
            & (ranked_subquery.c.rank == 1),
        )
        if risk_level is not None:
            query = query.where(HealthScoreRecord.risk_level == risk_level)

        result = await self.session.execute(
            query.order_by(HealthScoreRecord.overall_score.asc())
        )
        return list(result.scalars().all())


class PeerBenchmarkRepository:
    """Repository for PeerBenchmark persistence."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _filter_clauses(benchmark_filter: BenchmarkFilter) -> list[Any]:
        # IS NOT DISTINCT FROM so that a null filter field only matches null.
        return [
            PeerBenchmark.industry_sector.is_not_distinct_from(benchmark_filter.industry_sector),
            PeerBenchmark.employee_min.is_not_distinct_from(benchmark_filter.employee_min),
            PeerBenchmark.employee_max.is_not_distinct_from(benchmark_filter.employee_max),
        ]

    async def upsert(
        self,
        metric_name: str,
        benchmark_filter: BenchmarkFilter,
        calculated_at: date,
        stats: BenchmarkStats,
    ) -> PeerBenchmark:
        """Insert or overwrite the aggregate for (metric, filter, day).

        Runs inside a SAVEPOINT so a failed write leaves the surrounding
        transaction usable for the remaining combinations.

        Args:
            metric_name: Benchmark metric.
            benchmark_filter: Cohort filter.
            calculated_at: Aggregation day.
            stats: Distribution to store.

        Returns:
            The created or updated PeerBenchmark.
        """
        values = {
            "peer_count": stats.peer_count,
            "p25": stats.p25,
            "median": stats.median,
            "p75": stats.p75,
            "mean": stats.mean,
            "min_value": stats.min_value,
            "max_value": stats.max_value,
        }

        async with self.session.begin_nested():
            result = await self.session.execute(
                select(PeerBenchmark).where(
                    PeerBenchmark.metric_name == metric_name,
                    PeerBenchmark.calculated_at == calculated_at,
                    *self._filter_clauses(benchmark_filter),
                )
            )
            existing = result.scalar_one_or_none()

            if existing is not None:
                for key, value in values.items():
                    setattr(existing, key, value)
                benchmark = existing
            else:
                benchmark = PeerBenchmark(
                    metric_name=metric_name,
                    industry_sector=benchmark_filter.industry_sector,
                    employee_min=benchmark_filter.employee_min,
                    employee_max=benchmark_filter.employee_max,
                    calculated_at=calculated_at,
                    **values,
                )
                self.session.add(benchmark)
            await self.session.flush()

        logger.debug(
            "Peer benchmark stored",
            metric_name=metric_name,
            peer_count=stats.peer_count,
            updated=existing is not None,
        )
        return benchmark

    async def get_latest(
        self, metric_name: str, benchmark_filter: BenchmarkFilter
    ) -> PeerBenchmark | None:
        """Return the most recent aggregate matching the filter exactly."""
        result = await self.session.execute(
            select(PeerBenchmark)
            .where(
                PeerBenchmark.metric_name == metric_name,
                *self._filter_clauses(benchmark_filter),
            )
            .order_by(PeerBenchmark.calculated_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
