"""Pydantic request/response models for the Tenant Health API.

All API inputs and outputs are typed Pydantic models, never raw dicts.
"""

import uuid
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tenant_health.core.jobs import Job
from tenant_health.core.types import (
    AlertLevel,
    BenchmarkDisplay,
    BenchmarkStats,
    HealthTrend,
    PortfolioEntry,
    PortfolioSummary,
    RiskLevel,
)


# ---------------------------------------------------------------------------
# Health score schemas
# ---------------------------------------------------------------------------


class HealthScoreResponse(BaseModel):
    """A single health score calculation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    calculated_at: datetime
    login_score: int = Field(..., ge=0, le=100)
    case_resolution_score: int = Field(..., ge=0, le=100)
    campaign_completion_score: int = Field(..., ge=0, le=100)
    feature_adoption_score: int = Field(..., ge=0, le=100)
    support_ticket_score: int = Field(..., ge=0, le=100)
    overall_score: int = Field(..., ge=0, le=100)
    trend: HealthTrend
    risk_level: RiskLevel
    alert_level: AlertLevel
    previous_score: int | None


class HealthScoreListResponse(BaseModel):
    """A list of health scores, e.g. history or the high-risk list."""

    items: list[HealthScoreResponse]
    total: int


class UsageMetricSnapshotResponse(BaseModel):
    """One daily usage snapshot."""

    model_config = ConfigDict(from_attributes=True)

    tenant_id: uuid.UUID
    metric_date: date
    active_users: int
    total_users: int
    cases_created: int
    cases_closed: int
    cases_on_time: int
    cases_overdue: int
    campaigns_active: int
    assignments_total: int
    assignments_completed: int
    support_tickets: int


class UsageMetricHistoryResponse(BaseModel):
    """Usage snapshots for the requested number of days."""

    items: list[UsageMetricSnapshotResponse]
    days: int


# ---------------------------------------------------------------------------
# Portfolio schemas
# ---------------------------------------------------------------------------


class ComponentScoresResponse(BaseModel):
    """Component scores of a tenant's latest record."""

    login: int
    case_resolution: int
    campaign_completion: int
    feature_adoption: int
    support_tickets: int


class PortfolioClientResponse(BaseModel):
    """One tenant in the portfolio overview."""

    tenant_id: uuid.UUID
    name: str
    industry_sector: str | None
    employee_count: int | None
    health_score: int
    score_change: int = Field(..., description="Change versus the previous calculation")
    trend: HealthTrend | None
    risk_level: RiskLevel | None
    alert_level: AlertLevel | None
    components: ComponentScoresResponse | None
    last_calculated_at: datetime | None
    last_activity: datetime | None = Field(
        None, description="Newest case opened or user login, if any"
    )

    @classmethod
    def from_entry(cls, entry: PortfolioEntry) -> "PortfolioClientResponse":
        components = None
        if entry.components is not None:
            components = ComponentScoresResponse(
                login=entry.components.login,
                case_resolution=entry.components.case_resolution,
                campaign_completion=entry.components.campaign_completion,
                feature_adoption=entry.components.feature_adoption,
                support_tickets=entry.components.support_tickets,
            )
        return cls(
            tenant_id=entry.tenant_id,
            name=entry.name,
            industry_sector=entry.industry_sector,
            employee_count=entry.employee_count,
            health_score=entry.health_score,
            score_change=entry.score_change,
            trend=entry.trend,
            risk_level=entry.risk_level,
            alert_level=entry.alert_level,
            components=components,
            last_calculated_at=entry.last_calculated_at,
            last_activity=entry.last_activity,
        )


class PortfolioSummaryResponse(BaseModel):
    """Counts per score band across all active tenants."""

    total: int
    healthy: int = Field(..., description="Tenants scoring 80 or above")
    at_risk: int = Field(..., description="Tenants scoring 60-79")
    critical: int = Field(..., description="Tenants scoring below 60")
    average_score: int

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> "PortfolioSummaryResponse":
        return cls(
            total=summary.total,
            healthy=summary.healthy,
            at_risk=summary.at_risk,
            critical=summary.critical,
            average_score=summary.average_score,
        )


class PortfolioResponse(BaseModel):
    """Portfolio overview of active tenants."""

    clients: list[PortfolioClientResponse]
    summary: PortfolioSummaryResponse


# ---------------------------------------------------------------------------
# Benchmark schemas
# ---------------------------------------------------------------------------


class BenchmarkDisplayResponse(BaseModel):
    """Where a tenant sits within its peer cohort."""

    your_value: float
    percentile: int = Field(..., ge=0, le=100)
    p25: float
    median: float
    p75: float
    peer_count: int
    filter_description: str
    calculated_at: date | None

    @classmethod
    def from_display(cls, display: BenchmarkDisplay) -> "BenchmarkDisplayResponse":
        return cls(
            your_value=display.your_value,
            percentile=display.percentile,
            p25=display.p25,
            median=display.median,
            p75=display.p75,
            peer_count=display.peer_count,
            filter_description=display.filter_description,
            calculated_at=display.calculated_at,
        )


class BenchmarkComparisonResponse(BaseModel):
    """Benchmark comparison, or available=false when the cohort cannot be shown."""

    metric_name: str
    available: bool
    comparison: BenchmarkDisplayResponse | None = None


class BenchmarkStatsResponse(BaseModel):
    """Distribution of one metric across a cohort."""

    peer_count: int
    p25: float
    median: float
    p75: float
    mean: float
    min: float
    max: float

    @classmethod
    def from_stats(cls, stats: BenchmarkStats) -> "BenchmarkStatsResponse":
        return cls(
            peer_count=stats.peer_count,
            p25=stats.p25,
            median=stats.median,
            p75=stats.p75,
            mean=stats.mean,
            min=stats.min_value,
            max=stats.max_value,
        )


class BenchmarkOverviewResponse(BaseModel):
    """Every metric's distribution for one cohort. Null entries are below the privacy floor."""

    industry: str | None
    size: str | None
    metrics: dict[str, BenchmarkStatsResponse | None]


# ---------------------------------------------------------------------------
# Job schemas
# ---------------------------------------------------------------------------


class RecalculateRequest(BaseModel):
    """Request body for queuing a recalculation."""

    collect_metrics: bool = Field(
        False,
        description="Collect today's usage snapshot before scoring",
    )


class RecalculateAllRequest(BaseModel):
    """Request body for queuing an all-tenants recalculation."""

    collect_metrics: bool = Field(True, description="Collect usage snapshots before scoring")


class JobStatusResponse(BaseModel):
    """Status of a queued batch job."""

    job_id: str
    kind: str
    state: str
    progress: int = Field(..., ge=0, le=100)
    attempts: int
    max_attempts: int
    result: dict[str, Any] | None
    failed_reason: str | None
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            job_id=job.id,
            kind=job.kind.value,
            state=job.state.value,
            progress=job.progress,
            attempts=job.attempts,
            max_attempts=job.retry_policy.max_attempts,
            result=job.result,
            failed_reason=job.failed_reason,
            created_at=job.created_at,
            started_at=job.started_at,
            finished_at=job.finished_at,
        )
