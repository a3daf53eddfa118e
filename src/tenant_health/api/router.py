"""FastAPI router for the Tenant Health API.

All routes are thin: they validate inputs, delegate to services, and
serialize responses. No business logic here.

API prefix: /api/v1/tenant-health
"""

import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_health.api.schemas import (
    BenchmarkComparisonResponse,
    BenchmarkDisplayResponse,
    BenchmarkOverviewResponse,
    BenchmarkStatsResponse,
    HealthScoreListResponse,
    HealthScoreResponse,
    JobStatusResponse,
    PortfolioClientResponse,
    PortfolioResponse,
    PortfolioSummaryResponse,
    RecalculateAllRequest,
    RecalculateRequest,
    UsageMetricHistoryResponse,
    UsageMetricSnapshotResponse,
)
from tenant_health.core.interfaces import IEventPublisher, IJobQueue
from tenant_health.core.services import (
    BatchScheduler,
    BenchmarkLookup,
    HealthScoreCalculator,
    PortfolioService,
    UsageMetricsCollector,
)
from tenant_health.core.types import BenchmarkFilter, RiskLevel
from tenant_health.database import get_db_session
from tenant_health.errors import ConflictError
from tenant_health.settings import Settings
from tenant_health.wiring import (
    build_calculator,
    build_collector,
    build_lookup,
    build_portfolio,
)

router = APIRouter(prefix="/tenant-health", tags=["Tenant Health"])

settings = Settings()


# ---------------------------------------------------------------------------
# Dependency factories
# ---------------------------------------------------------------------------


def get_event_publisher(request: Request) -> IEventPublisher:
    """Return the event publisher created at startup."""
    return request.app.state.event_publisher


def get_job_queue(request: Request) -> IJobQueue:
    """Return the job queue created at startup."""
    return request.app.state.job_queue


def get_health_score_calculator(
    session: AsyncSession = Depends(get_db_session),
    publisher: IEventPublisher = Depends(get_event_publisher),
) -> HealthScoreCalculator:
    """Build HealthScoreCalculator with injected dependencies."""
    return build_calculator(session, settings, publisher)


def get_usage_metrics_collector(
    session: AsyncSession = Depends(get_db_session),
) -> UsageMetricsCollector:
    """Build UsageMetricsCollector with injected dependencies."""
    return build_collector(session, settings)


def get_portfolio_service(
    session: AsyncSession = Depends(get_db_session),
) -> PortfolioService:
    """Build PortfolioService with injected dependencies."""
    return build_portfolio(session, settings)


def get_benchmark_lookup(
    session: AsyncSession = Depends(get_db_session),
) -> BenchmarkLookup:
    """Build BenchmarkLookup with injected dependencies."""
    return build_lookup(session, settings)


def get_batch_scheduler(queue: IJobQueue = Depends(get_job_queue)) -> BatchScheduler:
    """Build BatchScheduler on the application's job queue."""
    return BatchScheduler(queue)


def resolve_benchmark_filter(
    industry: str | None,
    size: str | None,
    employee_min: int | None,
    employee_max: int | None,
) -> BenchmarkFilter:
    """Turn query parameters into an exact benchmark filter.

    ``size`` is a named bucket (small, medium, large, enterprise) and
    cannot be combined with explicit employee bounds.

    Raises:
        ConflictError: If the size name is unknown or combined with bounds.
    """
    if size is not None:
        if employee_min is not None or employee_max is not None:
            raise ConflictError("Use either size or employee_min/employee_max, not both.")
        bucket = settings.benchmark_config().size_bucket(size)
        if bucket is None:
            names = [b.name for b in settings.benchmark_config().size_buckets]
            raise ConflictError(f"Invalid size '{size}'. Must be one of: {names}")
        employee_min, employee_max = bucket.employee_min, bucket.employee_max

    return BenchmarkFilter(
        industry_sector=industry or None,
        employee_min=employee_min,
        employee_max=employee_max,
    )


# ---------------------------------------------------------------------------
# Health score endpoints
# ---------------------------------------------------------------------------


@router.get("/tenants/{tenant_id}/score", response_model=HealthScoreResponse)
async def get_latest_score(
    tenant_id: uuid.UUID,
    calculator: HealthScoreCalculator = Depends(get_health_score_calculator),
) -> HealthScoreResponse:
    """Return the tenant's most recent health score."""
    record = await calculator.get_latest_score(tenant_id)
    return HealthScoreResponse.model_validate(record)


@router.get("/tenants/{tenant_id}/score/history", response_model=HealthScoreListResponse)
async def get_score_history(
    tenant_id: uuid.UUID,
    days: Annotated[int, Query(ge=1, le=365)] = 90,
    calculator: HealthScoreCalculator = Depends(get_health_score_calculator),
) -> HealthScoreListResponse:
    """Return the tenant's health scores for the last N days, oldest first."""
    records = await calculator.get_score_history(tenant_id, days)
    return HealthScoreListResponse(
        items=[HealthScoreResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/high-risk", response_model=HealthScoreListResponse)
async def list_high_risk_tenants(
    calculator: HealthScoreCalculator = Depends(get_health_score_calculator),
) -> HealthScoreListResponse:
    """List every tenant whose latest score is HIGH risk, lowest score first."""
    records = await calculator.list_high_risk()
    return HealthScoreListResponse(
        items=[HealthScoreResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/tenants/{tenant_id}/usage-metrics", response_model=UsageMetricHistoryResponse)
async def get_usage_metric_history(
    tenant_id: uuid.UUID,
    days: Annotated[int, Query(ge=1, le=365)] = 30,
    collector: UsageMetricsCollector = Depends(get_usage_metrics_collector),
) -> UsageMetricHistoryResponse:
    """Return the tenant's daily usage snapshots for the last N days."""
    snapshots = await collector.get_history(tenant_id, days)
    return UsageMetricHistoryResponse(
        items=[UsageMetricSnapshotResponse.model_validate(s) for s in snapshots],
        days=days,
    )


@router.get("/portfolio", response_model=PortfolioResponse)
async def get_portfolio(
    risk_level: Annotated[RiskLevel | None, Query()] = None,
    sort_by: Annotated[
        Literal["name", "health_score", "last_activity"] | None, Query()
    ] = None,
    sort_order: Annotated[Literal["asc", "desc"], Query()] = "asc",
    service: PortfolioService = Depends(get_portfolio_service),
) -> PortfolioResponse:
    """Portfolio overview of all active tenants with a score-band summary."""
    entries, summary = await service.get_portfolio(
        risk_level=risk_level,
        sort_by=sort_by,
        descending=sort_order == "desc",
    )
    return PortfolioResponse(
        clients=[PortfolioClientResponse.from_entry(e) for e in entries],
        summary=PortfolioSummaryResponse.from_summary(summary),
    )


# ---------------------------------------------------------------------------
# Benchmark endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/tenants/{tenant_id}/benchmarks/{metric_name}",
    response_model=BenchmarkComparisonResponse,
)
async def compare_to_peers(
    tenant_id: uuid.UUID,
    metric_name: str,
    industry: Annotated[str | None, Query()] = None,
    size: Annotated[str | None, Query()] = None,
    employee_min: Annotated[int | None, Query(ge=0)] = None,
    employee_max: Annotated[int | None, Query(ge=0)] = None,
    lookup: BenchmarkLookup = Depends(get_benchmark_lookup),
) -> BenchmarkComparisonResponse:
    """Compare a tenant's metric with its peer cohort.

    Returns available=false when the tenant has no value, no benchmark
    matches the filter exactly, or the cohort is below the privacy floor.
    """
    benchmark_filter = resolve_benchmark_filter(industry, size, employee_min, employee_max)
    display = await lookup.compare(tenant_id, metric_name, benchmark_filter)
    if display is None:
        return BenchmarkComparisonResponse(metric_name=metric_name, available=False)
    return BenchmarkComparisonResponse(
        metric_name=metric_name,
        available=True,
        comparison=BenchmarkDisplayResponse.from_display(display),
    )


@router.get("/benchmarks", response_model=BenchmarkOverviewResponse)
async def get_benchmark_overview(
    industry: Annotated[str | None, Query()] = None,
    size: Annotated[str | None, Query()] = None,
    lookup: BenchmarkLookup = Depends(get_benchmark_lookup),
) -> BenchmarkOverviewResponse:
    """Every metric's cached distribution plus the live health score distribution."""
    benchmark_filter = resolve_benchmark_filter(industry, size, None, None)
    overview = await lookup.get_overview(benchmark_filter)
    return BenchmarkOverviewResponse(
        industry=industry,
        size=size,
        metrics={
            name: BenchmarkStatsResponse.from_stats(stats) if stats is not None else None
            for name, stats in overview.items()
        },
    )


# ---------------------------------------------------------------------------
# Batch job endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/tenants/{tenant_id}/recalculate",
    response_model=JobStatusResponse,
    status_code=202,
)
async def recalculate_tenant(
    tenant_id: uuid.UUID,
    body: RecalculateRequest | None = None,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
) -> JobStatusResponse:
    """Queue a health score recalculation for one tenant."""
    collect_metrics = body.collect_metrics if body is not None else False
    job = await scheduler.schedule_tenant(tenant_id, collect_metrics=collect_metrics)
    return JobStatusResponse.from_job(job)


@router.post("/recalculate", response_model=JobStatusResponse, status_code=202)
async def recalculate_all_tenants(
    body: RecalculateAllRequest | None = None,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
) -> JobStatusResponse:
    """Queue a recalculation of every active tenant."""
    collect_metrics = body.collect_metrics if body is not None else True
    job = await scheduler.schedule_all_tenants(collect_metrics=collect_metrics)
    return JobStatusResponse.from_job(job)


@router.post("/benchmarks/recalculate", response_model=JobStatusResponse, status_code=202)
async def recalculate_benchmarks(
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
) -> JobStatusResponse:
    """Queue a peer benchmark aggregation run."""
    job = await scheduler.schedule_benchmarks()
    return JobStatusResponse.from_job(job)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    scheduler: BatchScheduler = Depends(get_batch_scheduler),
) -> JobStatusResponse:
    """Poll a batch job's state, progress and result."""
    job = await scheduler.get_job(job_id)
    return JobStatusResponse.from_job(job)
