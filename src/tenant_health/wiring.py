"""Composition of services from a database session and settings.

The API dependency factories and the Celery tasks build their services
here so every runtime gets the same wiring.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from tenant_health.adapters.events import AfterCommitPublisher
from tenant_health.adapters.repositories import (
    HealthScoreRepository,
    PeerBenchmarkRepository,
    UsageMetricsRepository,
)
from tenant_health.adapters.sources import (
    NullSupportTicketSource,
    SqlCampaignSource,
    SqlCaseSource,
    SqlFeatureAdoptionSource,
    SqlIdentitySource,
    SqlTenantActivitySource,
    SqlTenantDirectory,
)
from tenant_health.core.interfaces import IEventPublisher
from tenant_health.core.scoring import HealthScorer
from tenant_health.core.services import (
    BenchmarkLookup,
    HealthBatchProcessor,
    HealthScoreCalculator,
    JobDispatcher,
    MetricsReader,
    PeerBenchmarkAggregator,
    PortfolioService,
    TenantServices,
    UsageMetricsCollector,
)
from tenant_health.core.types import TenantProfile
from tenant_health.database import get_session_factory, session_scope
from tenant_health.settings import Settings


def build_metrics_reader() -> MetricsReader:
    """Metric sources read concurrently, each on its own session."""
    sessions = get_session_factory()
    return MetricsReader(
        identity=SqlIdentitySource(sessions),
        cases=SqlCaseSource(sessions),
        campaigns=SqlCampaignSource(sessions),
        features=SqlFeatureAdoptionSource(sessions),
        tickets=NullSupportTicketSource(),
    )


def build_collector(session: AsyncSession, settings: Settings) -> UsageMetricsCollector:
    return UsageMetricsCollector(
        reader=build_metrics_reader(),
        metrics_repo=UsageMetricsRepository(session),
        window_days=settings.metric_window_days,
    )


def build_calculator(
    session: AsyncSession, settings: Settings, publisher: IEventPublisher
) -> HealthScoreCalculator:
    return HealthScoreCalculator(
        reader=build_metrics_reader(),
        score_repo=HealthScoreRepository(session),
        event_publisher=publisher,
        scorer=HealthScorer(settings.scoring_config()),
    )


def build_portfolio(session: AsyncSession, settings: Settings) -> PortfolioService:
    return PortfolioService(
        tenant_directory=SqlTenantDirectory(session),
        score_repo=HealthScoreRepository(session),
        activity_source=SqlTenantActivitySource(session),
        low_risk_from=settings.low_risk_from,
        high_risk_below=settings.high_risk_below,
    )


def build_aggregator(
    session: AsyncSession, settings: Settings, publisher: IEventPublisher
) -> PeerBenchmarkAggregator:
    return PeerBenchmarkAggregator(
        tenant_directory=SqlTenantDirectory(session),
        score_repo=HealthScoreRepository(session),
        benchmark_repo=PeerBenchmarkRepository(session),
        event_publisher=publisher,
        config=settings.benchmark_config(),
    )


def build_lookup(session: AsyncSession, settings: Settings) -> BenchmarkLookup:
    return BenchmarkLookup(
        tenant_directory=SqlTenantDirectory(session),
        score_repo=HealthScoreRepository(session),
        benchmark_repo=PeerBenchmarkRepository(session),
        config=settings.benchmark_config(),
    )


class ScopedTenantDirectory:
    """Tenant directory that opens a short-lived session per call.

    Used by the batch processor, which must not hold a transaction open
    across the whole tenant loop.
    """

    async def list_active_tenants(self) -> list[TenantProfile]:
        async with session_scope() as session:
            return await SqlTenantDirectory(session).list_active_tenants()

    async def get_tenant(self, tenant_id: uuid.UUID) -> TenantProfile | None:
        async with session_scope() as session:
            return await SqlTenantDirectory(session).get_tenant(tenant_id)


def build_dispatcher(settings: Settings, publisher: IEventPublisher) -> JobDispatcher:
    """Build the job dispatcher with one transaction per tenant and per benchmark run.

    Events raised inside a transaction are published once it commits.
    """

    @asynccontextmanager
    async def tenant_services() -> AsyncGenerator[TenantServices, None]:
        events = AfterCommitPublisher(publisher)
        async with session_scope() as session:
            yield TenantServices(
                collector=build_collector(session, settings),
                calculator=build_calculator(session, settings, events),
            )
        await events.flush()

    @asynccontextmanager
    async def aggregator() -> AsyncGenerator[PeerBenchmarkAggregator, None]:
        events = AfterCommitPublisher(publisher)
        async with session_scope() as session:
            yield build_aggregator(session, settings, events)
        await events.flush()

    processor = HealthBatchProcessor(
        tenant_directory=ScopedTenantDirectory(),
        services_scope=tenant_services,
        event_publisher=publisher,
        inter_tenant_delay_ms=settings.inter_tenant_delay_ms,
    )
    return JobDispatcher(processor=processor, aggregator_scope=aggregator)
