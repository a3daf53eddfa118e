"""Repository and collaborator-source tests against PostgreSQL.

These cover the behaviour the in-memory fakes cannot: ON CONFLICT
upserts, NULLS NOT DISTINCT uniqueness, IS NOT DISTINCT FROM filter
matching and the row_number() latest-per-tenant query.
"""

import uuid
from datetime import UTC, date, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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
    campaign_assignments,
    campaigns,
    cases,
    feature_adoptions,
    investigations,
    users,
)
from tenant_health.core.models import HealthScoreRecord, PeerBenchmark, UsageMetricSnapshot
from tenant_health.core.services import MetricsReader
from tenant_health.core.types import (
    ALL_TENANTS,
    AlertLevel,
    BenchmarkFilter,
    BenchmarkStats,
    ComponentScores,
    HealthAssessment,
    HealthTrend,
    RiskLevel,
)

pytestmark = pytest.mark.integration

NOW = datetime(2026, 10, 18, 2, 0, tzinfo=UTC)
TODAY = date(2026, 10, 18)
MID_SIZE = BenchmarkFilter(employee_min=101, employee_max=500)


def _assessment(overall: int, risk: RiskLevel, previous: int | None = None) -> HealthAssessment:
    return HealthAssessment(
        components=ComponentScores(overall, overall, overall, overall, overall),
        overall_score=overall,
        trend=HealthTrend.STABLE,
        risk_level=risk,
        alert_level=AlertLevel.DASHBOARD_ONLY,
        previous_score=previous,
    )


def _stats(median: float, peer_count: int = 8) -> BenchmarkStats:
    return BenchmarkStats(
        peer_count=peer_count,
        p25=median - 10,
        median=median,
        p75=median + 10,
        mean=median,
        min_value=median - 20,
        max_value=median + 20,
    )


async def _count(session: AsyncSession, model: type) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


# ---------------------------------------------------------------------------
# UsageMetricsRepository
# ---------------------------------------------------------------------------


class TestUsageMetricsRepository:
    """Daily snapshot upserts."""

    @pytest.mark.asyncio()
    async def test_same_day_upsert_keeps_one_row(
        self, sessions: async_sessionmaker[AsyncSession], make_metrics
    ) -> None:
        tenant_id = uuid.uuid4()

        async with sessions.begin() as session:
            repo = UsageMetricsRepository(session)
            await repo.upsert(tenant_id, TODAY, make_metrics(active_users=7))
        async with sessions.begin() as session:
            repo = UsageMetricsRepository(session)
            snapshot = await repo.upsert(tenant_id, TODAY, make_metrics(active_users=3))
            assert snapshot.active_users == 3

        async with sessions() as session:
            assert await _count(session, UsageMetricSnapshot) == 1
            (stored,) = await UsageMetricsRepository(session).list_since(tenant_id, TODAY)
            assert stored.active_users == 3
            assert stored.metric_date == TODAY

    @pytest.mark.asyncio()
    async def test_list_since_orders_by_day(self, session: AsyncSession, make_metrics) -> None:
        tenant_id = uuid.uuid4()
        repo = UsageMetricsRepository(session)
        for offset in (1, 40, 5):
            await repo.upsert(tenant_id, TODAY - timedelta(days=offset), make_metrics())
        await repo.upsert(uuid.uuid4(), TODAY, make_metrics())

        history = await repo.list_since(tenant_id, TODAY - timedelta(days=30))

        assert [s.metric_date for s in history] == [
            TODAY - timedelta(days=5),
            TODAY - timedelta(days=1),
        ]


# ---------------------------------------------------------------------------
# HealthScoreRepository
# ---------------------------------------------------------------------------


class TestHealthScoreRepository:
    """Append-only records and latest-per-tenant queries."""

    @pytest.fixture()
    def tenants(self) -> tuple[uuid.UUID, uuid.UUID]:
        return uuid.uuid4(), uuid.uuid4()

    async def _seed(self, repo: HealthScoreRepository, tenants) -> None:
        recovered, struggling = tenants
        await repo.create(recovered, NOW - timedelta(days=2), _assessment(45, RiskLevel.HIGH))
        await repo.create(recovered, NOW, _assessment(85, RiskLevel.LOW, previous=45))
        await repo.create(struggling, NOW - timedelta(days=1), _assessment(40, RiskLevel.HIGH))

    @pytest.mark.asyncio()
    async def test_get_latest(self, session: AsyncSession, tenants) -> None:
        repo = HealthScoreRepository(session)
        await self._seed(repo, tenants)

        latest = await repo.get_latest(tenants[0])

        assert latest is not None
        assert latest.overall_score == 85
        assert latest.previous_score == 45
        assert await repo.get_latest(uuid.uuid4()) is None

    @pytest.mark.asyncio()
    async def test_latest_per_tenant_returns_only_newest(
        self, session: AsyncSession, tenants
    ) -> None:
        repo = HealthScoreRepository(session)
        await self._seed(repo, tenants)

        latest = await repo.list_latest_per_tenant()

        assert [(r.tenant_id, r.overall_score) for r in latest] == [
            (tenants[1], 40),
            (tenants[0], 85),
        ]
        assert await _count(session, HealthScoreRecord) == 3

    @pytest.mark.asyncio()
    async def test_high_risk_uses_current_record_only(
        self, session: AsyncSession, tenants
    ) -> None:
        repo = HealthScoreRepository(session)
        await self._seed(repo, tenants)

        high_risk = await repo.list_latest_per_tenant(risk_level=RiskLevel.HIGH.value)

        assert [r.tenant_id for r in high_risk] == [tenants[1]]

    @pytest.mark.asyncio()
    async def test_latest_per_tenant_restricted_to_ids(
        self, session: AsyncSession, tenants
    ) -> None:
        repo = HealthScoreRepository(session)
        await self._seed(repo, tenants)

        (only,) = await repo.list_latest_per_tenant(tenant_ids=[tenants[0]])

        assert only.tenant_id == tenants[0]
        assert await repo.list_latest_per_tenant(tenant_ids=[]) == []

    @pytest.mark.asyncio()
    async def test_list_since(self, session: AsyncSession, tenants) -> None:
        repo = HealthScoreRepository(session)
        await self._seed(repo, tenants)

        history = await repo.list_since(tenants[0], NOW - timedelta(days=1))

        assert [r.overall_score for r in history] == [85]


# ---------------------------------------------------------------------------
# PeerBenchmarkRepository
# ---------------------------------------------------------------------------


class TestPeerBenchmarkRepository:
    """Per-day aggregates keyed by metric and exact filter."""

    @pytest.mark.asyncio()
    async def test_same_day_upsert_overwrites(self, session: AsyncSession) -> None:
        repo = PeerBenchmarkRepository(session)

        await repo.upsert("health_score", ALL_TENANTS, TODAY, _stats(60))
        await repo.upsert("health_score", MID_SIZE, TODAY, _stats(70))
        await repo.upsert("health_score", ALL_TENANTS, TODAY, _stats(65, peer_count=9))

        assert await _count(session, PeerBenchmark) == 2
        latest = await repo.get_latest("health_score", ALL_TENANTS)
        assert latest is not None
        assert latest.median == 65
        assert latest.peer_count == 9

    @pytest.mark.asyncio()
    async def test_new_day_adds_row_and_latest_wins(self, session: AsyncSession) -> None:
        repo = PeerBenchmarkRepository(session)

        await repo.upsert("login_rate", ALL_TENANTS, TODAY - timedelta(days=1), _stats(50))
        await repo.upsert("login_rate", ALL_TENANTS, TODAY, _stats(55))

        assert await _count(session, PeerBenchmark) == 2
        latest = await repo.get_latest("login_rate", ALL_TENANTS)
        assert latest is not None
        assert latest.calculated_at == TODAY

    @pytest.mark.asyncio()
    async def test_filter_matches_exactly(self, session: AsyncSession) -> None:
        repo = PeerBenchmarkRepository(session)
        await repo.upsert("health_score", ALL_TENANTS, TODAY, _stats(60))
        await repo.upsert(
            "health_score", BenchmarkFilter(industry_sector="HEALTHCARE"), TODAY, _stats(70)
        )

        assert await repo.get_latest("health_score", MID_SIZE) is None
        assert (
            await repo.get_latest(
                "health_score",
                BenchmarkFilter(industry_sector="HEALTHCARE", employee_min=101, employee_max=500),
            )
            is None
        )
        healthcare = await repo.get_latest(
            "health_score", BenchmarkFilter(industry_sector="HEALTHCARE")
        )
        assert healthcare is not None
        assert healthcare.median == 70
        overall = await repo.get_latest("health_score", ALL_TENANTS)
        assert overall is not None
        assert overall.median == 60

    @pytest.mark.asyncio()
    async def test_null_filter_fields_are_unique(self, session: AsyncSession) -> None:
        for _ in range(2):
            session.add(
                PeerBenchmark(
                    metric_name="health_score",
                    industry_sector=None,
                    employee_min=None,
                    employee_max=None,
                    calculated_at=TODAY,
                    peer_count=5,
                    p25=1.0,
                    median=2.0,
                    p75=3.0,
                    mean=2.0,
                    min_value=0.0,
                    max_value=4.0,
                )
            )

        with pytest.raises(IntegrityError):
            await session.flush()

    @pytest.mark.asyncio()
    async def test_failed_write_leaves_transaction_usable(self, session: AsyncSession) -> None:
        repo = PeerBenchmarkRepository(session)

        with pytest.raises(DBAPIError):
            await repo.upsert("x" * 200, ALL_TENANTS, TODAY, _stats(60))
        await repo.upsert("health_score", ALL_TENANTS, TODAY, _stats(60))

        assert await _count(session, PeerBenchmark) == 1


# ---------------------------------------------------------------------------
# Collaborator sources
# ---------------------------------------------------------------------------


class TestCollaboratorSources:
    """Reads from tables owned by other services."""

    @pytest.mark.asyncio()
    async def test_metrics_reader_runs_sources_concurrently(
        self, sessions: async_sessionmaker[AsyncSession]
    ) -> None:
        tenant_id = uuid.uuid4()
        start, end = NOW - timedelta(days=30), NOW
        case_id = uuid.uuid4()
        async with sessions.begin() as session:
            await session.execute(
                users.insert(),
                [
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "is_active": True,
                     "last_login_at": NOW - timedelta(days=2)},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "is_active": True,
                     "last_login_at": NOW - timedelta(days=45)},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "is_active": False,
                     "last_login_at": NOW - timedelta(days=1)},
                ],
            )
            await session.execute(
                cases.insert().values(
                    id=case_id,
                    organization_id=tenant_id,
                    status="OPEN",
                    created_at=NOW - timedelta(days=3),
                )
            )
            await session.execute(
                investigations.insert(),
                [
                    {"id": uuid.uuid4(), "case_id": case_id, "organization_id": tenant_id,
                     "sla_status": "ON_TRACK", "closed_at": NOW - timedelta(days=1)},
                    {"id": uuid.uuid4(), "case_id": case_id, "organization_id": tenant_id,
                     "sla_status": "OVERDUE", "closed_at": NOW - timedelta(days=1)},
                ],
            )
            await session.execute(
                campaigns.insert().values(id=uuid.uuid4(), organization_id=tenant_id, status="ACTIVE")
            )
            await session.execute(
                campaign_assignments.insert(),
                [
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "status": "COMPLETED",
                     "completed_at": NOW - timedelta(days=1)},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "status": "ASSIGNED",
                     "completed_at": None},
                ],
            )
            await session.execute(
                feature_adoptions.insert(),
                [
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "feature_key": "sso"},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "feature_key": "sso"},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "feature_key": "workflows"},
                    {"id": uuid.uuid4(), "organization_id": tenant_id, "feature_key": "beta_lab"},
                ],
            )

        reader = MetricsReader(
            identity=SqlIdentitySource(sessions),
            cases=SqlCaseSource(sessions),
            campaigns=SqlCampaignSource(sessions),
            features=SqlFeatureAdoptionSource(sessions),
            tickets=NullSupportTicketSource(),
        )
        metrics = await reader.read(tenant_id, start, end)

        assert (metrics.users.active_users, metrics.users.total_users) == (1, 2)
        assert metrics.cases.cases_created == 1
        assert (metrics.cases.cases_closed, metrics.cases.cases_overdue) == (2, 1)
        assert metrics.cases.cases_on_time == 1
        assert metrics.assignments.campaigns_active == 1
        assert metrics.assignments.assignments_completed == 1
        assert metrics.adopted_features == 2

    @pytest.mark.asyncio()
    async def test_last_activity_takes_newest_source(self, session: AsyncSession) -> None:
        busy, quiet, silent = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        await session.execute(
            cases.insert(),
            [
                {"id": uuid.uuid4(), "organization_id": busy, "status": "OPEN",
                 "created_at": NOW - timedelta(days=4)},
                {"id": uuid.uuid4(), "organization_id": quiet, "status": "OPEN",
                 "created_at": NOW - timedelta(days=20)},
            ],
        )
        await session.execute(
            users.insert(),
            [
                {"id": uuid.uuid4(), "organization_id": busy, "is_active": True,
                 "last_login_at": NOW - timedelta(hours=1)},
                {"id": uuid.uuid4(), "organization_id": quiet, "is_active": True,
                 "last_login_at": None},
            ],
        )

        activity = await SqlTenantActivitySource(session).last_activity([busy, quiet, silent])

        assert activity == {
            busy: NOW - timedelta(hours=1),
            quiet: NOW - timedelta(days=20),
        }
