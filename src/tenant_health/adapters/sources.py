"""Read-only SQL adapters onto collaborator data.

The tables below are owned by other services (tenant administration,
identity, case management, campaigns). They are declared as SQLAlchemy
Core tables on a separate MetaData so migrations in this service never
create or alter them. Every query here is a plain SELECT.

The metric sources are read concurrently by MetricsReader, and an
AsyncSession must not be shared between concurrent tasks, so each of them
opens its own short-lived session from the session factory per read.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    and_,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_health.core.config import TRACKED_FEATURES
from tenant_health.core.types import AssignmentStats, CaseStats, TenantProfile, UserActivity
from tenant_health.observability import get_logger

logger = get_logger(__name__)

collaborator_metadata = MetaData()

organizations = Table(
    "organizations",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("settings", JSONB, nullable=True),
    Column("is_active", Boolean, nullable=False),
)

users = Table(
    "users",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("is_active", Boolean, nullable=False),
    Column("last_login_at", DateTime(timezone=True), nullable=True),
)

cases = Table(
    "cases",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("status", String(20), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

investigations = Table(
    "investigations",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("case_id", UUID(as_uuid=True), nullable=False),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("sla_status", String(20), nullable=True),
    Column("closed_at", DateTime(timezone=True), nullable=True),
)

campaigns = Table(
    "campaigns",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("status", String(20), nullable=False),
)

campaign_assignments = Table(
    "campaign_assignments",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("status", String(20), nullable=False),
    Column("completed_at", DateTime(timezone=True), nullable=True),
)

feature_adoptions = Table(
    "feature_adoptions",
    collaborator_metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("organization_id", UUID(as_uuid=True), nullable=False),
    Column("feature_key", String(100), nullable=False),
)

# Investigation SLA status that counts as a missed deadline
SLA_OVERDUE: str = "OVERDUE"


def tenant_from_row(
    tenant_id: uuid.UUID, name: str, is_active: bool, settings: dict | None
) -> TenantProfile:
    """Build a TenantProfile from an organization row.

    Industry and employee count live in the organization's settings JSON
    under ``industrySector`` and ``employeeCount``; values of the wrong
    type are treated as absent.
    """
    settings = settings or {}
    industry = settings.get("industrySector")
    employees = settings.get("employeeCount")
    return TenantProfile(
        id=tenant_id,
        name=name,
        is_active=is_active,
        industry_sector=industry if isinstance(industry, str) and industry else None,
        employee_count=(
            employees
            if isinstance(employees, int) and not isinstance(employees, bool)
            else None
        ),
    )


class SqlTenantDirectory:
    """Tenant directory backed by the organizations table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_active_tenants(self) -> list[TenantProfile]:
        """Return every active organization, ordered by name."""
        result = await self.session.execute(
            select(
                organizations.c.id,
                organizations.c.name,
                organizations.c.is_active,
                organizations.c.settings,
            )
            .where(organizations.c.is_active.is_(True))
            .order_by(organizations.c.name.asc())
        )
        return [tenant_from_row(*row) for row in result.all()]

    async def get_tenant(self, tenant_id: uuid.UUID) -> TenantProfile | None:
        result = await self.session.execute(
            select(
                organizations.c.id,
                organizations.c.name,
                organizations.c.is_active,
                organizations.c.settings,
            ).where(organizations.c.id == tenant_id)
        )
        row = result.one_or_none()
        return tenant_from_row(*row) if row is not None else None


class SqlIdentitySource:
    """Login activity from the users table."""

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def count_users(self, tenant_id: uuid.UUID, since: datetime) -> UserActivity:
        """Active users logged in since ``since``, against all active accounts."""
        async with self.sessions() as session:
            result = await session.execute(
                select(
                    func.count().filter(users.c.last_login_at >= since),
                    func.count(),
                ).where(users.c.organization_id == tenant_id, users.c.is_active.is_(True))
            )
            active, total = result.one()
        return UserActivity(active_users=active or 0, total_users=total or 0)


class SqlCaseSource:
    """Case throughput and SLA outcomes.

    Closure and SLA counts are per investigation closed in the window, so
    on-time plus overdue always equals closed.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def get_case_stats(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> CaseStats:
        async with self.sessions() as session:
            created_result = await session.execute(
                select(func.count()).where(
                    cases.c.organization_id == tenant_id,
                    cases.c.created_at >= start,
                    cases.c.created_at < end,
                )
            )
            cases_created = created_result.scalar_one()

            closed_result = await session.execute(
                select(
                    func.count(),
                    func.count().filter(investigations.c.sla_status == SLA_OVERDUE),
                ).where(
                    and_(
                        investigations.c.organization_id == tenant_id,
                        investigations.c.closed_at >= start,
                        investigations.c.closed_at < end,
                    )
                )
            )
            closed, overdue = closed_result.one()
        closed = closed or 0
        overdue = overdue or 0

        return CaseStats(
            cases_created=cases_created or 0,
            cases_closed=closed,
            cases_on_time=closed - overdue,
            cases_overdue=overdue,
        )


class SqlCampaignSource:
    """Campaign and assignment completion counts."""

    ACTIVE_STATUS: str = "ACTIVE"
    COMPLETED_STATUS: str = "COMPLETED"

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self.sessions = sessions

    async def get_assignment_stats(self, tenant_id: uuid.UUID) -> AssignmentStats:
        async with self.sessions() as session:
            campaigns_result = await session.execute(
                select(func.count()).where(
                    campaigns.c.organization_id == tenant_id,
                    campaigns.c.status == self.ACTIVE_STATUS,
                )
            )
            assignments_result = await session.execute(
                select(
                    func.count(),
                    func.count().filter(campaign_assignments.c.status == self.COMPLETED_STATUS),
                ).where(campaign_assignments.c.organization_id == tenant_id)
            )
            campaigns_active = campaigns_result.scalar_one()
            total, completed = assignments_result.one()
        return AssignmentStats(
            campaigns_active=campaigns_active or 0,
            assignments_total=total or 0,
            assignments_completed=completed or 0,
        )


class SqlFeatureAdoptionSource:
    """Distinct tracked features a tenant has adopted."""

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        tracked_features: tuple[str, ...] = TRACKED_FEATURES,
    ) -> None:
        self.sessions = sessions
        self._tracked = tracked_features

    async def count_adopted_features(self, tenant_id: uuid.UUID) -> int:
        async with self.sessions() as session:
            result = await session.execute(
                select(func.count(func.distinct(feature_adoptions.c.feature_key))).where(
                    feature_adoptions.c.organization_id == tenant_id,
                    feature_adoptions.c.feature_key.in_(self._tracked),
                )
            )
            return result.scalar_one() or 0


class SqlTenantActivitySource:
    """Latest activity per tenant: the newest case opened or user login."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def last_activity(self, tenant_ids: list[uuid.UUID]) -> dict[uuid.UUID, datetime]:
        case_result = await self.session.execute(
            select(cases.c.organization_id, func.max(cases.c.created_at))
            .where(cases.c.organization_id.in_(tenant_ids))
            .group_by(cases.c.organization_id)
        )
        login_result = await self.session.execute(
            select(users.c.organization_id, func.max(users.c.last_login_at))
            .where(
                users.c.organization_id.in_(tenant_ids),
                users.c.last_login_at.is_not(None),
            )
            .group_by(users.c.organization_id)
        )

        latest: dict[uuid.UUID, datetime] = {}
        for tenant_id, seen_at in [*case_result.all(), *login_result.all()]:
            if seen_at is not None and (tenant_id not in latest or seen_at > latest[tenant_id]):
                latest[tenant_id] = seen_at
        return latest


class NullSupportTicketSource:
    """Support ticket source used until a ticketing integration exists.

    Always reports zero tickets, which scores the component at 100.
    """

    async def count_tickets(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> int:
        return 0
