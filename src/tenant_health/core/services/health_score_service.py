"""Health Score Calculator and portfolio overview services.

HealthScoreCalculator reads a tenant's metrics and previous score
concurrently, scores them with HealthScorer, and appends a new
HealthScoreRecord. PortfolioService joins every active tenant with its
latest record for client success dashboards.
"""

import asyncio
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from tenant_health.core.events import Topics
from tenant_health.core.interfaces import (
    IEventPublisher,
    IHealthScoreRepository,
    IMetricsReader,
    ITenantActivitySource,
    ITenantDirectory,
)
from tenant_health.core.models import HealthScoreRecord
from tenant_health.core.scoring import HealthScorer, round_half_up
from tenant_health.core.services.metrics_reader import trailing_window
from tenant_health.core.types import (
    AlertLevel,
    ComponentScores,
    HealthTrend,
    PortfolioEntry,
    PortfolioSummary,
    RiskLevel,
    TenantProfile,
)
from tenant_health.errors import ConflictError, NotFoundError
from tenant_health.observability import get_logger

logger = get_logger(__name__)

# Sort keys accepted by the portfolio overview
VALID_PORTFOLIO_SORTS: frozenset[str] = frozenset({"name", "health_score", "last_activity"})

# Sort key for tenants with no recorded activity
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HealthScoreCalculator:
    """Calculate and persist tenant health scores.

    Records are append-only: every calculation inserts a new row and the
    previous record's overall score becomes the new row's previous_score.
    """

    def __init__(
        self,
        reader: IMetricsReader,
        score_repo: IHealthScoreRepository,
        event_publisher: IEventPublisher,
        scorer: HealthScorer | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialise with injected dependencies.

        Args:
            reader: Reads raw usage counts.
            score_repo: HealthScoreRecord persistence.
            event_publisher: Domain event publisher.
            scorer: Scoring engine; defaults to the standard configuration.
            clock: Returns the current UTC time.
        """
        self._reader = reader
        self._scores = score_repo
        self._publisher = event_publisher
        self._scorer = scorer or HealthScorer()
        self._clock = clock

    async def calculate(self, tenant_id: uuid.UUID) -> HealthScoreRecord:
        """Score a tenant over the trailing window and persist the result.

        Metric reads and the previous-score lookup run concurrently; the
        record is written only after all of them resolve.

        Args:
            tenant_id: Tenant to score.

        Returns:
            The newly created HealthScoreRecord.
        """
        now = self._clock()
        window = trailing_window(now, self._scorer.config.window_days)

        # The reader uses its own sessions, so get_latest is the only statement
        # running on the repository session here.
        metrics, previous = await asyncio.gather(
            self._reader.read(tenant_id, window.start, window.end),
            self._scores.get_latest(tenant_id),
        )
        previous_score = previous.overall_score if previous is not None else None

        assessment = self._scorer.assess(metrics, previous_score)
        record = await self._scores.create(
            tenant_id=tenant_id,
            calculated_at=now,
            assessment=assessment,
        )

        logger.info(
            "Health score calculated",
            tenant_id=str(tenant_id),
            overall_score=assessment.overall_score,
            previous_score=previous_score,
            trend=assessment.trend.value,
            risk_level=assessment.risk_level.value,
        )

        event = {
            "event_type": Topics.SCORE_CALCULATED,
            "tenant_id": str(tenant_id),
            "health_score_id": str(record.id),
            "overall_score": assessment.overall_score,
            "previous_score": previous_score,
            "trend": assessment.trend.value,
            "risk_level": assessment.risk_level.value,
            "alert_level": assessment.alert_level.value,
            "calculated_at": now.isoformat(),
        }
        await self._publisher.publish(Topics.SCORE_CALCULATED, event)

        if assessment.alert_level is AlertLevel.PROACTIVE:
            await self._publisher.publish(
                Topics.HIGH_RISK_DETECTED,
                {**event, "event_type": Topics.HIGH_RISK_DETECTED},
            )

        return record

    async def get_latest_score(self, tenant_id: uuid.UUID) -> HealthScoreRecord:
        """Return the tenant's most recent score.

        Raises:
            NotFoundError: If the tenant has never been scored.
        """
        record = await self._scores.get_latest(tenant_id)
        if record is None:
            raise NotFoundError(f"No health score recorded for tenant {tenant_id}.")
        return record

    async def get_score_history(
        self, tenant_id: uuid.UUID, days: int
    ) -> list[HealthScoreRecord]:
        """Return every score calculated in the last ``days`` days, oldest first."""
        since = self._clock() - timedelta(days=days)
        return await self._scores.list_since(tenant_id, since)

    async def list_high_risk(self) -> list[HealthScoreRecord]:
        """Return the latest record of every tenant whose latest risk is HIGH."""
        return await self._scores.list_latest_per_tenant(risk_level=RiskLevel.HIGH.value)


class PortfolioService:
    """Portfolio overview of every active tenant and its latest score."""

    def __init__(
        self,
        tenant_directory: ITenantDirectory,
        score_repo: IHealthScoreRepository,
        activity_source: ITenantActivitySource | None = None,
        low_risk_from: int = 80,
        high_risk_below: int = 60,
    ) -> None:
        self._tenants = tenant_directory
        self._scores = score_repo
        self._activity = activity_source
        self._low_risk_from = low_risk_from
        self._high_risk_below = high_risk_below

    async def get_portfolio(
        self,
        risk_level: RiskLevel | None = None,
        sort_by: str | None = None,
        descending: bool = False,
    ) -> tuple[list[PortfolioEntry], PortfolioSummary]:
        """Build the portfolio overview.

        The risk filter uses score bands (HIGH < 60, MEDIUM 60-79, LOW >= 80)
        and applies to the entries only; the summary always covers every
        active tenant.

        Args:
            risk_level: Optional score band to keep.
            sort_by: "name", "health_score" or "last_activity"; None keeps
                directory order. Tenants without activity sort as oldest.
            descending: Reverse the sort order.

        Returns:
            Tuple of (entries, summary).

        Raises:
            ConflictError: If sort_by is not a supported sort key.
        """
        if sort_by is not None and sort_by not in VALID_PORTFOLIO_SORTS:
            raise ConflictError(
                f"Invalid sort_by '{sort_by}'. Must be one of: {sorted(VALID_PORTFOLIO_SORTS)}"
            )

        tenants = await self._tenants.list_active_tenants()
        tenant_ids = [tenant.id for tenant in tenants]
        latest = await self._scores.list_latest_per_tenant(tenant_ids=tenant_ids)
        latest_by_tenant = {record.tenant_id: record for record in latest}
        activity = (
            await self._activity.last_activity(tenant_ids)
            if self._activity is not None and tenant_ids
            else {}
        )

        entries = [
            self._build_entry(
                tenant, latest_by_tenant.get(tenant.id), activity.get(tenant.id)
            )
            for tenant in tenants
        ]
        summary = self._summarize(entries)

        if risk_level is not None:
            entries = [e for e in entries if self._score_band(e.health_score) is risk_level]

        if sort_by == "name":
            entries.sort(key=lambda e: e.name.casefold(), reverse=descending)
        elif sort_by == "health_score":
            entries.sort(key=lambda e: e.health_score, reverse=descending)
        elif sort_by == "last_activity":
            entries.sort(
                key=lambda e: (e.last_activity is not None, e.last_activity or _EPOCH),
                reverse=descending,
            )

        logger.info(
            "Portfolio overview built",
            total=summary.total,
            returned=len(entries),
            risk_level=risk_level.value if risk_level else None,
        )
        return entries, summary

    def _score_band(self, score: int) -> RiskLevel:
        if score < self._high_risk_below:
            return RiskLevel.HIGH
        if score < self._low_risk_from:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def _build_entry(
        tenant: TenantProfile,
        record: HealthScoreRecord | None,
        last_activity: datetime | None,
    ) -> PortfolioEntry:
        if record is None:
            return PortfolioEntry(
                tenant_id=tenant.id,
                name=tenant.name,
                industry_sector=tenant.industry_sector,
                employee_count=tenant.employee_count,
                health_score=0,
                score_change=0,
                trend=None,
                risk_level=None,
                alert_level=None,
                components=None,
                last_calculated_at=None,
                last_activity=last_activity,
            )

        score_change = (
            record.overall_score - record.previous_score
            if record.previous_score is not None
            else 0
        )
        return PortfolioEntry(
            tenant_id=tenant.id,
            name=tenant.name,
            industry_sector=tenant.industry_sector,
            employee_count=tenant.employee_count,
            health_score=record.overall_score,
            score_change=score_change,
            trend=HealthTrend(record.trend),
            risk_level=RiskLevel(record.risk_level),
            alert_level=AlertLevel(record.alert_level),
            components=ComponentScores(
                login=record.login_score,
                case_resolution=record.case_resolution_score,
                campaign_completion=record.campaign_completion_score,
                feature_adoption=record.feature_adoption_score,
                support_tickets=record.support_ticket_score,
            ),
            last_calculated_at=record.calculated_at,
            last_activity=last_activity,
        )

    def _summarize(self, entries: list[PortfolioEntry]) -> PortfolioSummary:
        healthy = at_risk = critical = 0
        for entry in entries:
            band = self._score_band(entry.health_score)
            if band is RiskLevel.LOW:
                healthy += 1
            elif band is RiskLevel.MEDIUM:
                at_risk += 1
            else:
                critical += 1

        total = len(entries)
        average = round_half_up(sum(e.health_score for e in entries) / total) if total else 0
        return PortfolioSummary(
            total=total,
            healthy=healthy,
            at_risk=at_risk,
            critical=critical,
            average_score=average,
        )
