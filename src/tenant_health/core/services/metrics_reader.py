"""Metrics Reader: gathers raw usage counts for one tenant and window.

Pure read with no state. The five source reads are independent and run
concurrently, so sources must not share one AsyncSession.
"""

import asyncio
import uuid
from datetime import UTC, date, datetime, time, timedelta

from tenant_health.core.interfaces import (
    ICampaignSource,
    ICaseSource,
    IFeatureAdoptionSource,
    IIdentitySource,
    ISupportTicketSource,
)
from tenant_health.core.types import MetricWindow, TenantMetrics
from tenant_health.observability import get_logger

logger = get_logger(__name__)


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=UTC)


def trailing_window(end: datetime, days: int) -> MetricWindow:
    """The ``days``-long window ending at ``end``."""
    return MetricWindow(start=end - timedelta(days=days), end=end)


def window_for_day(day: date, days: int) -> MetricWindow:
    """The ``days``-long window ending at the close of ``day`` (exclusive midnight)."""
    return trailing_window(start_of_day(day) + timedelta(days=1), days)


class MetricsReader:
    """Read every usage count the engine needs for one tenant."""

    def __init__(
        self,
        identity: IIdentitySource,
        cases: ICaseSource,
        campaigns: ICampaignSource,
        features: IFeatureAdoptionSource,
        tickets: ISupportTicketSource,
    ) -> None:
        self._identity = identity
        self._cases = cases
        self._campaigns = campaigns
        self._features = features
        self._tickets = tickets

    async def read(
        self, tenant_id: uuid.UUID, start: datetime, end: datetime
    ) -> TenantMetrics:
        """Read all counts for ``[start, end)``.

        Args:
            tenant_id: Tenant to read.
            start: Window start (inclusive). Also the login activity cutoff.
            end: Window end (exclusive).

        Returns:
            TenantMetrics with every count populated.

        Raises:
            Exception: Any source failure propagates unchanged; retrying is
                the batch scheduler's job.
        """
        users, cases, assignments, adopted, tickets = await asyncio.gather(
            self._identity.count_users(tenant_id, start),
            self._cases.get_case_stats(tenant_id, start, end),
            self._campaigns.get_assignment_stats(tenant_id),
            self._features.count_adopted_features(tenant_id),
            self._tickets.count_tickets(tenant_id, start, end),
        )

        logger.debug(
            "Tenant metrics read",
            tenant_id=str(tenant_id),
            active_users=users.active_users,
            cases_closed=cases.cases_closed,
            assignments_total=assignments.assignments_total,
            adopted_features=adopted,
            support_tickets=tickets,
        )

        return TenantMetrics(
            tenant_id=tenant_id,
            users=users,
            cases=cases,
            assignments=assignments,
            adopted_features=adopted,
            support_tickets=tickets,
        )
