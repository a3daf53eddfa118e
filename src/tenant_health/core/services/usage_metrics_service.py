"""Usage Metrics Collector: one idempotent daily snapshot per tenant."""

import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from tenant_health.core.interfaces import IMetricsReader, IUsageMetricsRepository
from tenant_health.core.models import UsageMetricSnapshot
from tenant_health.core.services.metrics_reader import window_for_day
from tenant_health.observability import get_logger

logger = get_logger(__name__)


def _today() -> date:
    return datetime.now(UTC).date()


class UsageMetricsCollector:
    """Collect and persist daily usage snapshots.

    Performs no retries itself. A read failure propagates to the caller
    and nothing is written.
    """

    def __init__(
        self,
        reader: IMetricsReader,
        metrics_repo: IUsageMetricsRepository,
        window_days: int = 30,
        today: Callable[[], date] = _today,
    ) -> None:
        """Initialise with injected dependencies.

        Args:
            reader: Reads raw usage counts.
            metrics_repo: UsageMetricSnapshot persistence.
            window_days: Length of the trailing window each snapshot covers.
            today: Clock returning the current UTC date.
        """
        self._reader = reader
        self._metrics = metrics_repo
        self._window_days = window_days
        self._today = today

    async def collect_daily(
        self, tenant_id: uuid.UUID, for_day: date | None = None
    ) -> UsageMetricSnapshot:
        """Read the trailing window ending at ``for_day`` and upsert its snapshot.

        Calling this more than once for the same tenant and day overwrites
        the existing snapshot; the latest call's values win.

        Args:
            tenant_id: Tenant to collect for.
            for_day: Snapshot day. Defaults to today (UTC). A datetime is
                truncated to its date.

        Returns:
            The persisted snapshot.
        """
        day = for_day or self._today()
        if isinstance(day, datetime):
            day = day.date()

        window = window_for_day(day, self._window_days)
        metrics = await self._reader.read(tenant_id, window.start, window.end)
        snapshot = await self._metrics.upsert(tenant_id, day, metrics)

        logger.info(
            "Usage metrics collected",
            tenant_id=str(tenant_id),
            metric_date=day.isoformat(),
            active_users=metrics.users.active_users,
            total_users=metrics.users.total_users,
            cases_closed=metrics.cases.cases_closed,
            support_tickets=metrics.support_tickets,
        )
        return snapshot

    async def get_history(self, tenant_id: uuid.UUID, days: int) -> list[UsageMetricSnapshot]:
        """Return snapshots for the last ``days`` days, oldest first."""
        since = self._today() - timedelta(days=days)
        return await self._metrics.list_since(tenant_id, since)
