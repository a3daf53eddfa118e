"""Peer Benchmark Aggregator and Benchmark Lookup.

Benchmarks are privacy-protected: a cohort with fewer than
``min_peer_count`` (default 5) tenants is never written and never served,
so no individual tenant's value can be inferred.

Aggregates are cached per (metric, filter, day). Lookups read the most
recent aggregate whose filter matches exactly and never widen the filter.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

from tenant_health.core.config import DEFAULT_BENCHMARK_CONFIG, BenchmarkConfig
from tenant_health.core.events import Topics
from tenant_health.core.interfaces import (
    IEventPublisher,
    IHealthScoreRepository,
    IPeerBenchmarkRepository,
    ITenantDirectory,
)
from tenant_health.core.models import HealthScoreRecord
from tenant_health.core.statistics import percentile_position, summarize
from tenant_health.core.types import (
    ALL_TENANTS,
    BenchmarkDisplay,
    BenchmarkFilter,
    BenchmarkStats,
    TenantProfile,
)
from tenant_health.observability import get_logger

logger = get_logger(__name__)

# Benchmark metric -> HealthScoreRecord component column.
# case_resolution_time has no duration source yet and uses the case
# resolution score as a proxy.
METRIC_COMPONENTS: dict[str, str] = {
    "attestation_completion_rate": "campaign_completion_score",
    "case_on_time_rate": "case_resolution_score",
    "login_rate": "login_score",
    "feature_adoption_rate": "feature_adoption_score",
    "case_resolution_time": "case_resolution_score",
}


def metric_value(record: HealthScoreRecord | None, metric_name: str) -> float | None:
    """Extract a tenant's value for a benchmark metric from its latest score.

    Returns None when there is no record or the metric name is unknown.
    """
    if record is None:
        return None

    column = METRIC_COMPONENTS.get(metric_name)
    if column is None:
        logger.warning("Unknown benchmark metric", metric_name=metric_name)
        return None

    return float(getattr(record, column))


def _today() -> date:
    return datetime.now(UTC).date()


@dataclass(frozen=True)
class BenchmarkRunResult:
    """Counts from one nightly aggregation run."""

    written: int
    skipped: int
    failed: int

    def as_dict(self) -> dict[str, int]:
        return {"written": self.written, "skipped": self.skipped, "failed": self.failed}


class PeerBenchmarkAggregator:
    """Nightly computation of per-cohort metric distributions."""

    def __init__(
        self,
        tenant_directory: ITenantDirectory,
        score_repo: IHealthScoreRepository,
        benchmark_repo: IPeerBenchmarkRepository,
        event_publisher: IEventPublisher,
        config: BenchmarkConfig = DEFAULT_BENCHMARK_CONFIG,
        today: Callable[[], date] = _today,
    ) -> None:
        """Initialise with injected dependencies.

        Args:
            tenant_directory: Source of active tenants and cohort attributes.
            score_repo: HealthScoreRecord reads (latest per tenant).
            benchmark_repo: PeerBenchmark persistence.
            event_publisher: Domain event publisher.
            config: Metrics, size buckets and privacy floor.
            today: Clock returning the current UTC date.
        """
        self._tenants = tenant_directory
        self._scores = score_repo
        self._benchmarks = benchmark_repo
        self._publisher = event_publisher
        self._config = config
        self._today = today

    def filter_combinations(self, tenants: list[TenantProfile]) -> list[BenchmarkFilter]:
        """All-tenants, one per distinct industry, and one per size bucket.

        Industries are listed in order of first appearance.
        """
        filters: list[BenchmarkFilter] = [ALL_TENANTS]

        industries: dict[str, None] = {}
        for tenant in tenants:
            if tenant.industry_sector:
                industries.setdefault(tenant.industry_sector, None)
        filters.extend(BenchmarkFilter(industry_sector=name) for name in industries)

        filters.extend(
            BenchmarkFilter(employee_min=bucket.employee_min, employee_max=bucket.employee_max)
            for bucket in self._config.size_buckets
        )
        return filters

    async def run_nightly(self) -> int:
        """Compute and cache every (metric, filter) aggregate for today.

        Cohorts below the privacy floor are skipped without touching any
        existing row. A failure in one combination is logged and the run
        continues with the next.

        Returns:
            Number of aggregates written.
        """
        result = await self.run()
        return result.written

    async def run(self) -> BenchmarkRunResult:
        """Same as run_nightly() but returns written, skipped and failed counts."""
        day = self._today()
        tenants = await self._tenants.list_active_tenants()
        latest = await self._scores.list_latest_per_tenant(
            tenant_ids=[tenant.id for tenant in tenants]
        )
        latest_by_tenant = {record.tenant_id: record for record in latest}
        filters = self.filter_combinations(tenants)

        logger.info(
            "Benchmark calculation started",
            metrics=len(self._config.metrics),
            filters=len(filters),
            tenants=len(tenants),
        )

        written = skipped = failed = 0
        for metric_name in self._config.metrics:
            for benchmark_filter in filters:
                try:
                    values = self._collect_values(
                        metric_name, benchmark_filter, tenants, latest_by_tenant
                    )
                    if len(values) < self._config.min_peer_count:
                        logger.debug(
                            "Benchmark skipped below privacy floor",
                            metric_name=metric_name,
                            filter=benchmark_filter.describe(len(values)),
                            peer_count=len(values),
                        )
                        skipped += 1
                        continue

                    stats = summarize(values)
                    await self._benchmarks.upsert(metric_name, benchmark_filter, day, stats)
                    written += 1
                except Exception:
                    logger.exception(
                        "Benchmark calculation failed",
                        metric_name=metric_name,
                        industry_sector=benchmark_filter.industry_sector,
                        employee_min=benchmark_filter.employee_min,
                        employee_max=benchmark_filter.employee_max,
                    )
                    failed += 1

        result = BenchmarkRunResult(written=written, skipped=skipped, failed=failed)
        logger.info("Benchmark calculation finished", **result.as_dict())

        await self._publisher.publish(
            Topics.BENCHMARKS_REFRESHED,
            {
                "event_type": Topics.BENCHMARKS_REFRESHED,
                "calculated_at": day.isoformat(),
                **result.as_dict(),
            },
        )
        return result

    @staticmethod
    def _collect_values(
        metric_name: str,
        benchmark_filter: BenchmarkFilter,
        tenants: list[TenantProfile],
        latest_by_tenant: dict[uuid.UUID, HealthScoreRecord],
    ) -> list[float]:
        values: list[float] = []
        for tenant in tenants:
            if not benchmark_filter.matches(tenant):
                continue
            value = metric_value(latest_by_tenant.get(tenant.id), metric_name)
            if value is not None:
                values.append(value)
        return values


class BenchmarkLookup:
    """Compare one tenant against its cached peer benchmarks."""

    def __init__(
        self,
        tenant_directory: ITenantDirectory,
        score_repo: IHealthScoreRepository,
        benchmark_repo: IPeerBenchmarkRepository,
        config: BenchmarkConfig = DEFAULT_BENCHMARK_CONFIG,
    ) -> None:
        self._tenants = tenant_directory
        self._scores = score_repo
        self._benchmarks = benchmark_repo
        self._config = config

    async def compare(
        self,
        tenant_id: uuid.UUID,
        metric_name: str,
        benchmark_filter: BenchmarkFilter | None = None,
    ) -> BenchmarkDisplay | None:
        """Locate a tenant's value within its peer distribution.

        Args:
            tenant_id: Tenant to compare.
            metric_name: One of the benchmark metrics.
            benchmark_filter: Cohort to compare against; None means all tenants.

        Returns:
            BenchmarkDisplay, or None when the tenant has no value, no
            aggregate matches the filter exactly, or the aggregate is below
            the privacy floor.
        """
        benchmark_filter = benchmark_filter or ALL_TENANTS

        record = await self._scores.get_latest(tenant_id)
        value = metric_value(record, metric_name)
        if value is None:
            logger.debug(
                "No metric value for tenant",
                tenant_id=str(tenant_id),
                metric_name=metric_name,
            )
            return None

        benchmark = await self._benchmarks.get_latest(metric_name, benchmark_filter)
        if benchmark is None or benchmark.peer_count < self._config.min_peer_count:
            logger.debug(
                "Insufficient peers for benchmark",
                metric_name=metric_name,
                peer_count=benchmark.peer_count if benchmark else 0,
                min_peer_count=self._config.min_peer_count,
            )
            return None

        percentile = percentile_position(
            value,
            min_value=benchmark.min_value,
            p25=benchmark.p25,
            median=benchmark.median,
            p75=benchmark.p75,
            max_value=benchmark.max_value,
        )

        return BenchmarkDisplay(
            metric_name=metric_name,
            your_value=value,
            percentile=percentile,
            p25=benchmark.p25,
            median=benchmark.median,
            p75=benchmark.p75,
            peer_count=benchmark.peer_count,
            filter_description=benchmark_filter.describe(benchmark.peer_count),
            calculated_at=benchmark.calculated_at,
        )

    async def get_overview(
        self, benchmark_filter: BenchmarkFilter | None = None
    ) -> dict[str, BenchmarkStats | None]:
        """Cached stats for every metric plus a live overall-score distribution.

        The ``health_score`` entry is computed on the fly from each matching
        tenant's latest overall score with the same privacy floor. Any
        entry below the floor is None.
        """
        benchmark_filter = benchmark_filter or ALL_TENANTS
        overview: dict[str, BenchmarkStats | None] = {}

        for metric_name in self._config.metrics:
            benchmark = await self._benchmarks.get_latest(metric_name, benchmark_filter)
            if benchmark is None or benchmark.peer_count < self._config.min_peer_count:
                overview[metric_name] = None
                continue
            overview[metric_name] = BenchmarkStats(
                peer_count=benchmark.peer_count,
                p25=benchmark.p25,
                median=benchmark.median,
                p75=benchmark.p75,
                mean=benchmark.mean,
                min_value=benchmark.min_value,
                max_value=benchmark.max_value,
            )

        overview["health_score"] = await self._live_health_score_stats(benchmark_filter)
        return overview

    async def _live_health_score_stats(
        self, benchmark_filter: BenchmarkFilter
    ) -> BenchmarkStats | None:
        tenants = [
            tenant
            for tenant in await self._tenants.list_active_tenants()
            if benchmark_filter.matches(tenant)
        ]
        latest = await self._scores.list_latest_per_tenant(
            tenant_ids=[tenant.id for tenant in tenants]
        )
        scores = [float(record.overall_score) for record in latest]
        if len(scores) < self._config.min_peer_count:
            return None
        return summarize(scores)
