"""Batch Scheduler: rate-limited recalculation across tenants.

Tenants within an all-tenants run are processed sequentially with a
fixed delay between them. This caps write pressure on the shared store
regardless of how many queue workers are running. Each tenant runs in
its own service scope (one database transaction), so a failing tenant is
rolled back and counted without affecting the others.

Jobs are the unit of retry. Per-tenant failures never fail the job; only
errors outside the per-tenant loop (e.g. the tenant directory being
unreachable) propagate to the queue's retry/backoff.
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from tenant_health.core.events import Topics
from tenant_health.core.interfaces import IEventPublisher, IJobQueue, ITenantDirectory
from tenant_health.core.jobs import Job, JobKind, ProgressReporter
from tenant_health.core.scoring import round_half_up
from tenant_health.core.services.health_score_service import HealthScoreCalculator
from tenant_health.core.services.peer_benchmark_service import PeerBenchmarkAggregator
from tenant_health.core.services.usage_metrics_service import UsageMetricsCollector
from tenant_health.core.types import BatchResult
from tenant_health.errors import ConflictError, JobNotFoundError
from tenant_health.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TenantServices:
    """The services needed to process one tenant, bound to one transaction."""

    collector: UsageMetricsCollector
    calculator: HealthScoreCalculator


# Opens a fresh transactional scope and yields services bound to it.
TenantServicesScope = Callable[[], AbstractAsyncContextManager[TenantServices]]
AggregatorScope = Callable[[], AbstractAsyncContextManager[PeerBenchmarkAggregator]]


def _elapsed_ms(started: float, now: float) -> int:
    return round_half_up((now - started) * 1000)


class HealthBatchProcessor:
    """Run {collect, score} for one tenant or for every active tenant."""

    def __init__(
        self,
        tenant_directory: ITenantDirectory,
        services_scope: TenantServicesScope,
        event_publisher: IEventPublisher,
        inter_tenant_delay_ms: int = 100,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise with injected dependencies.

        Args:
            tenant_directory: Source of active tenants.
            services_scope: Factory for per-tenant transactional service scopes.
            event_publisher: Domain event publisher.
            inter_tenant_delay_ms: Pause between consecutive tenants.
            sleep: Awaitable sleep, injectable for tests.
            monotonic: Monotonic clock used for duration_ms.
        """
        self._tenants = tenant_directory
        self._scope = services_scope
        self._publisher = event_publisher
        self._delay_seconds = max(0, inter_tenant_delay_ms) / 1000.0
        self._sleep = sleep
        self._monotonic = monotonic

    async def process_tenant(self, tenant_id: uuid.UUID, collect_metrics: bool) -> None:
        """Optionally collect today's metrics, then calculate a fresh score.

        Raises:
            Exception: Whatever the collector or calculator raised.
        """
        async with self._scope() as services:
            if collect_metrics:
                await services.collector.collect_daily(tenant_id)
            await services.calculator.calculate(tenant_id)

    async def run_single(
        self, tenant_id: uuid.UUID, collect_metrics: bool = False
    ) -> BatchResult:
        """Process one tenant with no delay.

        Returns:
            BatchResult with processed/failed of 0 or 1.
        """
        started = self._monotonic()
        processed = failed = 0
        try:
            await self.process_tenant(tenant_id, collect_metrics)
            processed = 1
        except Exception:
            logger.exception("Tenant health recalculation failed", tenant_id=str(tenant_id))
            failed = 1

        result = BatchResult(
            processed=processed,
            failed=failed,
            duration_ms=_elapsed_ms(started, self._monotonic()),
        )
        logger.info(
            "Single tenant recalculation finished",
            tenant_id=str(tenant_id),
            **result.as_dict(),
        )
        return result

    async def run_all(
        self,
        collect_metrics: bool = True,
        report_progress: ProgressReporter | None = None,
    ) -> BatchResult:
        """Process every active tenant in order.

        After tenant ``i`` (0-based) of ``total``, progress is reported as
        ``(i + 1) / total * 100`` rounded half up. The inter-tenant delay is applied
        between tenants, never after the last one.

        Args:
            collect_metrics: Collect a usage snapshot before scoring each tenant.
            report_progress: Optional async progress callback.

        Returns:
            BatchResult where processed + failed equals the tenant count.

        Raises:
            Exception: If the active tenant list cannot be loaded.
        """
        started = self._monotonic()
        tenants = await self._tenants.list_active_tenants()
        total = len(tenants)

        logger.info(
            "Batch health recalculation started",
            total=total,
            collect_metrics=collect_metrics,
        )

        processed = failed = 0
        for index, tenant in enumerate(tenants):
            try:
                await self.process_tenant(tenant.id, collect_metrics)
                processed += 1
            except Exception:
                logger.exception(
                    "Tenant health recalculation failed",
                    tenant_id=str(tenant.id),
                    tenant_name=tenant.name,
                )
                failed += 1

            if report_progress is not None:
                await report_progress(round_half_up((index + 1) / total * 100))

            if index < total - 1 and self._delay_seconds > 0:
                await self._sleep(self._delay_seconds)

        result = BatchResult(
            processed=processed,
            failed=failed,
            duration_ms=_elapsed_ms(started, self._monotonic()),
        )
        logger.info("Batch health recalculation finished", **result.as_dict())

        await self._publisher.publish(
            Topics.BATCH_COMPLETED,
            {"event_type": Topics.BATCH_COMPLETED, "total": total, **result.as_dict()},
        )
        return result


class JobDispatcher:
    """Executes queued jobs by kind. Queue runtimes call dispatch()."""

    def __init__(
        self,
        processor: HealthBatchProcessor,
        aggregator_scope: AggregatorScope,
    ) -> None:
        self._processor = processor
        self._aggregator_scope = aggregator_scope

    async def dispatch(self, job: Job, report_progress: ProgressReporter) -> dict[str, Any]:
        """Run one attempt of ``job`` and return its result payload.

        Raises:
            ConflictError: If the job kind is not recognised.
        """
        if job.kind is JobKind.SINGLE_TENANT:
            result = await self._processor.run_single(
                uuid.UUID(str(job.payload["tenant_id"])),
                collect_metrics=bool(job.payload.get("collect_metrics", False)),
            )
            await report_progress(100)
            return result.as_dict()

        if job.kind is JobKind.ALL_TENANTS:
            result = await self._processor.run_all(
                collect_metrics=bool(job.payload.get("collect_metrics", True)),
                report_progress=report_progress,
            )
            return result.as_dict()

        if job.kind is JobKind.NIGHTLY_BENCHMARK:
            async with self._aggregator_scope() as aggregator:
                run = await aggregator.run()
            await report_progress(100)
            return run.as_dict()

        raise ConflictError(f"Unsupported job kind '{job.kind}'.")


class BatchScheduler:
    """Accepts recalculation requests and hands them to the job queue.

    Every schedule_* call returns the queued Job immediately; callers poll
    get_job() for progress and the {processed, failed, duration_ms} result.
    """

    def __init__(self, job_queue: IJobQueue) -> None:
        self._queue = job_queue

    async def schedule_tenant(
        self, tenant_id: uuid.UUID, collect_metrics: bool = False
    ) -> Job:
        """Queue a single-tenant recalculation."""
        job = await self._queue.enqueue(
            JobKind.SINGLE_TENANT,
            {"tenant_id": str(tenant_id), "collect_metrics": collect_metrics},
        )
        logger.info(
            "Tenant recalculation queued",
            job_id=job.id,
            tenant_id=str(tenant_id),
            collect_metrics=collect_metrics,
        )
        return job

    async def schedule_all_tenants(self, collect_metrics: bool = True) -> Job:
        """Queue an all-tenants recalculation."""
        job = await self._queue.enqueue(
            JobKind.ALL_TENANTS, {"collect_metrics": collect_metrics}
        )
        logger.info("Batch recalculation queued", job_id=job.id, collect_metrics=collect_metrics)
        return job

    async def schedule_benchmarks(self) -> Job:
        """Queue a peer benchmark aggregation run."""
        job = await self._queue.enqueue(JobKind.NIGHTLY_BENCHMARK, {})
        logger.info("Benchmark calculation queued", job_id=job.id)
        return job

    async def get_job(self, job_id: str) -> Job:
        """Return a job's current status.

        Raises:
            JobNotFoundError: If the queue does not know the job (or has disposed of it).
        """
        job = await self._queue.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found.")
        return job
