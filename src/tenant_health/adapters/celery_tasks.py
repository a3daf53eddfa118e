"""Celery tasks running the batch jobs.

Each task runs the async services on a fresh event loop with its own
database engine, reports progress through the task state, and retries
with exponential backoff: single-tenant jobs back off from 5s, batch and
benchmark jobs from 10s, three attempts in total.
"""

import asyncio
from typing import Any

from celery import Task

from tenant_health.adapters.celery_app import TASK_NAMES, celery_app, settings
from tenant_health.adapters.events import build_event_publisher
from tenant_health.core.jobs import Job, JobKind, default_retry_policies
from tenant_health.database import dispose_database, init_database
from tenant_health.observability import configure_logging, get_logger
from tenant_health.wiring import build_dispatcher

logger = get_logger(__name__)

configure_logging(settings.log_level, json_output=settings.log_json)

_POLICIES = default_retry_policies(
    max_attempts=settings.job_max_attempts,
    single_tenant_backoff_seconds=settings.single_tenant_backoff_seconds,
    batch_backoff_seconds=settings.batch_backoff_seconds,
)


async def _run_job(task: Task, kind: JobKind, payload: dict[str, Any]) -> dict[str, Any]:
    init_database(settings.database_url, settings.database_pool_size, settings.database_echo)
    publisher = build_event_publisher(settings)
    try:
        dispatcher = build_dispatcher(settings, publisher)
        job = Job(kind=kind, payload=payload, retry_policy=_POLICIES[kind], id=task.request.id or "")

        async def report_progress(value: int) -> None:
            task.update_state(state="PROGRESS", meta={"progress": value})

        return await dispatcher.dispatch(job, report_progress)
    finally:
        publisher.close()
        await dispose_database()


def _execute(task: Task, kind: JobKind, payload: dict[str, Any]) -> dict[str, Any]:
    policy = _POLICIES[kind]
    try:
        return asyncio.run(_run_job(task, kind, payload))
    except Exception as exc:
        attempt = task.request.retries + 1
        if not policy.should_retry(attempt):
            logger.error(
                "Job failed",
                job_id=task.request.id,
                kind=kind.value,
                attempts=attempt,
                error=str(exc),
            )
            raise
        countdown = policy.backoff_seconds(attempt)
        logger.warning(
            "Job attempt failed, retrying",
            job_id=task.request.id,
            kind=kind.value,
            attempt=attempt,
            retry_in_seconds=countdown,
            error=str(exc),
        )
        raise task.retry(exc=exc, countdown=countdown, max_retries=policy.max_attempts - 1)


@celery_app.task(bind=True, name=TASK_NAMES[JobKind.SINGLE_TENANT])
def recalculate_tenant_task(self: Task, tenant_id: str, collect_metrics: bool = False) -> dict[str, Any]:
    """Recalculate one tenant's health score."""
    return _execute(
        self,
        JobKind.SINGLE_TENANT,
        {"tenant_id": tenant_id, "collect_metrics": collect_metrics},
    )


@celery_app.task(bind=True, name=TASK_NAMES[JobKind.ALL_TENANTS])
def recalculate_all_tenants_task(self: Task, collect_metrics: bool = True) -> dict[str, Any]:
    """Recalculate every active tenant, sequentially with the inter-tenant delay."""
    return _execute(self, JobKind.ALL_TENANTS, {"collect_metrics": collect_metrics})


@celery_app.task(bind=True, name=TASK_NAMES[JobKind.NIGHTLY_BENCHMARK])
def calculate_benchmarks_task(self: Task) -> dict[str, Any]:
    """Run the peer benchmark aggregator for today."""
    return _execute(self, JobKind.NIGHTLY_BENCHMARK, {})
