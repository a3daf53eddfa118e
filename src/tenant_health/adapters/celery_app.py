"""Celery runtime for batch jobs.

The API enqueues jobs by task name through CeleryJobQueue; workers run
the tasks in adapters/celery_tasks.py; Celery beat triggers the nightly
health batch and benchmark runs. Results live in the result backend
(Redis by default) so any API process can poll them.

Start a worker with concurrency 1 to keep batch runs sequential:
    celery -A tenant_health.adapters.celery_app worker --concurrency=1 -B
"""

from collections import OrderedDict
from datetime import UTC, datetime
from typing import Any

from celery import Celery
from celery.result import AsyncResult
from celery.schedules import crontab
from kombu import Exchange, Queue

from tenant_health.core.jobs import Job, JobKind, JobState, RetryPolicy, default_retry_policies
from tenant_health.observability import get_logger
from tenant_health.settings import Settings

logger = get_logger(__name__)

settings = Settings()

TASK_NAMES: dict[JobKind, str] = {
    JobKind.SINGLE_TENANT: "tenant_health.recalculate_tenant",
    JobKind.ALL_TENANTS: "tenant_health.recalculate_all_tenants",
    JobKind.NIGHTLY_BENCHMARK: "tenant_health.calculate_benchmarks",
}
KINDS_BY_TASK: dict[str, JobKind] = {name: kind for kind, name in TASK_NAMES.items()}

QUEUE_NAME = "tenant_health"

celery_app = Celery(
    "tenant_health",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

exchange = Exchange(QUEUE_NAME, type="direct", durable=True)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_extended=True,
    # Finished job results stay pollable until they expire
    result_expires=settings.job_result_expires_seconds,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.job_worker_concurrency,
    task_default_queue=QUEUE_NAME,
    task_default_exchange=QUEUE_NAME,
    task_default_routing_key=QUEUE_NAME,
    task_queues=(Queue(QUEUE_NAME, exchange=exchange, routing_key=QUEUE_NAME, durable=True),),
    include=["tenant_health.adapters.celery_tasks"],
    timezone="UTC",
)

celery_app.conf.beat_schedule = {
    "nightly-health-batch": {
        "task": TASK_NAMES[JobKind.ALL_TENANTS],
        "schedule": crontab(hour=settings.nightly_health_batch_hour, minute=0),
        "kwargs": {"collect_metrics": True},
    },
    "nightly-peer-benchmarks": {
        "task": TASK_NAMES[JobKind.NIGHTLY_BENCHMARK],
        "schedule": crontab(hour=settings.nightly_benchmark_hour, minute=0),
    },
}

# Celery result states -> job states
_STATES: dict[str, JobState] = {
    "PENDING": JobState.WAITING,
    "RECEIVED": JobState.WAITING,
    "STARTED": JobState.ACTIVE,
    "PROGRESS": JobState.ACTIVE,
    "RETRY": JobState.DELAYED,
    "SUCCESS": JobState.COMPLETED,
    "FAILURE": JobState.FAILED,
    "REVOKED": JobState.FAILED,
}


class CeleryJobQueue:
    """IJobQueue implementation that hands jobs to Celery workers.

    The kind of each job sent from this process is remembered for the
    most recent ``max_tracked_jobs`` sends, so a job can be polled before a
    worker has stored its task name. Older ids fall back to the task name
    in the result backend.
    """

    def __init__(
        self,
        app: Celery = celery_app,
        retry_policies: dict[JobKind, RetryPolicy] | None = None,
        max_tracked_jobs: int = 1000,
    ) -> None:
        self._app = app
        self._policies = retry_policies or default_retry_policies()
        self._max_tracked = max_tracked_jobs
        self._kinds: OrderedDict[str, JobKind] = OrderedDict()

    async def enqueue(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        """Send the job's task to the broker and return it in the waiting state."""
        result = self._app.send_task(TASK_NAMES[kind], kwargs=payload)
        self._kinds[result.id] = kind
        while len(self._kinds) > self._max_tracked:
            self._kinds.popitem(last=False)
        logger.debug("Job sent to Celery", job_id=result.id, kind=kind.value)
        return Job(
            kind=kind,
            payload=payload,
            retry_policy=self._policies[kind],
            id=result.id,
        )

    async def get_job(self, job_id: str) -> Job | None:
        """Rebuild a job's status from its Celery result.

        Returns None for ids that are neither tracked here nor carry a
        task name in the result backend.
        """
        result = AsyncResult(job_id, app=self._app)
        kind = self._kinds.get(job_id) or KINDS_BY_TASK.get(result.name or "")
        if kind is None:
            return None
        return job_from_result(result, kind, self._policies[kind])


def job_from_result(result: AsyncResult, kind: JobKind, policy: RetryPolicy) -> Job:
    """Map a Celery AsyncResult onto the engine's Job model."""
    state = _STATES.get(result.state, JobState.WAITING)
    info = result.info
    done = result.date_done if isinstance(result.date_done, datetime) else None
    job = Job(
        kind=kind,
        payload=dict(result.kwargs or {}),
        retry_policy=policy,
        id=result.id,
        state=state,
        attempts=(result.retries or 0) + (0 if state is JobState.WAITING else 1),
        finished_at=done if state in (JobState.COMPLETED, JobState.FAILED) else None,
    )

    if state is JobState.COMPLETED:
        job.result = info if isinstance(info, dict) else {"value": info}
        job.progress = 100
    elif state is JobState.ACTIVE and isinstance(info, dict):
        job.progress = int(info.get("progress", 0))
    elif state in (JobState.FAILED, JobState.DELAYED) and info is not None:
        job.failed_reason = str(info)

    if job.finished_at is not None and job.finished_at.tzinfo is None:
        job.finished_at = job.finished_at.replace(tzinfo=UTC)
    return job
