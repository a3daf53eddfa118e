"""Business logic services for the Tenant Health Engine.

All services depend on the Protocols in core/interfaces.py and receive
their dependencies via constructor injection. No framework code (FastAPI,
SQLAlchemy sessions, Celery) belongs here.
"""

from tenant_health.core.services.batch_service import (
    BatchScheduler,
    HealthBatchProcessor,
    JobDispatcher,
    TenantServices,
)
from tenant_health.core.services.health_score_service import (
    HealthScoreCalculator,
    PortfolioService,
)
from tenant_health.core.services.metrics_reader import MetricsReader
from tenant_health.core.services.peer_benchmark_service import (
    BenchmarkLookup,
    PeerBenchmarkAggregator,
)
from tenant_health.core.services.usage_metrics_service import UsageMetricsCollector

__all__ = [
    "BatchScheduler",
    "BenchmarkLookup",
    "HealthBatchProcessor",
    "HealthScoreCalculator",
    "JobDispatcher",
    "MetricsReader",
    "PeerBenchmarkAggregator",
    "PortfolioService",
    "TenantServices",
    "UsageMetricsCollector",
]
