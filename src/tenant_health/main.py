"""Tenant Health Engine service entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenant_health import __version__
from tenant_health.adapters.celery_app import CeleryJobQueue
from tenant_health.adapters.events import build_event_publisher
from tenant_health.api.router import router
from tenant_health.core.jobs import default_retry_policies
from tenant_health.database import dispose_database, init_database
from tenant_health.errors import ConflictError, NotFoundError
from tenant_health.observability import configure_logging, get_logger
from tenant_health.settings import Settings

settings = Settings()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    # Startup
    configure_logging(settings.log_level, json_output=settings.log_json)
    init_database(settings.database_url, settings.database_pool_size, settings.database_echo)

    publisher = build_event_publisher(settings)
    policies = default_retry_policies(
        max_attempts=settings.job_max_attempts,
        single_tenant_backoff_seconds=settings.single_tenant_backoff_seconds,
        batch_backoff_seconds=settings.batch_backoff_seconds,
    )

    app.state.job_queue = CeleryJobQueue(retry_policies=policies)
    app.state.event_publisher = publisher
    logger.info(
        "Tenant health engine started",
        environment=settings.environment,
        broker=settings.celery_broker_url.rsplit("@", 1)[-1],
    )
    yield

    # Shutdown
    publisher.close()
    await dispose_database()


app = FastAPI(title=settings.service_name, version=__version__, lifespan=lifespan)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.get("/health", tags=["Health"])
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok", "service": settings.service_name}


app.include_router(router, prefix="/api/v1")
