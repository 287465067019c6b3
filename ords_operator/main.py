"""
Main FastAPI application entry point.
Runs the OracleRestDataService controller next to its health and metrics
endpoints in one process.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import sentry_sdk
from fastapi import FastAPI, Request
from prometheus_fastapi_instrumentator import Instrumentator

from ords_operator.api.v1 import health
from ords_operator.config.logging import configure_logging, get_logger
from ords_operator.config.settings import settings
from ords_operator.services.events import EventRecorder
from ords_operator.services.executor import RemoteExecutor
from ords_operator.services.kube_store import KubeStore, load_client_set
from ords_operator.services.reconciler import ServiceReconciler
from ords_operator.workers.event_watcher import EventWatcher
from ords_operator.workers.reconciliation_worker import ReconciliationWorker

# Configure logging
configure_logging()
logger = get_logger(__name__)

# Initialize Sentry for error tracking (production)
if settings.sentry_dsn and settings.is_production:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.environment,
        release=settings.app_version,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Starts the controller in this process:
    1. Object store and remote executor
    2. Reconciliation worker (dispatcher + periodic resync)
    3. Event watcher (instances and owned pods)
    """
    logger.info(
        "application_starting",
        version=settings.app_version,
        environment=settings.environment,
        namespace=settings.watch_namespace or "*",
    )

    client_set = await load_client_set(settings.kubeconfig_path, settings.k8s_in_cluster)
    store = KubeStore(client_set)
    executor = RemoteExecutor(client_set.configuration, timeout_seconds=settings.exec_timeout_seconds)
    reconciler = ServiceReconciler(store, executor, EventRecorder(store), settings)
    worker = ReconciliationWorker(reconciler, store, settings)
    watcher = EventWatcher(store, worker, settings)

    app.state.worker = worker
    app.state.watcher = watcher

    background_tasks = [
        asyncio.create_task(worker.start()),
        asyncio.create_task(watcher.start()),
    ]
    logger.info("application_started", background_tasks=len(background_tasks))

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await watcher.stop()
    await worker.stop()
    for task in background_tasks:
        task.cancel()
    try:
        await asyncio.wait_for(
            asyncio.gather(*background_tasks, return_exceptions=True),
            timeout=30.0,
        )
        logger.info("background_tasks_stopped")
    except asyncio.TimeoutError:
        logger.warning("background_tasks_shutdown_timeout")

    await store.close()
    logger.info("application_shutdown_complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Controller for Oracle REST Data Services attached to single instance databases",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    response = await call_next(request)
    logger.debug(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )
    return response


# Initialize Prometheus metrics
if settings.prometheus_enabled:
    Instrumentator().instrument(app).expose(app, endpoint="/metrics")


# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ords_operator.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
