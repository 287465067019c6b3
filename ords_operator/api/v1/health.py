"""
Health check endpoints for monitoring and orchestration.
Provides liveness, readiness, and startup probes.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from ords_operator.config.settings import settings

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _components(request: Request):
    worker = getattr(request.app.state, "worker", None)
    watcher = getattr(request.app.state, "watcher", None)
    worker_running = bool(worker and worker.running)
    watch_connected = bool(watcher and watcher.connected)
    return worker_running, watch_connected


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    Returns current status and version.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": _now(),
    }


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness probe.
    Indicates whether the process should be restarted.
    """
    return {"status": "alive", "timestamp": _now()}


@router.get("/ready")
async def readiness(request: Request):
    """
    Kubernetes readiness probe.
    Ready once the watch streams are connected and the worker dispatches.
    """
    worker_running, watch_connected = _components(request)

    if not worker_running or not watch_connected:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "worker": "running" if worker_running else "stopped",
                "watch": "connected" if watch_connected else "disconnected",
                "timestamp": _now(),
            },
        )

    return {
        "status": "ready",
        "worker": "running",
        "watch": "connected",
        "timestamp": _now(),
    }


@router.get("/startup")
async def startup(request: Request):
    """
    Kubernetes startup probe.
    Started once the worker has been launched.
    """
    worker_running, _ = _components(request)
    if not worker_running:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "starting", "timestamp": _now()},
        )
    return {"status": "started", "timestamp": _now()}
