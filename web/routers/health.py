"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from tinyhci import __version__
from tinyhci.coordinator import Coordinator
from web.deps import get_coordinator

router = APIRouter()


@router.get("/health")
def health(coordinator: Coordinator = Depends(get_coordinator)) -> dict[str, Any]:
    """Health check endpoint.

    Returns:
        Health status with version, worker state and queue depth.
    """
    return {
        "status": "ok",
        "version": __version__,
        "worker_running": coordinator.running,
        "queued": coordinator.queue.qsize(),
        "builds": len(coordinator.index),
    }


@router.get("/")
def root() -> dict[str, str]:
    """Root endpoint.

    Returns:
        Service name and version.
    """
    return {"name": "tinyhci", "version": __version__}
