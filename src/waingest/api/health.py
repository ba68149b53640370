"""Health endpoints, one router per APP_ROLE."""

from fastapi import APIRouter

public_router = APIRouter(tags=["health"])
worker_router = APIRouter(tags=["health"])


@public_router.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "waingest"}


@worker_router.get("/tasks/health")
def tasks_health() -> dict:
    """Worker liveness; does not touch the database or the queue."""
    return {"status": "ok", "subsystem": "webhook-events"}
