from __future__ import annotations

import logging
import time
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.api.deps import DatabasePing, get_database_ping, get_jobs_repository
from app.api.models import HealthResponse, MetricsResponse, WorkerMetrics
from app.config import Settings, get_settings
from app.storage.jobs_repo import JobsRepository

router = APIRouter()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Storyloom Worker"
SERVICE_VERSION = "1.0.0"
JOB_STATUSES = ("pending", "processing", "completed", "failed")


def _uptime_seconds(request: Request) -> float:
  started_at = getattr(request.app.state, "started_at", None)
  if started_at is None:
    return 0.0
  return round(time.monotonic() - started_at, 3)


@router.get("/")
async def service_info() -> dict[str, Any]:
  """Describe the service and its endpoints."""
  return {"service": SERVICE_NAME, "version": SERVICE_VERSION, "endpoints": {"health": "/health", "metrics": "/metrics", "retry_jobs": "POST /admin/retry-jobs"}}


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, settings: Annotated[Settings, Depends(get_settings)], ping: Annotated[DatabasePing, Depends(get_database_ping)]) -> Any:
  """Report liveness; unhealthy when the database does not answer."""
  try:
    await ping()
  except Exception as exc:  # noqa: BLE001
    logger.error("Health check failed: %s", exc)
    payload = HealthResponse(status="unhealthy", database="disconnected", uptime=_uptime_seconds(request), environment=settings.environment, version=SERVICE_VERSION)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload.model_dump())
  return HealthResponse(status="healthy", database="connected", uptime=_uptime_seconds(request), environment=settings.environment, version=SERVICE_VERSION)


@router.get("/metrics", response_model=MetricsResponse)
async def metrics(settings: Annotated[Settings, Depends(get_settings)], jobs_repo: Annotated[JobsRepository, Depends(get_jobs_repository)]) -> MetricsResponse:
  """Count jobs per status alongside the worker configuration."""
  counts = await jobs_repo.count_by_status()
  jobs = {job_status: counts.get(job_status, 0) for job_status in JOB_STATUSES}
  # Keep statuses written by other services visible.
  jobs.update({key: value for key, value in counts.items() if key not in jobs})
  return MetricsResponse(jobs=jobs, worker=WorkerMetrics(enabled=settings.worker_enabled, poll_interval_seconds=settings.poll_interval_seconds, concurrency=settings.worker_concurrency))
