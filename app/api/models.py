from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictStr


class RetryJobsRequest(BaseModel):
  """Selector for failed jobs to retry; job id wins over user id, user id over chapter id."""

  model_config = ConfigDict(extra="forbid")

  job_id: StrictStr | None = Field(default=None, min_length=1)
  user_id: StrictStr | None = Field(default=None, min_length=1)
  chapter_id: StrictStr | None = Field(default=None, min_length=1)


class RetryJobsResponse(BaseModel):
  success: bool
  retried_jobs: list[str]
  skipped_jobs: list[str]
  deleted_jobs: list[str]
  errors: list[str]


class HealthResponse(BaseModel):
  status: str
  database: str
  uptime: float
  environment: str
  version: str


class WorkerMetrics(BaseModel):
  enabled: bool
  poll_interval_seconds: float
  concurrency: int


class MetricsResponse(BaseModel):
  jobs: dict[str, int]
  worker: WorkerMetrics
