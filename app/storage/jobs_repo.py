"""Storage interfaces for generation jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from app.jobs.models import JobRecord, JobStatus


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

  async def claim_job(self, job_id: str, *, started_at: datetime) -> bool:
    """Move a job from pending to processing; False when another worker got there first."""

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: float | None = None,
    current_step: str | None = None,
    error_message: str | None = None,
    bullet_progress: int | None = None,
    started_at: datetime | None = None,
    completed_at: datetime | None = None,
  ) -> JobRecord | None:
    """Apply partial updates to a job; None leaves a column unchanged."""

  async def reset_job(self, job_id: str, *, current_step: str) -> JobRecord | None:
    """Return a job to pending with progress, error and timestamps cleared."""

  async def delete_job(self, job_id: str) -> None:
    """Delete a job row."""

  async def find_pending(self, limit: int) -> list[JobRecord]:
    """Return up to `limit` pending jobs, oldest first."""

  async def find_active_for_chapter(self, chapter_id: str) -> list[JobRecord]:
    """Return pending or processing jobs targeting a chapter."""

  async def find_processing(self) -> list[JobRecord]:
    """Return jobs currently marked processing, oldest first."""

  async def find_failed(self, *, job_id: str | None = None, user_id: str | None = None, chapter_id: str | None = None) -> list[JobRecord]:
    """Return failed jobs for the first given selector, newest first."""

  async def count_by_status(self) -> dict[str, int]:
    """Return job counts keyed by status."""
