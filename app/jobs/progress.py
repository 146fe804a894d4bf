"""Job progress tracking."""

from __future__ import annotations

import logging
from datetime import datetime

from app.jobs.models import JobRecord, JobStep
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


class JobProgressTracker:
  """Persist a job's step label and progress, never letting progress move backwards."""

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, initial_progress: float = 0.0, initial_step: str | None = None) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._progress = max(0.0, min(float(initial_progress), 100.0))
    self._step = initial_step

  @property
  def job_id(self) -> str:
    return self._job_id

  @property
  def progress(self) -> float:
    return self._progress

  @property
  def step(self) -> str | None:
    return self._step

  def _next_progress(self, progress: float | None) -> float:
    if progress is None:
      return self._progress
    # Clamp and hold the high-water mark.
    return max(self._progress, min(round(float(progress), 2), 100.0))

  async def advance(self, step: str, progress: float | None = None) -> JobRecord | None:
    """Record a step transition and, optionally, a new progress value."""
    next_progress = self._next_progress(progress)
    if progress is not None and next_progress > float(progress):
      logger.debug("Ignoring progress regression job=%s requested=%.2f current=%.2f", self._job_id, progress, self._progress)
    self._progress = next_progress
    self._step = step
    logger.info("Job %s step=%s progress=%.2f", self._job_id, step, self._progress)
    return await self._jobs_repo.update_job(self._job_id, current_step=step, progress=self._progress)

  async def record_plot_point(self, plot_point_index: int, progress: float) -> JobRecord | None:
    """Persist the resumable plot-point counter together with progress."""
    self._progress = self._next_progress(progress)
    return await self._jobs_repo.update_job(self._job_id, progress=self._progress, bullet_progress=plot_point_index)

  async def complete(self, completed_at: datetime) -> JobRecord | None:
    """Mark the job completed at 100%."""
    self._progress = 100.0
    self._step = JobStep.COMPLETED
    logger.info("Job %s completed", self._job_id)
    return await self._jobs_repo.update_job(self._job_id, status="completed", progress=100.0, current_step=JobStep.COMPLETED, completed_at=completed_at)
