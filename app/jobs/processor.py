"""Claim pending jobs and route them to their handlers."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from app.jobs.dispatch import JobProcessorRegistry
from app.jobs.models import JobRecord, JobStep
from app.jobs.progress import JobProgressTracker
from app.storage.jobs_repo import JobsRepository


class JobProcessor:
  """Coordinates execution of one pending job.

  The claim is a conditional `pending -> processing` write; losing that race is an expected
  outcome under concurrent pollers and ends the attempt quietly. After a successful claim any
  exception marks the job failed with the exception message. Nothing written before the failure
  is rolled back, which is what lets a later retry resume.
  """

  def __init__(self, *, jobs_repo: JobsRepository, registry: JobProcessorRegistry) -> None:
    self._jobs_repo = jobs_repo
    self._registry = registry
    self._logger = logging.getLogger(__name__)

  async def process_job(self, job: JobRecord) -> bool:
    """Return True when the job ran to completion."""
    claimed = await self._jobs_repo.claim_job(job.id, started_at=datetime.now(UTC))
    if not claimed:
      self._logger.info("Job %s already claimed by another worker; skipping", job.id)
      return False

    self._logger.info("Claimed job %s type=%s chapter=%s", job.id, job.job_type, job.chapter_id)
    tracker = JobProgressTracker(job_id=job.id, jobs_repo=self._jobs_repo, initial_step=JobStep.INITIALIZING)
    try:
      handler = self._registry.resolve(job.job_type or "story_generation")
      await handler.process(job, tracker)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Job %s failed at step=%s: %s", job.id, tracker.step, exc, exc_info=True)
      await self._jobs_repo.update_job(job.id, status="failed", error_message=str(exc), current_step=JobStep.FAILED)
      return False
    self._logger.info("Job %s finished", job.id)
    return True

  async def drain_background_tasks(self) -> None:
    await self._registry.drain_background_tasks()
