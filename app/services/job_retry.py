"""Administrative retry of failed generation jobs."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from app.jobs.models import JobRecord, JobStep
from app.services.rate_limit import FixedWindowRateLimiter
from app.storage.jobs_repo import JobsRepository
from app.storage.story_repo import ChaptersRepository, SequencesRepository

logger = logging.getLogger(__name__)


class RetryRateLimitedError(RuntimeError):
  """Raised when a requester exceeds the retry rate limit."""

  def __init__(self, key: str, reset_in_seconds: float) -> None:
    self.key = key
    self.reset_in_seconds = reset_in_seconds
    super().__init__(f"Rate limit exceeded. Reset in {math.ceil(reset_in_seconds)} seconds.")


@dataclass(frozen=True)
class RetryRequest:
  job_id: str | None = None
  user_id: str | None = None
  chapter_id: str | None = None

  @property
  def is_empty(self) -> bool:
    return not (self.job_id or self.user_id or self.chapter_id)

  @property
  def rate_limit_key(self) -> str:
    return self.user_id or self.job_id or self.chapter_id or "anonymous"


@dataclass
class RetryResult:
  success: bool = False
  retried_jobs: list[str] = field(default_factory=list)
  skipped_jobs: list[str] = field(default_factory=list)
  deleted_jobs: list[str] = field(default_factory=list)
  errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RetryValidation:
  is_valid: bool
  reason: str | None = None
  should_delete: bool = False


class JobRetryService:
  """Reset failed jobs to pending, deleting those whose references are broken."""

  def __init__(self, *, jobs_repo: JobsRepository, chapters_repo: ChaptersRepository, sequences_repo: SequencesRepository, rate_limiter: FixedWindowRateLimiter) -> None:
    self._jobs_repo = jobs_repo
    self._chapters_repo = chapters_repo
    self._sequences_repo = sequences_repo
    self._rate_limiter = rate_limiter

  async def retry_jobs(self, request: RetryRequest) -> RetryResult:
    """Retry the failed jobs selected by job id, else user id, else chapter id."""
    if request.is_empty:
      raise ValueError("Must specify job_id, user_id, or chapter_id")

    decision = self._rate_limiter.check(request.rate_limit_key)
    if not decision.allowed:
      logger.warning("Retry rate limit exceeded for key=%s", request.rate_limit_key)
      raise RetryRateLimitedError(request.rate_limit_key, decision.reset_in_seconds)

    result = RetryResult()
    failed_jobs = await self._jobs_repo.find_failed(job_id=request.job_id, user_id=request.user_id, chapter_id=request.chapter_id)
    if not failed_jobs:
      result.errors.append("No failed jobs found for the specified criteria")
      return result

    logger.info("Found %d failed job(s) to retry", len(failed_jobs))
    for job in failed_jobs:
      try:
        validation = await self.validate_job(job)
        if not validation.is_valid:
          if validation.should_delete:
            await self._jobs_repo.delete_job(job.id)
            result.deleted_jobs.append(job.id)
            logger.info("Deleted invalid job %s: %s", job.id, validation.reason)
          else:
            result.skipped_jobs.append(job.id)
            result.errors.append(f"Job {job.id}: {validation.reason}")
          continue
        await self.reset_job(job)
        result.retried_jobs.append(job.id)
        logger.info("Reset job %s for retry", job.id)
      except Exception as exc:  # noqa: BLE001
        # Reported per job in the response.
        logger.error("Failed to retry job %s", job.id, exc_info=True)
        result.skipped_jobs.append(job.id)
        result.errors.append(f"Job {job.id}: {exc}")

    result.success = bool(result.retried_jobs)
    return result

  async def validate_job(self, job: JobRecord) -> RetryValidation:
    """Check structural integrity; every failure here is unrecoverable and deletes the job."""
    if not job.sequence_id:
      return RetryValidation(False, "Missing sequence_id", should_delete=True)
    if not job.chapter_id:
      return RetryValidation(False, "Missing chapter_id", should_delete=True)
    if not job.user_id:
      return RetryValidation(False, "Missing user_id", should_delete=True)

    active = [other for other in await self._jobs_repo.find_active_for_chapter(job.chapter_id) if other.id != job.id]
    if active:
      return RetryValidation(False, "Chapter already has active jobs", should_delete=True)
    if await self._chapters_repo.get_chapter(job.chapter_id) is None:
      return RetryValidation(False, f"Chapter not found: {job.chapter_id}", should_delete=True)
    if not await self._sequences_repo.sequence_exists(job.sequence_id):
      return RetryValidation(False, f"Sequence not found: {job.sequence_id}", should_delete=True)
    if await self._chapters_repo.get_chapter_index(job.chapter_id, job.sequence_id) is None:
      return RetryValidation(False, "Chapter-sequence mapping not found", should_delete=True)
    return RetryValidation(True)

  async def reset_job(self, job: JobRecord) -> None:
    await self._jobs_repo.reset_job(job.id, current_step=JobStep.INITIALIZING)
    if not job.chapter_id:
      return
    chapter = await self._chapters_repo.get_chapter(job.chapter_id)
    if chapter is not None and chapter.generation_status == "generating":
      await self._chapters_repo.set_generation_state(job.chapter_id, generation_status="failed", generation_progress=0.0)
      logger.info("Reset chapter %s status from generating to failed", job.chapter_id)
