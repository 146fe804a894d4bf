from __future__ import annotations

import pytest

from app.jobs.models import ChapterRecord, JobRecord, SequenceRecord
from app.services.job_retry import JobRetryService, RetryRateLimitedError, RetryRequest
from app.services.rate_limit import FixedWindowRateLimiter
from tests.fakes import InMemoryStore


def _service(store: InMemoryStore, limit: int = 10) -> JobRetryService:
  return JobRetryService(jobs_repo=store.jobs_repo, chapters_repo=store.chapters_repo, sequences_repo=store.sequences_repo, rate_limiter=FixedWindowRateLimiter(limit=limit, window_seconds=60))


def _seed_valid(store: InMemoryStore, job_id: str = "job-1", chapter_id: str = "ch-1") -> None:
  store.add_sequence(SequenceRecord(id="seq-1"))
  store.add_chapter(ChapterRecord(id=chapter_id, generation_status="generating", generation_progress=33.0), sequence_id="seq-1", index=0)
  store.add_job(JobRecord(id=job_id, chapter_id=chapter_id, status="failed", sequence_id="seq-1", user_id="user-1", progress=55.0, error_message="boom", current_step="failed"))


@pytest.mark.anyio
async def test_valid_failed_job_is_reset(store: InMemoryStore) -> None:
  _seed_valid(store)
  result = await _service(store).retry_jobs(RetryRequest(job_id="job-1"))

  assert result.success is True
  assert result.retried_jobs == ["job-1"]
  job = store.jobs["job-1"]
  assert (job.status, job.progress, job.error_message, job.current_step) == ("pending", 0.0, None, "initializing")
  chapter = store.chapters["ch-1"]
  assert (chapter.generation_status, chapter.generation_progress) == ("failed", 0.0)


@pytest.mark.anyio
@pytest.mark.parametrize(
  ("mutation", "reason"),
  [
    ("no_sequence_id", "Missing sequence_id"),
    ("no_user_id", "Missing user_id"),
    ("chapter_deleted", "Chapter not found"),
    ("sequence_deleted", "Sequence not found"),
    ("mapping_deleted", "mapping not found"),
    ("active_duplicate", "already has active jobs"),
  ],
)
async def test_structurally_invalid_jobs_are_deleted(store: InMemoryStore, mutation: str, reason: str, caplog: pytest.LogCaptureFixture) -> None:
  _seed_valid(store)
  job = store.jobs["job-1"]
  if mutation == "no_sequence_id":
    job.sequence_id = None
  elif mutation == "no_user_id":
    job.user_id = None
  elif mutation == "chapter_deleted":
    del store.chapters["ch-1"]
  elif mutation == "sequence_deleted":
    del store.sequences["seq-1"]
  elif mutation == "mapping_deleted":
    store.mappings.clear()
  elif mutation == "active_duplicate":
    store.add_job(JobRecord(id="job-2", chapter_id="ch-1", status="pending", sequence_id="seq-1", user_id="user-1"))

  caplog.set_level("INFO")
  result = await _service(store).retry_jobs(RetryRequest(job_id="job-1"))

  assert result.deleted_jobs == ["job-1"]
  assert result.success is False
  assert "job-1" not in store.jobs
  assert reason in caplog.text


@pytest.mark.anyio
async def test_user_selector_retries_newest_first(store: InMemoryStore) -> None:
  _seed_valid(store, "job-old", "ch-1")
  store.add_chapter(ChapterRecord(id="ch-2"), sequence_id="seq-1", index=1)
  store.add_job(JobRecord(id="job-new", chapter_id="ch-2", status="failed", sequence_id="seq-1", user_id="user-1"))

  result = await _service(store).retry_jobs(RetryRequest(user_id="user-1"))
  assert result.retried_jobs == ["job-new", "job-old"]


@pytest.mark.anyio
async def test_no_matches_and_empty_requests(store: InMemoryStore) -> None:
  result = await _service(store).retry_jobs(RetryRequest(chapter_id="nothing"))
  assert result.success is False
  assert result.errors == ["No failed jobs found for the specified criteria"]
  with pytest.raises(ValueError):
    await _service(store).retry_jobs(RetryRequest())


@pytest.mark.anyio
async def test_rate_limit_is_per_requester(store: InMemoryStore) -> None:
  service = _service(store, limit=1)
  await service.retry_jobs(RetryRequest(user_id="user-1"))
  with pytest.raises(RetryRateLimitedError, match="Rate limit exceeded"):
    await service.retry_jobs(RetryRequest(user_id="user-1"))
  await service.retry_jobs(RetryRequest(user_id="user-2"))
