"""In-memory collaborators shared by the unit and integration tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

from app.ai.providers.base import AIModel, SimpleModelResponse, StructuredModelResponse
from app.ai.retry import RetryPolicy
from app.config import Settings
from app.generation.models import OutlineChapter, flag_prompt_processed
from app.jobs.models import ACTIVE_JOB_STATUSES, ChapterRecord, JobRecord, QuoteRecord, SequenceRecord, StoryMetadata


async def no_sleep(_delay: float) -> None:
  return None


class RecordingSleep:
  """Collects requested delays instead of sleeping."""

  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)


def fast_policy(max_attempts: int = 3, sleep: Any = no_sleep) -> RetryPolicy:
  return RetryPolicy(max_attempts=max_attempts, base_delay=1.0, sleep=sleep)


def make_settings(**overrides: Any) -> Settings:
  values: dict[str, Any] = {
    "environment": "test",
    "debug": False,
    "host": "127.0.0.1",
    "port": 3951,
    "log_max_bytes": 1024,
    "log_backup_count": 1,
    "pg_dsn": None,
    "pg_connect_timeout": 5,
    "worker_enabled": False,
    "poll_interval_seconds": 5.0,
    "worker_concurrency": 2,
    "reset_stuck_jobs": False,
    "generation_max_attempts": 3,
    "generation_base_delay_seconds": 1.0,
    "outline_model": "gemini-2.5-pro",
    "prose_model": "openrouter/horizon-beta",
    "prose_fallback_model": "google/gemini-2.5-pro",
    "metadata_model": "gemini-2.5-pro",
    "gemini_api_key": None,
    "openrouter_api_key": None,
    "openai_api_key": None,
    "embedding_model": "text-embedding-ada-002",
    "replicate_api_token": None,
    "video_model": "bytedance/seedance-1-lite",
    "video_bucket": "videos",
    "gcp_project_id": None,
    "gcs_storage_host": None,
    "webhook_site_url": None,
    "webhook_api_key": None,
    "admin_api_key": None,
    "retry_rate_limit": 10,
    "retry_rate_window_seconds": 60.0,
  }
  values.update(overrides)
  return Settings(**values)


def outline_text(chapter_count: int, plot_points: int, *, first_chapter: int = 1, preamble: str = "Here is your outline:") -> str:
  """Render an outline the way a well-behaved model answers."""
  lines = [preamble, ""]
  for number in range(first_chapter, first_chapter + chapter_count):
    lines.append(f"Chapter {number}: Title {number}")
    lines.extend(f"- Point {number}.{point}" for point in range(1, plot_points + 1))
    lines.append("")
  return "\n".join(lines)


def make_outline(chapter_count: int, plot_points: int) -> list[OutlineChapter]:
  return [OutlineChapter(name=f"Title {number}", plot_points=[f"Point {number}.{point}" for point in range(1, plot_points + 1)]) for number in range(1, chapter_count + 1)]


class ScriptedModel(AIModel):
  """Model double that replays queued replies; an Exception entry is raised instead."""

  def __init__(self, name: str = "scripted", replies: list[Any] | None = None, *, default: Callable[[str, str | None], Any] | None = None) -> None:
    self.name = name
    self.supports_structured_output = True
    self._replies = list(replies or [])
    self._default = default
    self.calls: list[dict[str, Any]] = []

  def queue(self, *replies: Any) -> None:
    self._replies.extend(replies)

  def _next(self, prompt: str, system_prompt: str | None) -> Any:
    if self._replies:
      reply = self._replies.pop(0)
    elif self._default is not None:
      reply = self._default(prompt, system_prompt)
    else:
      raise AssertionError(f"Unexpected model call: {prompt[:80]!r}")
    if isinstance(reply, Exception):
      raise reply
    return reply

  async def generate(self, prompt: str, *, system_prompt: str | None = None, temperature: float | None = None) -> SimpleModelResponse:
    self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature})
    return SimpleModelResponse(content=self._next(prompt, system_prompt))

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, system_prompt: str | None = None, temperature: float | None = None) -> StructuredModelResponse:
    self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature, "schema": schema})
    return StructuredModelResponse(content=self._next(prompt, system_prompt))


def metadata_reply(prompt: str, _system_prompt: str | None) -> dict[str, Any]:
  """Structured replies for the metadata sub-tasks and quirks, keyed off their prompts."""
  if "distinctive writing quirks" in prompt:
    return {"quirks": ["Tide Tables - Each chapter opens with the tide", "Unsent Letters - Letters never mailed", "Lamp Count - Counting lit windows", "Salt - Everything tastes of salt"]}
  if "content warnings" in prompt:
    return {"trigger_warnings": ["Infidelity"]}
  if "sexually explicit" in prompt:
    return {"is_sexually_explicit": False}
  if "target reader audiences" in prompt:
    return {"target_audience": ["Women 25-34"]}
  if "lowercase tags" in prompt:
    return {"tags": ["Romance", "Slow Burn", "Enemies To Lovers", "Small Town", "Romance"]}
  return {"title": "The Lighthouse Letters", "description": "Two strangers. One storm."}


class InMemoryStore:
  """Rows for all four tables plus repository facades over them."""

  def __init__(self) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.chapters: dict[str, ChapterRecord] = {}
    self.sequences: dict[str, SequenceRecord] = {}
    self.quotes: dict[str, QuoteRecord] = {}
    # (chapter_id, sequence_id) -> chapter index
    self.mappings: dict[tuple[str, str], int] = {}
    self.jobs_repo = InMemoryJobsRepo(self)
    self.chapters_repo = InMemoryChaptersRepo(self)
    self.sequences_repo = InMemorySequencesRepo(self)
    self.quotes_repo = InMemoryQuotesRepo(self)

  def add_job(self, job: JobRecord) -> JobRecord:
    if job.created_at is None:
      job = replace(job, created_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=len(self.jobs)))
    self.jobs[job.id] = job
    return job

  def add_chapter(self, chapter: ChapterRecord, *, sequence_id: str | None = None, index: int | None = None) -> ChapterRecord:
    self.chapters[chapter.id] = chapter
    if sequence_id is not None and index is not None:
      self.mappings[(chapter.id, sequence_id)] = index
    return chapter

  def add_sequence(self, sequence: SequenceRecord) -> SequenceRecord:
    self.sequences[sequence.id] = sequence
    return sequence

  def repositories(self) -> Any:
    from app.storage.factory import Repositories

    return Repositories(jobs=self.jobs_repo, chapters=self.chapters_repo, sequences=self.sequences_repo, quotes=self.quotes_repo)


class InMemoryJobsRepo:
  def __init__(self, store: InMemoryStore) -> None:
    self._store = store
    self.claims: list[str] = []

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self._store.jobs.get(job_id)

  async def claim_job(self, job_id: str, *, started_at: datetime) -> bool:
    record = self._store.jobs.get(job_id)
    if record is None or record.status != "pending":
      return False
    self._store.jobs[job_id] = replace(record, status="processing", started_at=started_at, current_step="initializing")
    self.claims.append(job_id)
    return True

  async def update_job(self, job_id: str, **kwargs: Any) -> JobRecord | None:
    record = self._store.jobs.get(job_id)
    if record is None:
      return None
    updated = replace(record, **{key: value for key, value in kwargs.items() if value is not None})
    self._store.jobs[job_id] = updated
    return updated

  async def reset_job(self, job_id: str, *, current_step: str) -> JobRecord | None:
    record = self._store.jobs.get(job_id)
    if record is None:
      return None
    updated = replace(record, status="pending", progress=0.0, current_step=current_step, error_message=None, started_at=None, completed_at=None)
    self._store.jobs[job_id] = updated
    return updated

  async def delete_job(self, job_id: str) -> None:
    self._store.jobs.pop(job_id, None)

  async def find_pending(self, limit: int) -> list[JobRecord]:
    pending = [job for job in self._store.jobs.values() if job.status == "pending"]
    return sorted(pending, key=lambda job: job.created_at)[:limit]

  async def find_active_for_chapter(self, chapter_id: str) -> list[JobRecord]:
    return [job for job in self._store.jobs.values() if job.chapter_id == chapter_id and job.status in ACTIVE_JOB_STATUSES]

  async def find_processing(self) -> list[JobRecord]:
    return [job for job in self._store.jobs.values() if job.status == "processing"]

  async def find_failed(self, *, job_id: str | None = None, user_id: str | None = None, chapter_id: str | None = None) -> list[JobRecord]:
    failed = [job for job in self._store.jobs.values() if job.status == "failed"]
    if job_id:
      failed = [job for job in failed if job.id == job_id]
    elif user_id:
      failed = [job for job in failed if job.user_id == user_id]
    elif chapter_id:
      failed = [job for job in failed if job.chapter_id == chapter_id]
    else:
      return []
    return sorted(failed, key=lambda job: job.created_at, reverse=True)

  async def count_by_status(self) -> dict[str, int]:
    counts: dict[str, int] = {}
    for job in self._store.jobs.values():
      counts[job.status] = counts.get(job.status, 0) + 1
    return counts


class InMemoryChaptersRepo:
  def __init__(self, store: InMemoryStore) -> None:
    self._store = store
    self.content_writes: list[str] = []

  async def get_chapter(self, chapter_id: str) -> ChapterRecord | None:
    return self._store.chapters.get(chapter_id)

  async def get_chapter_index(self, chapter_id: str, sequence_id: str) -> int | None:
    return self._store.mappings.get((chapter_id, sequence_id))

  async def update_chapter_content(self, chapter_id: str, *, content: str, title: str | None, generation_status: str, generation_progress: float) -> int:
    record = self._store.chapters.get(chapter_id)
    if record is None:
      return 0
    self._store.chapters[chapter_id] = replace(record, content=content, title=title or record.title, generation_status=generation_status, generation_progress=generation_progress)
    self.content_writes.append(content)
    return 1

  async def set_generation_state(self, chapter_id: str, *, generation_status: str, generation_progress: float | None = None) -> int:
    record = self._store.chapters.get(chapter_id)
    if record is None:
      return 0
    progress = record.generation_progress if generation_progress is None else generation_progress
    self._store.chapters[chapter_id] = replace(record, generation_status=generation_status, generation_progress=progress)
    return 1

  async def list_generating(self) -> list[ChapterRecord]:
    return [chapter for chapter in self._store.chapters.values() if chapter.generation_status == "generating"]


class InMemorySequencesRepo:
  def __init__(self, store: InMemoryStore) -> None:
    self._store = store

  async def get_sequence(self, sequence_id: str) -> SequenceRecord | None:
    return self._store.sequences.get(sequence_id)

  async def sequence_exists(self, sequence_id: str) -> bool:
    return sequence_id in self._store.sequences

  def _update(self, sequence_id: str, **changes: Any) -> None:
    from app.storage.errors import RecordNotFoundError

    record = self._store.sequences.get(sequence_id)
    if record is None:
      raise RecordNotFoundError("sequence", sequence_id)
    self._store.sequences[sequence_id] = replace(record, **changes)

  async def update_outline(self, sequence_id: str, chapters: list[OutlineChapter]) -> None:
    self._update(sequence_id, chapters=list(chapters))

  async def update_metadata(self, sequence_id: str, metadata: StoryMetadata) -> None:
    self._update(
      sequence_id,
      name=metadata.title,
      description=metadata.description,
      tags=metadata.tags,
      trigger_warnings=metadata.trigger_warnings,
      is_sexually_explicit=metadata.is_sexually_explicit,
      target_audience=metadata.target_audience,
    )

  async def update_embedding(self, sequence_id: str, embedding: str) -> None:
    self._update(sequence_id, embedding=embedding)

  async def mark_prompt_processed(self, sequence_id: str, index: int, *, processed_at_ms: float) -> None:
    record = self._store.sequences[sequence_id]
    self._update(sequence_id, user_prompt_history=flag_prompt_processed(record.user_prompt_history, index, processed_at_ms=processed_at_ms))

  async def set_writing_quirk(self, sequence_id: str, quirk: str) -> None:
    self._update(sequence_id, writing_quirk=quirk)


class InMemoryQuotesRepo:
  def __init__(self, store: InMemoryStore) -> None:
    self._store = store

  async def get_quote(self, quote_id: str) -> QuoteRecord | None:
    return self._store.quotes.get(quote_id)

  async def set_video_url(self, quote_id: str, video_url: str) -> None:
    record = self._store.quotes[quote_id]
    self._store.quotes[quote_id] = replace(record, video_url=video_url)
