"""Story-generation job handler: outline, metadata, embedding, then chapter prose."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime

from app.ai.embeddings import EmbeddingClient, serialize_embedding
from app.generation.content import ContentEngine, StoryContext
from app.generation.metadata import MetadataEngine
from app.generation.models import OutlineChapter, UserPrompt
from app.generation.outline import OutlineEngine
from app.generation.prompts import format_outline
from app.generation.quirks import WritingQuirkPicker
from app.jobs.models import ChapterRecord, JobRecord, JobStep, SequenceRecord
from app.jobs.progress import JobProgressTracker
from app.services.outlines import OutlineResolution, resolve_outline, resolve_story_settings
from app.services.webhooks import CompletionPayload, WebhookNotifier
from app.storage.errors import RecordNotFoundError
from app.storage.jobs_repo import JobsRepository
from app.storage.story_repo import ChaptersRepository, SequencesRepository

logger = logging.getLogger(__name__)


class StoryJobHandler:
  """Run one story-generation job through the documented step sequence."""

  def __init__(
    self,
    *,
    jobs_repo: JobsRepository,
    chapters_repo: ChaptersRepository,
    sequences_repo: SequencesRepository,
    outline_engine: OutlineEngine,
    content_engine: ContentEngine,
    metadata_engine: MetadataEngine,
    embedding_client: EmbeddingClient,
    quirk_picker: WritingQuirkPicker | None = None,
    webhook: WebhookNotifier | None = None,
    clock: Callable[[], float] = time.time,
  ) -> None:
    self._jobs_repo = jobs_repo
    self._chapters_repo = chapters_repo
    self._sequences_repo = sequences_repo
    self._outline_engine = outline_engine
    self._content_engine = content_engine
    self._metadata_engine = metadata_engine
    self._embedding_client = embedding_client
    self._quirk_picker = quirk_picker
    self._webhook = webhook
    self._clock = clock
    self._background_tasks: set[asyncio.Task] = set()

  async def process(self, job: JobRecord, tracker: JobProgressTracker) -> None:
    if not job.sequence_id:
      raise ValueError(f"Job {job.id} is missing sequence_id")
    if not job.chapter_id:
      raise ValueError(f"Job {job.id} is missing chapter_id")

    sequence = await self._sequences_repo.get_sequence(job.sequence_id)
    if sequence is None:
      raise RecordNotFoundError("sequence", job.sequence_id)
    chapter = await self._chapters_repo.get_chapter(job.chapter_id)
    if chapter is None:
      raise RecordNotFoundError("chapter", job.chapter_id)
    chapter_index = await self._chapters_repo.get_chapter_index(job.chapter_id, job.sequence_id)
    if chapter_index is None:
      raise RecordNotFoundError("chapter-sequence mapping", f"{job.chapter_id}/{job.sequence_id}")
    settings = resolve_story_settings(sequence, job)
    logger.info("Processing story job %s for chapter %d of sequence %s", job.id, chapter_index + 1, job.sequence_id)

    await tracker.advance(JobStep.PROCESSING_OUTLINE, 15)
    resolution = await resolve_outline(sequence, job, self._outline_engine)
    writing_quirk = sequence.writing_quirk
    if resolution.was_generated:
      writing_quirk = await self._persist_outline(job, sequence, settings, resolution, tracker)

    await tracker.advance(JobStep.GENERATING_CHAPTER_CONTENT, 40)
    previous_content = await self._previous_chapter_content(chapter, chapter_index)
    context = StoryContext(settings=settings, chapters=resolution.chapters, writing_quirk=writing_quirk)
    content = await self._content_engine.generate_chapter(job, chapter_index, context, previous_content, tracker=tracker)
    logger.info("Generated %d characters for chapter %d", len(content), chapter_index + 1)

    await tracker.advance(JobStep.COMPLETING_JOB, 100)
    await tracker.complete(datetime.now(UTC))
    self._schedule_webhook(CompletionPayload(job_id=job.id, sequence_id=job.sequence_id, chapter_id=job.chapter_id, is_first_chapter=chapter_index == 0))

  async def _persist_outline(self, job: JobRecord, sequence: SequenceRecord, settings: UserPrompt, resolution: OutlineResolution, tracker: JobProgressTracker) -> str | None:
    """Save a freshly produced outline and everything derived from it; return the writing quirk."""
    chapters = resolution.chapters
    await tracker.advance(JobStep.SAVING_OUTLINE, 25)
    await self._sequences_repo.update_outline(sequence.id, chapters)

    writing_quirk = sequence.writing_quirk
    if writing_quirk is None:
      writing_quirk = await self._pick_quirk(sequence.id, settings, chapters)

    outline_text = format_outline(chapters)
    await tracker.advance(JobStep.GENERATING_METADATA, 30)
    metadata = await self._metadata_engine.generate_metadata(outline_text)
    await self._sequences_repo.update_metadata(sequence.id, metadata)

    await tracker.advance(JobStep.GENERATING_EMBEDDING, 35)
    vector = await self._embedding_client.generate_embedding(outline_text)
    await self._sequences_repo.update_embedding(sequence.id, serialize_embedding(vector))

    if resolution.processed_prompt_index is not None:
      await self._sequences_repo.mark_prompt_processed(sequence.id, resolution.processed_prompt_index, processed_at_ms=self._clock() * 1000)
      logger.info("Marked prompt %d of sequence %s as processed (job %s)", resolution.processed_prompt_index, sequence.id, job.id)
    return writing_quirk

  async def _pick_quirk(self, sequence_id: str, settings: UserPrompt, chapters: list[OutlineChapter]) -> str | None:
    if self._quirk_picker is None:
      return None
    try:
      quirk = await self._quirk_picker.pick_quirk(settings, chapters)
    except Exception:  # noqa: BLE001
      logger.warning("Writing quirk generation failed for sequence %s; continuing without one", sequence_id, exc_info=True)
      return None
    await self._sequences_repo.set_writing_quirk(sequence_id, quirk)
    return quirk

  async def _previous_chapter_content(self, chapter: ChapterRecord, chapter_index: int) -> str:
    previous = ""
    if chapter.parent_id:
      parent = await self._chapters_repo.get_chapter(chapter.parent_id)
      previous = parent.content if parent is not None else ""
    if not previous and chapter_index > 0:
      raise RuntimeError(f"Failed to fetch parent chapter content with id {chapter.parent_id}")
    return previous

  def _schedule_webhook(self, payload: CompletionPayload) -> None:
    if self._webhook is None:
      return
    task = asyncio.create_task(self._webhook.notify_job_completion(payload))
    self._background_tasks.add(task)
    task.add_done_callback(self._background_tasks.discard)

  async def drain_background_tasks(self) -> None:
    """Wait for in-flight webhook deliveries."""
    if self._background_tasks:
      await asyncio.gather(*self._background_tasks, return_exceptions=True)
