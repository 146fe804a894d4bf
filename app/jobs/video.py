"""Video-generation job handler for featured quotes."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from app.generation.video.enhancer import VideoPromptContext
from app.generation.video.pipeline import VideoGenerationService
from app.jobs.models import JobRecord, JobStep
from app.jobs.progress import JobProgressTracker
from app.storage.errors import RecordNotFoundError
from app.storage.story_repo import ChaptersRepository, QuotesRepository, SequencesRepository

logger = logging.getLogger(__name__)


class VideoJobHandler:
  def __init__(self, *, quotes_repo: QuotesRepository, chapters_repo: ChaptersRepository, sequences_repo: SequencesRepository, video_service: VideoGenerationService) -> None:
    self._quotes_repo = quotes_repo
    self._chapters_repo = chapters_repo
    self._sequences_repo = sequences_repo
    self._video_service = video_service

  async def process(self, job: JobRecord, tracker: JobProgressTracker) -> None:
    if not job.quote_id:
      raise ValueError(f"Job {job.id} is missing quote_id")

    await tracker.advance(JobStep.FETCHING_CONTEXT, 10)
    context = await self._build_context(job.quote_id, job.sequence_id)

    await tracker.advance(JobStep.ENHANCING_PROMPT, 20)
    enhanced_prompt = await self._video_service.enhance_prompt(context)

    await tracker.advance(JobStep.GENERATING_VIDEO, 40)
    provider_url = await self._video_service.generate_video(enhanced_prompt)

    await tracker.advance(JobStep.UPLOADING_VIDEO, 80)
    public_url = await self._video_service.store_video(job.quote_id, provider_url)

    await tracker.advance(JobStep.SAVING_VIDEO, 95)
    await self._quotes_repo.set_video_url(job.quote_id, public_url)
    logger.info("Quote %s now has video %s", job.quote_id, public_url)

    await tracker.complete(datetime.now(UTC))

  async def _build_context(self, quote_id: str, job_sequence_id: str | None) -> VideoPromptContext:
    quote = await self._quotes_repo.get_quote(quote_id)
    if quote is None:
      raise RecordNotFoundError("featured quote", quote_id)

    chapter = await self._chapters_repo.get_chapter(quote.chapter_id)
    chapter_content = chapter.content if chapter is not None else ""
    if chapter is None:
      logger.warning("Chapter %s for quote %s not found; enhancing without chapter context", quote.chapter_id, quote_id)

    sequence_id = quote.sequence_id or job_sequence_id
    sequence = await self._sequences_repo.get_sequence(sequence_id) if sequence_id else None
    return VideoPromptContext(
      quote_text=quote.quote_text,
      chapter_content=chapter_content,
      context_sentence=quote.context_sentence,
      sequence_title=quote.sequence_title or (sequence.name if sequence is not None else None),
      chapters=sequence.chapters if sequence is not None else [],
    )
