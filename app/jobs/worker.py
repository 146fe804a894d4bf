"""Background polling loop for queued generation jobs."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field

from app.ai.embeddings import build_embedding_client
from app.ai.gateway import GenerationGateway
from app.ai.retry import RetryPolicy
from app.ai.router import get_model
from app.config import Settings
from app.generation.content import ContentEngine
from app.generation.metadata import MetadataEngine
from app.generation.outline import OutlineEngine
from app.generation.quirks import WritingQuirkPicker
from app.generation.video.enhancer import VideoPromptEnhancer
from app.generation.video.pipeline import VideoGenerationService
from app.generation.video.replicate import ReplicateVideoClient
from app.generation.video.sanitizer import VideoPromptSanitizer
from app.jobs.dispatch import JobHandler, JobProcessorRegistry
from app.jobs.models import JobRecord, JobStep
from app.jobs.processor import JobProcessor
from app.jobs.progress import JobProgressTracker
from app.jobs.story import StoryJobHandler
from app.jobs.video import VideoJobHandler
from app.services.storage_client import build_storage_client
from app.services.webhooks import build_webhook_notifier
from app.storage.factory import Repositories, build_repositories
from app.storage.jobs_repo import JobsRepository
from app.storage.story_repo import ChaptersRepository

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
  failed_chapters: list[str] = field(default_factory=list)
  reset_jobs: list[str] = field(default_factory=list)


class WorkerLoop:
  """Poll for pending jobs and run each batch concurrently until asked to stop.

  Shutdown is cooperative: `request_shutdown()` stops further polling, while jobs already in
  flight run to completion.
  """

  def __init__(self, *, jobs_repo: JobsRepository, chapters_repo: ChaptersRepository, processor: JobProcessor, poll_interval_seconds: float, concurrency: int, reset_stuck_jobs: bool = False) -> None:
    self._jobs_repo = jobs_repo
    self._chapters_repo = chapters_repo
    self._processor = processor
    self._poll_interval_seconds = poll_interval_seconds
    self._concurrency = concurrency
    self._reset_stuck_jobs = reset_stuck_jobs
    self._stop_event = asyncio.Event()

  @property
  def poll_interval_seconds(self) -> float:
    return self._poll_interval_seconds

  @property
  def concurrency(self) -> int:
    return self._concurrency

  @property
  def stopping(self) -> bool:
    return self._stop_event.is_set()

  def request_shutdown(self) -> None:
    if not self._stop_event.is_set():
      logger.info("Worker shutdown requested; finishing in-flight jobs")
    self._stop_event.set()

  def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
    """Stop polling on SIGTERM/SIGINT when the worker runs as its own process."""
    loop = loop or asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
      loop.add_signal_handler(sig, self.request_shutdown)

  async def run(self) -> None:
    """Reconcile orphaned chapters, then poll until shutdown."""
    logger.info("Starting worker poll_interval=%.2fs concurrency=%d reset_stuck_jobs=%s", self._poll_interval_seconds, self._concurrency, self._reset_stuck_jobs)
    await self.reconcile_orphaned_chapters()
    while not self._stop_event.is_set():
      await self._wait_for_next_poll()
      if self._stop_event.is_set():
        break
      try:
        await self.run_once()
      except Exception:  # noqa: BLE001
        # A poll failure (e.g. database unavailable) is retried on the next tick.
        logger.exception("Error in worker poll")
    await self._processor.drain_background_tasks()
    logger.info("Worker shut down gracefully")

  async def _wait_for_next_poll(self) -> None:
    try:
      await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_seconds)
    except TimeoutError:
      pass

  async def run_once(self) -> int:
    """Claim and run up to `concurrency` pending jobs; return how many were found."""
    jobs = await self._jobs_repo.find_pending(self._concurrency)
    if not jobs:
      return 0
    logger.info("Found %d pending job(s)", len(jobs))
    results = await asyncio.gather(*(self._processor.process_job(job) for job in jobs), return_exceptions=True)
    for job, result in zip(jobs, results, strict=True):
      if isinstance(result, BaseException):
        logger.error("Unhandled error processing job %s", job.id, exc_info=result)
    return len(jobs)

  async def reconcile_orphaned_chapters(self) -> SweepReport:
    """Flip `generating` chapters with no active job to `failed`.

    With stuck-job reset enabled, `processing` jobs on generating chapters are also returned to
    pending; only safe when this is the sole worker instance.
    """
    report = SweepReport()
    chapters = await self._chapters_repo.list_generating()
    if not chapters:
      logger.info("No orphaned chapters found")
      return report

    logger.info("Found %d chapter(s) in 'generating' status", len(chapters))
    for chapter in chapters:
      active = await self._jobs_repo.find_active_for_chapter(chapter.id)
      if not active:
        await self._chapters_repo.set_generation_state(chapter.id, generation_status="failed")
        report.failed_chapters.append(chapter.id)
        logger.info("Marked orphaned chapter %s as failed (no active jobs)", chapter.id)
        continue
      if not self._reset_stuck_jobs:
        logger.info("Chapter %s has %d active job(s); leaving as is", chapter.id, len(active))
        continue
      for job in active:
        if job.status != "processing":
          continue
        step = JobStep.RESUMING if (job.bullet_progress is not None or chapter.content.strip()) else JobStep.INITIALIZING
        await self._jobs_repo.reset_job(job.id, current_step=step)
        report.reset_jobs.append(job.id)
        logger.info("Reset stuck job %s for chapter %s to pending (step=%s)", job.id, chapter.id, step)
    logger.info("Orphaned chapter cleanup completed: failed=%d reset=%d", len(report.failed_chapters), len(report.reset_jobs))
    return report


class _UnconfiguredHandler:
  """Stands in for a job type whose collaborators are not configured."""

  def __init__(self, reason: str) -> None:
    self._reason = reason

  async def process(self, job: JobRecord, tracker: JobProgressTracker) -> None:
    raise RuntimeError(self._reason)


def _gateway(settings: Settings, model: str, *, fallback: str | None = None, retry_policy: RetryPolicy | None = None) -> GenerationGateway:
  policy = retry_policy or RetryPolicy(max_attempts=settings.generation_max_attempts, base_delay=settings.generation_base_delay_seconds)
  fallback_model = get_model(fallback, settings) if fallback and fallback != model else None
  return GenerationGateway(get_model(model, settings), fallback=fallback_model, retry_policy=policy)


def build_registry(settings: Settings, repos: Repositories) -> JobProcessorRegistry:
  """Wire the story and video handlers from settings."""
  metadata_gateway = _gateway(settings, settings.metadata_model)
  story = StoryJobHandler(
    jobs_repo=repos.jobs,
    chapters_repo=repos.chapters,
    sequences_repo=repos.sequences,
    outline_engine=OutlineEngine(_gateway(settings, settings.outline_model)),
    content_engine=ContentEngine(_gateway(settings, settings.prose_model, fallback=settings.prose_fallback_model), chapters_repo=repos.chapters),
    metadata_engine=MetadataEngine(metadata_gateway),
    embedding_client=build_embedding_client(settings),
    quirk_picker=WritingQuirkPicker(metadata_gateway),
    webhook=build_webhook_notifier(settings),
  )

  video: JobHandler
  if settings.replicate_api_token:
    video_prompt_gateway = _gateway(settings, settings.metadata_model, retry_policy=RetryPolicy(max_attempts=3, base_delay=2.0))
    video = VideoJobHandler(
      quotes_repo=repos.quotes,
      chapters_repo=repos.chapters,
      sequences_repo=repos.sequences,
      video_service=VideoGenerationService(
        enhancer=VideoPromptEnhancer(video_prompt_gateway),
        sanitizer=VideoPromptSanitizer(video_prompt_gateway),
        generator=ReplicateVideoClient(api_token=settings.replicate_api_token, model=settings.video_model),
        storage=build_storage_client(settings),
      ),
    )
  else:
    video = _UnconfiguredHandler("Video generation is not configured: REPLICATE_API_TOKEN is not set")

  # Older rows use chapter_generation for the same pipeline.
  return JobProcessorRegistry({"story_generation": story, "chapter_generation": story, "video_generation": video})


def build_worker(settings: Settings, repos: Repositories | None = None) -> WorkerLoop:
  repos = repos or build_repositories(settings)
  processor = JobProcessor(jobs_repo=repos.jobs, registry=build_registry(settings, repos))
  return WorkerLoop(
    jobs_repo=repos.jobs,
    chapters_repo=repos.chapters,
    processor=processor,
    poll_interval_seconds=settings.poll_interval_seconds,
    concurrency=settings.worker_concurrency,
    reset_stuck_jobs=settings.reset_stuck_jobs,
  )
