"""Content engine: expand outline plot points into chapter prose, resumably."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from app.ai.errors import EmptyGenerationError
from app.ai.gateway import GenerationGateway
from app.generation.constants import AVERAGE_PLOT_POINT_CHARS, CONTENT_PROGRESS_SPAN, CONTENT_PROGRESS_START, CONTEXT_WINDOW_CHARS, TEMPERATURE_BY_SPICE, get_author_style, get_length_tier, get_spice_level
from app.generation.errors import ChapterNotInOutlineError
from app.generation.models import OutlineChapter, UserPrompt
from app.generation.prompts import plot_point_framing, plot_point_system_prompt, plot_point_user_prompt
from app.jobs.models import JobRecord
from app.jobs.progress import JobProgressTracker
from app.storage.story_repo import ChaptersRepository

logger = logging.getLogger(__name__)

_PREAMBLE_RE = re.compile(r"^\s*(?:of course|certainly|sure|absolutely)\b[^\n]{0,80}?:[ \t]*(?:\n+|$)", re.IGNORECASE)


@dataclass(frozen=True)
class StoryContext:
  """Everything prose generation needs to know about the story."""

  settings: UserPrompt
  chapters: list[OutlineChapter]
  writing_quirk: str | None = None

  def chapter(self, chapter_index: int) -> OutlineChapter:
    if chapter_index < 0 or chapter_index >= len(self.chapters):
      raise ChapterNotInOutlineError(chapter_index, len(self.chapters))
    return self.chapters[chapter_index]


def strip_preamble(text: str) -> str:
  """Remove a leading "Of course, here it is:" style line."""
  return _PREAMBLE_RE.sub("", text, count=1).strip()


def build_context_window(previous_chapter_content: str, chapter_index: int, chapter_name: str, content_so_far: str, limit: int = CONTEXT_WINDOW_CHARS) -> str:
  """Return the trailing `limit` characters of the story up to this point."""
  combined = f"{previous_chapter_content}\n\n## Chapter {chapter_index + 1}: {chapter_name}\n\n{content_so_far}"
  return combined[-limit:]


def join_segments(existing: str, segment: str) -> str:
  """Append a segment with exactly one blank line between non-empty parts."""
  existing = existing.rstrip()
  segment = segment.strip()
  if not existing:
    return segment
  if not segment:
    return existing
  return f"{existing}\n\n{segment}"


def resolve_resume_index(existing_content: str, bullet_progress: int | None, total_plot_points: int) -> int:
  """Return the first plot point still to generate.

  With a stored counter this is `counter + 1`. Without one, existing content length is divided by
  an average plot-point size as a rough estimate, clamped so the last plot point is always redone.
  Empty content always restarts at zero.
  """
  if not existing_content.strip():
    return 0
  if bullet_progress is not None:
    return max(bullet_progress + 1, 0)
  estimated = len(existing_content) // AVERAGE_PLOT_POINT_CHARS
  return min(estimated, max(total_plot_points - 1, 0))


def job_progress_for_chapter(chapter_percent: float) -> float:
  return CONTENT_PROGRESS_START + (CONTENT_PROGRESS_SPAN / 100.0) * chapter_percent


class ContentEngine:
  """Generate chapter prose one plot point at a time, persisting after each."""

  def __init__(self, gateway: GenerationGateway, *, chapters_repo: ChaptersRepository) -> None:
    self._gateway = gateway
    self._chapters_repo = chapters_repo

  async def generate_plot_point_content(self, context: StoryContext, chapter_index: int, plot_point_index: int, previous_chapter_content: str, content_so_far: str) -> str:
    """Expand one plot point into prose."""
    chapter = context.chapter(chapter_index)
    if plot_point_index < 0 or plot_point_index >= len(chapter.plot_points):
      raise IndexError(f"Plot point {plot_point_index + 1} not found in chapter {chapter_index + 1}")

    settings = context.settings
    tier = get_length_tier(settings.story_length)
    spice = get_spice_level(settings.spice_level)
    framing = plot_point_framing(chapter_index=chapter_index, plot_point_index=plot_point_index, plot_point_count=len(chapter.plot_points), tier=tier)
    system_prompt = plot_point_system_prompt(tier=tier, spice=spice, author_style=get_author_style(settings.style), framing=framing, writing_quirk=context.writing_quirk)
    window = build_context_window(previous_chapter_content, chapter_index, chapter.name, content_so_far)
    prompt = plot_point_user_prompt(story_prompt=settings.prompt, chapters=context.chapters, chapter_index=chapter_index, plot_point_index=plot_point_index, preceding_content=window, tier=tier)

    def _clean(text: str) -> str:
      cleaned = strip_preamble(text)
      if not cleaned:
        raise EmptyGenerationError(f"Empty response for chapter {chapter_index + 1} plot point {plot_point_index + 1}")
      return cleaned

    operation = f"plot_point_{chapter_index + 1}_{plot_point_index + 1}"
    logger.info("Generating plot point %d/%d for chapter %d", plot_point_index + 1, len(chapter.plot_points), chapter_index + 1)
    return await self._gateway.generate_parsed(prompt, _clean, system_prompt=system_prompt, temperature=TEMPERATURE_BY_SPICE[spice], operation=operation)

  async def generate_chapter(self, job: JobRecord, chapter_index: int, context: StoryContext, previous_chapter_content: str, *, tracker: JobProgressTracker) -> str:
    """Generate (or resume) the job's chapter and return its full text."""
    if not job.chapter_id:
      raise ValueError(f"Job {job.id} has no chapter_id")
    chapter = context.chapter(chapter_index)
    total = len(chapter.plot_points)
    if total == 0:
      raise ValueError(f"Chapter {chapter_index + 1} has no plot points")

    record = await self._chapters_repo.get_chapter(job.chapter_id)
    if record is None:
      raise ValueError(f"Chapter not found: {job.chapter_id}")
    content = record.content or ""
    start = resolve_resume_index(content, job.bullet_progress, total)

    if start >= total:
      logger.info("Chapter %s already has all %d plot points; leaving content unchanged", job.chapter_id, total)
      await self._chapters_repo.set_generation_state(job.chapter_id, generation_status="completed", generation_progress=100.0)
      return content
    if content:
      # Existing text is kept and appended to; it is never truncated mid-generation.
      logger.info("Resuming chapter %s at plot point %d/%d (existing %d chars, counter=%s)", job.chapter_id, start + 1, total, len(content), job.bullet_progress)

    await self._chapters_repo.set_generation_state(job.chapter_id, generation_status="generating", generation_progress=round(start / total * 100, 2))

    for plot_point_index in range(start, total):
      segment = await self.generate_plot_point_content(context, chapter_index, plot_point_index, previous_chapter_content, content)
      content = join_segments(content, segment)

      chapter_percent = round((plot_point_index + 1) / total * 100, 2)
      status = "completed" if plot_point_index + 1 == total else "generating"
      rows = await self._chapters_repo.update_chapter_content(job.chapter_id, content=content, title=chapter.name, generation_status=status, generation_progress=chapter_percent)
      if rows == 0:
        raise RuntimeError(f"Chapter update failed: no rows updated for chapter {job.chapter_id}")

      await tracker.record_plot_point(plot_point_index, job_progress_for_chapter(chapter_percent))
      logger.info("Persisted plot point %d/%d for chapter %s (%d chars, %.0f%%)", plot_point_index + 1, total, job.chapter_id, len(content), chapter_percent)

    return content
