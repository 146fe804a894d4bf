"""Decide which outline a story job works from and which story settings apply."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from app.generation.models import OutlineChapter, UserPrompt, decode_job_preferences, decode_outline_snapshot
from app.generation.outline import OutlineEngine
from app.jobs.models import JobRecord, SequenceRecord

logger = logging.getLogger(__name__)

OutlineSource = Literal["existing", "new", "regenerated", "snapshot"]


class MissingStorySettingsError(ValueError):
  """Raised when neither the prompt history nor the job carries story settings."""


@dataclass(frozen=True)
class OutlineResolution:
  chapters: list[OutlineChapter]
  source: OutlineSource
  processed_prompt_index: int | None = None

  @property
  def was_generated(self) -> bool:
    return self.source != "existing"


def first_unprocessed_prompt(history: list[UserPrompt]) -> tuple[int, UserPrompt] | None:
  for index, prompt in enumerate(history):
    if not prompt.processed:
      return index, prompt
  return None


def resolve_story_settings(sequence: SequenceRecord, job: JobRecord) -> UserPrompt:
  """Latest prompt in the history, else the job's embedded preferences."""
  if sequence.user_prompt_history:
    return sequence.user_prompt_history[-1]
  preferences = decode_job_preferences(job.user_preferences)
  if preferences is None:
    raise MissingStorySettingsError(f"No story settings for job {job.id}: sequence {sequence.id} has no prompt history and the job has no preferences")
  return preferences


async def resolve_outline(sequence: SequenceRecord, job: JobRecord, engine: OutlineEngine) -> OutlineResolution:
  """Consume at most one unprocessed prompt: generate a new outline or regenerate a suffix."""
  pending = first_unprocessed_prompt(sequence.user_prompt_history)
  existing = sequence.chapters

  if pending is None:
    if existing:
      logger.info("No unprocessed prompts for sequence %s; using existing %d-chapter outline", sequence.id, len(existing))
      return OutlineResolution(chapters=existing, source="existing")
    snapshot = decode_outline_snapshot(job.story_outline)
    if snapshot:
      logger.info("Adopting %d-chapter outline snapshot from job %s", len(snapshot), job.id)
      return OutlineResolution(chapters=snapshot, source="snapshot")
    raise ValueError(f"Sequence {sequence.id} has no outline and no unprocessed prompt")

  index, prompt = pending
  if not existing:
    logger.info("No outline exists for sequence %s; generating a new one from prompt %d", sequence.id, index)
    chapters = await engine.generate_outline(prompt)
    return OutlineResolution(chapters=chapters, source="new", processed_prompt_index=index)

  logger.info("Regenerating outline for sequence %s from chapter %d (prompt %d)", sequence.id, prompt.insertion_chapter_index + 1, index)
  chapters = await engine.regenerate_outline_suffix(existing, prompt, prompt.insertion_chapter_index)
  return OutlineResolution(chapters=chapters, source="regenerated", processed_prompt_index=index)
