"""Domain models for generation jobs and the rows they operate on."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from app.generation.models import OutlineChapter, UserPrompt

JobStatus = Literal["pending", "processing", "completed", "failed"]
JobKind = Literal["story_generation", "video_generation"]
ChapterGenerationStatus = Literal["generating", "completed", "failed"]

ACTIVE_JOB_STATUSES: tuple[str, ...] = ("pending", "processing")


class JobStep:
  """Named `current_step` values written while a job runs."""

  INITIALIZING = "initializing"
  RESUMING = "resuming"
  PROCESSING_OUTLINE = "processing_outline"
  SAVING_OUTLINE = "saving_outline"
  GENERATING_METADATA = "generating_metadata"
  GENERATING_EMBEDDING = "generating_embedding"
  GENERATING_CHAPTER_CONTENT = "generating_chapter_content"
  COMPLETING_JOB = "completing_job"
  COMPLETED = "completed"
  FAILED = "failed"
  FETCHING_CONTEXT = "fetching_context"
  ENHANCING_PROMPT = "enhancing_prompt"
  GENERATING_VIDEO = "generating_video"
  UPLOADING_VIDEO = "uploading_video"
  SAVING_VIDEO = "saving_video"


@dataclass
class JobRecord:
  """Represents one queued unit of worker work."""

  id: str
  chapter_id: str | None
  status: JobStatus
  job_type: JobKind = "story_generation"
  sequence_id: str | None = None
  quote_id: str | None = None
  user_id: str | None = None
  model_id: str | None = None
  progress: float = 0.0
  current_step: str | None = None
  error_message: str | None = None
  bullet_progress: int | None = None
  story_outline: Any = None
  user_preferences: Any = None
  created_at: datetime | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None
  updated_at: datetime | None = None


@dataclass
class ChapterRecord:
  """Persisted prose container for one chapter."""

  id: str
  content: str = ""
  parent_id: str | None = None
  title: str | None = None
  author: str | None = None
  generation_status: str | None = None
  generation_progress: float | None = None
  created_at: datetime | None = None
  updated_at: datetime | None = None


@dataclass
class SequenceRecord:
  """The story aggregate with its decoded outline and prompt history."""

  id: str
  created_by: str | None = None
  name: str | None = None
  description: str | None = None
  tags: list[str] = field(default_factory=list)
  trigger_warnings: list[str] = field(default_factory=list)
  target_audience: list[str] = field(default_factory=list)
  is_sexually_explicit: bool = False
  embedding: str | None = None
  chapters: list[OutlineChapter] = field(default_factory=list)
  user_prompt_history: list[UserPrompt] = field(default_factory=list)
  writing_quirk: str | None = None


@dataclass
class QuoteRecord:
  """A featured quote that can receive a generated video."""

  id: str
  chapter_id: str
  quote_text: str
  sequence_id: str | None = None
  context_sentence: str | None = None
  sequence_title: str | None = None
  video_url: str | None = None


@dataclass(frozen=True)
class StoryMetadata:
  """Story-level metadata derived from an outline."""

  title: str
  description: str
  tags: list[str]
  trigger_warnings: list[str]
  is_sexually_explicit: bool
  target_audience: list[str]
