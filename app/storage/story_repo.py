"""Storage interfaces for chapters, sequences and featured quotes."""

from __future__ import annotations

from typing import Protocol

from app.generation.models import OutlineChapter
from app.jobs.models import ChapterRecord, QuoteRecord, SequenceRecord, StoryMetadata


class ChaptersRepository(Protocol):
  """Repository contract for chapter records."""

  async def get_chapter(self, chapter_id: str) -> ChapterRecord | None:
    """Fetch a chapter by identifier."""

  async def get_chapter_index(self, chapter_id: str, sequence_id: str) -> int | None:
    """Return the chapter's position within its sequence, if mapped."""

  async def update_chapter_content(self, chapter_id: str, *, content: str, title: str | None, generation_status: str, generation_progress: float) -> int:
    """Persist accumulated prose and generation state; returns rows affected."""

  async def set_generation_state(self, chapter_id: str, *, generation_status: str, generation_progress: float | None = None) -> int:
    """Update only the generation status/progress; returns rows affected."""

  async def list_generating(self) -> list[ChapterRecord]:
    """Return chapters currently flagged as generating."""


class SequencesRepository(Protocol):
  """Repository contract for the story aggregate."""

  async def get_sequence(self, sequence_id: str) -> SequenceRecord | None:
    """Fetch a sequence with its decoded outline and prompt history."""

  async def sequence_exists(self, sequence_id: str) -> bool:
    """Return True when the sequence row exists, without decoding its JSON columns."""

  async def update_outline(self, sequence_id: str, chapters: list[OutlineChapter]) -> None:
    """Replace the persisted outline."""

  async def update_metadata(self, sequence_id: str, metadata: StoryMetadata) -> None:
    """Persist title, description, tags, warnings, explicit flag and audience."""

  async def update_embedding(self, sequence_id: str, embedding: str) -> None:
    """Persist the serialized embedding vector."""

  async def mark_prompt_processed(self, sequence_id: str, index: int, *, processed_at_ms: float) -> None:
    """Flag one prompt history entry as processed against the current stored history."""

  async def set_writing_quirk(self, sequence_id: str, quirk: str) -> None:
    """Persist the story's writing quirk."""


class QuotesRepository(Protocol):
  """Repository contract for featured quotes."""

  async def get_quote(self, quote_id: str) -> QuoteRecord | None:
    """Fetch a quote by identifier."""

  async def set_video_url(self, quote_id: str, video_url: str) -> None:
    """Record the public URL of the quote's video."""
