"""Postgres-backed repositories for chapters, sequences and featured quotes."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import select, update

from app.core.database import get_session_factory
from app.generation.models import OutlineChapter, decode_outline, decode_prompt_history, encode_outline, encode_prompt_history, flag_prompt_processed
from app.jobs.models import ChapterRecord, QuoteRecord, SequenceRecord, StoryMetadata
from app.schema.sql import Chapter, ChapterSequenceMap, FeaturedQuote, Sequence
from app.storage.errors import RecordNotFoundError
from app.storage.story_repo import ChaptersRepository, QuotesRepository, SequencesRepository


def _now() -> datetime:
  return datetime.now(UTC)


class _PostgresRepository:
  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")


class PostgresChaptersRepository(_PostgresRepository, ChaptersRepository):
  """Read and incrementally update chapter prose."""

  async def get_chapter(self, chapter_id: str) -> ChapterRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Chapter, chapter_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def get_chapter_index(self, chapter_id: str, sequence_id: str) -> int | None:
    async with self._session_factory() as session:
      stmt = select(ChapterSequenceMap.chapter_index).where(ChapterSequenceMap.chapter_id == chapter_id, ChapterSequenceMap.sequence_id == sequence_id).limit(1)
      return (await session.execute(stmt)).scalar_one_or_none()

  async def update_chapter_content(self, chapter_id: str, *, content: str, title: str | None, generation_status: str, generation_progress: float) -> int:
    values: dict = {"content": content, "generation_status": generation_status, "generation_progress": generation_progress, "updated_at": _now()}
    if title is not None:
      values["title"] = title
    async with self._session_factory() as session:
      result = await session.execute(update(Chapter).where(Chapter.id == chapter_id).values(**values).execution_options(synchronize_session=False))
      await session.commit()
      return int(result.rowcount or 0)

  async def set_generation_state(self, chapter_id: str, *, generation_status: str, generation_progress: float | None = None) -> int:
    values: dict = {"generation_status": generation_status, "updated_at": _now()}
    if generation_progress is not None:
      values["generation_progress"] = generation_progress
    async with self._session_factory() as session:
      result = await session.execute(update(Chapter).where(Chapter.id == chapter_id).values(**values).execution_options(synchronize_session=False))
      await session.commit()
      return int(result.rowcount or 0)

  async def list_generating(self) -> list[ChapterRecord]:
    async with self._session_factory() as session:
      stmt = select(Chapter).where(Chapter.generation_status == "generating").order_by(Chapter.updated_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  def _model_to_record(self, row: Chapter) -> ChapterRecord:
    return ChapterRecord(
      id=str(row.id),
      content=row.content or "",
      parent_id=str(row.parent_id) if row.parent_id is not None else None,
      title=row.title,
      author=str(row.author) if row.author is not None else None,
      generation_status=row.generation_status,
      generation_progress=row.generation_progress,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )


class PostgresSequencesRepository(_PostgresRepository, SequencesRepository):
  """Read and update the story aggregate; JSON columns are validated on read."""

  async def get_sequence(self, sequence_id: str) -> SequenceRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Sequence, sequence_id)
      if row is None:
        return None
      return SequenceRecord(
        id=str(row.id),
        created_by=str(row.created_by) if row.created_by is not None else None,
        name=row.name,
        description=row.description,
        tags=list(row.tags or []),
        trigger_warnings=list(row.trigger_warnings or []),
        target_audience=list(row.target_audience or []),
        is_sexually_explicit=bool(row.is_sexually_explicit),
        embedding=row.embedding,
        chapters=decode_outline(row.chapters),
        user_prompt_history=decode_prompt_history(row.user_prompt_history),
        writing_quirk=row.writing_quirk,
      )

  async def sequence_exists(self, sequence_id: str) -> bool:
    async with self._session_factory() as session:
      stmt = select(Sequence.id).where(Sequence.id == sequence_id).limit(1)
      return (await session.execute(stmt)).scalar_one_or_none() is not None

  async def _update(self, sequence_id: str, **values) -> None:
    values["updated_at"] = _now()
    async with self._session_factory() as session:
      result = await session.execute(update(Sequence).where(Sequence.id == sequence_id).values(**values).execution_options(synchronize_session=False))
      await session.commit()
      if not result.rowcount:
        raise RecordNotFoundError("sequence", sequence_id)

  async def update_outline(self, sequence_id: str, chapters: list[OutlineChapter]) -> None:
    await self._update(sequence_id, chapters=encode_outline(chapters))

  async def update_metadata(self, sequence_id: str, metadata: StoryMetadata) -> None:
    await self._update(
      sequence_id,
      name=metadata.title,
      description=metadata.description,
      tags=metadata.tags,
      trigger_warnings=metadata.trigger_warnings,
      is_sexually_explicit=metadata.is_sexually_explicit,
      target_audience=metadata.target_audience,
    )

  async def update_embedding(self, sequence_id: str, embedding: str) -> None:
    await self._update(sequence_id, embedding=embedding)

  async def mark_prompt_processed(self, sequence_id: str, index: int, *, processed_at_ms: float) -> None:
    """Re-read the history under a row lock and flip one entry; prompts appended meanwhile are kept."""
    async with self._session_factory() as session:
      stmt = select(Sequence.user_prompt_history).where(Sequence.id == sequence_id).with_for_update()
      stored = (await session.execute(stmt)).one_or_none()
      if stored is None:
        raise RecordNotFoundError("sequence", sequence_id)
      history = flag_prompt_processed(decode_prompt_history(stored[0]), index, processed_at_ms=processed_at_ms)
      values = {"user_prompt_history": encode_prompt_history(history), "updated_at": _now()}
      await session.execute(update(Sequence).where(Sequence.id == sequence_id).values(**values).execution_options(synchronize_session=False))
      await session.commit()

  async def set_writing_quirk(self, sequence_id: str, quirk: str) -> None:
    await self._update(sequence_id, writing_quirk=quirk)


class PostgresQuotesRepository(_PostgresRepository, QuotesRepository):
  async def get_quote(self, quote_id: str) -> QuoteRecord | None:
    async with self._session_factory() as session:
      row = await session.get(FeaturedQuote, quote_id)
      if row is None:
        return None
      return QuoteRecord(
        id=str(row.id),
        chapter_id=str(row.chapter_id),
        quote_text=row.quote_text,
        sequence_id=str(row.sequence_id) if row.sequence_id is not None else None,
        context_sentence=row.context_sentence,
        sequence_title=row.sequence_title,
        video_url=row.video_url,
      )

  async def set_video_url(self, quote_id: str, video_url: str) -> None:
    async with self._session_factory() as session:
      result = await session.execute(update(FeaturedQuote).where(FeaturedQuote.id == quote_id).values(video_url=video_url, updated_at=_now()).execution_options(synchronize_session=False))
      await session.commit()
      if not result.rowcount:
        raise RecordNotFoundError("featured quote", quote_id)
