from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class GenerationJob(Base):
  __tablename__ = "generation_jobs"

  id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
  chapter_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=True, index=True)
  sequence_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=True, index=True)
  quote_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("featured_quotes.id", ondelete="CASCADE"), nullable=True)
  user_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False, server_default="story_generation")
  model_id: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending", index=True)
  progress: Mapped[float | None] = mapped_column(Float, nullable=True, server_default="0")
  current_step: Mapped[str | None] = mapped_column(String, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  bullet_progress: Mapped[int | None] = mapped_column(Integer, nullable=True)
  story_outline: Mapped[dict | list | None] = mapped_column(JSONB, nullable=True)
  user_preferences: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now())


class Chapter(Base):
  __tablename__ = "chapters"

  id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
  author: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)
  content: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  embedding: Mapped[str | None] = mapped_column(Text, nullable=True)
  generation_progress: Mapped[float | None] = mapped_column(Float, nullable=True)
  generation_status: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  parent_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("chapters.id", ondelete="SET NULL"), nullable=True)
  title: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now())


class Sequence(Base):
  __tablename__ = "sequences"

  id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
  created_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True, index=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  tags: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
  trigger_warnings: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
  target_audience: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
  is_sexually_explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
  # pgvector-compatible textual vector literal, e.g. "[0.1,0.2,...]".
  embedding: Mapped[str | None] = mapped_column(Text, nullable=True)
  chapters: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  user_prompt_history: Mapped[list | None] = mapped_column(JSONB, nullable=True)
  writing_quirk: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now())


class ChapterSequenceMap(Base):
  __tablename__ = "chapter_sequence_map"

  id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
  chapter_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
  sequence_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True)
  chapter_index: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now())


class FeaturedQuote(Base):
  __tablename__ = "featured_quotes"

  id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, server_default=func.gen_random_uuid())
  chapter_id: Mapped[str] = mapped_column(UUID(as_uuid=False), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True)
  sequence_id: Mapped[str | None] = mapped_column(UUID(as_uuid=False), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=True)
  quote_text: Mapped[str] = mapped_column(Text, nullable=False)
  context_sentence: Mapped[str | None] = mapped_column(Text, nullable=True)
  sequence_title: Mapped[str | None] = mapped_column(String, nullable=True)
  sequence_tags: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
  video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  status: Mapped[str | None] = mapped_column(String, nullable=True)
  start_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
  end_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, server_default=func.now(), onupdate=func.now())
