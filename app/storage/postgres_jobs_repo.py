"""Postgres-backed repository for generation jobs using SQLAlchemy."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, func, select, update

from app.core.database import get_session_factory
from app.jobs.models import ACTIVE_JOB_STATUSES, JobRecord, JobStatus
from app.schema.sql import GenerationJob
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


class PostgresJobsRepository(JobsRepository):
  """Persist generation jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def claim_job(self, job_id: str, *, started_at: datetime) -> bool:
    # The status guard makes the claim a compare-and-set; rowcount tells us who won.
    stmt = (
      update(GenerationJob)
      .where(GenerationJob.id == job_id, GenerationJob.status == "pending")
      .values(status="processing", started_at=started_at, current_step="initializing", updated_at=datetime.now(UTC))
      .execution_options(synchronize_session=False)
    )
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      await session.commit()
      claimed = (result.rowcount or 0) > 0
      logger.debug("Claim job=%s claimed=%s", job_id, claimed)
      return claimed

  async def update_job(
    self,
    job_id: str,
    *,
    status: JobStatus | None = None,
    progress: float | None = None,
    current_step: str | None = None,
    error_message: str | None = None,
    bullet_progress: int | None = None,
    started_at: datetime | None = None,
    completed_at: datetime | None = None,
  ) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      if status is not None:
        row.status = status
      if progress is not None:
        row.progress = progress
      if current_step is not None:
        row.current_step = current_step
      if error_message is not None:
        row.error_message = error_message
      if bullet_progress is not None:
        row.bullet_progress = bullet_progress
      if started_at is not None:
        row.started_at = started_at
      if completed_at is not None:
        row.completed_at = completed_at
      row.updated_at = datetime.now(UTC)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def reset_job(self, job_id: str, *, current_step: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, job_id)
      if row is None:
        return None
      row.status = "pending"
      row.error_message = None
      row.started_at = None
      row.completed_at = None
      row.progress = 0.0
      row.current_step = current_step
      row.updated_at = datetime.now(UTC)
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def delete_job(self, job_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(GenerationJob).where(GenerationJob.id == job_id))
      await session.commit()

  async def find_pending(self, limit: int) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.status == "pending").order_by(GenerationJob.created_at.asc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def find_active_for_chapter(self, chapter_id: str) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.chapter_id == chapter_id, GenerationJob.status.in_(ACTIVE_JOB_STATUSES)).order_by(GenerationJob.created_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def find_processing(self) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(GenerationJob.status == "processing").order_by(GenerationJob.created_at.asc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def find_failed(self, *, job_id: str | None = None, user_id: str | None = None, chapter_id: str | None = None) -> list[JobRecord]:
    filters: list[Any] = [GenerationJob.status == "failed"]
    if job_id:
      filters.append(GenerationJob.id == job_id)
    elif user_id:
      filters.append(GenerationJob.user_id == user_id)
    elif chapter_id:
      filters.append(GenerationJob.chapter_id == chapter_id)
    else:
      return []
    async with self._session_factory() as session:
      stmt = select(GenerationJob).where(*filters).order_by(GenerationJob.created_at.desc())
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def count_by_status(self) -> dict[str, int]:
    async with self._session_factory() as session:
      stmt = select(GenerationJob.status, func.count()).group_by(GenerationJob.status)
      rows = (await session.execute(stmt)).all()
      return {str(status): int(count) for status, count in rows}

  def _model_to_record(self, row: GenerationJob) -> JobRecord:
    return JobRecord(
      id=str(row.id),
      chapter_id=str(row.chapter_id) if row.chapter_id is not None else None,
      status=row.status,
      job_type=row.job_type or "story_generation",
      sequence_id=str(row.sequence_id) if row.sequence_id is not None else None,
      quote_id=str(row.quote_id) if row.quote_id is not None else None,
      user_id=str(row.user_id) if row.user_id is not None else None,
      model_id=row.model_id,
      progress=float(row.progress or 0.0),
      current_step=row.current_step,
      error_message=row.error_message,
      bullet_progress=row.bullet_progress,
      story_outline=row.story_outline,
      user_preferences=row.user_preferences,
      created_at=row.created_at,
      started_at=row.started_at,
      completed_at=row.completed_at,
      updated_at=row.updated_at,
    )
