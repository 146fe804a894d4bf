from __future__ import annotations

from dataclasses import dataclass

from app.config import Settings
from app.storage.jobs_repo import JobsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.postgres_story_repo import PostgresChaptersRepository, PostgresQuotesRepository, PostgresSequencesRepository
from app.storage.story_repo import ChaptersRepository, QuotesRepository, SequencesRepository


@dataclass(frozen=True)
class Repositories:
  """The repositories one worker process shares across jobs."""

  jobs: JobsRepository
  chapters: ChaptersRepository
  sequences: SequencesRepository
  quotes: QuotesRepository


def _require_dsn(settings: Settings) -> None:
  # Enforce Postgres-backed storage.
  if not settings.pg_dsn:
    raise ValueError("STORYLOOM_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_dsn(settings)
  return PostgresJobsRepository()


def build_repositories(settings: Settings) -> Repositories:
  """Return Postgres-backed repositories for every table the worker touches."""
  _require_dsn(settings)
  return Repositories(jobs=PostgresJobsRepository(), chapters=PostgresChaptersRepository(), sequences=PostgresSequencesRepository(), quotes=PostgresQuotesRepository())
