"""Shared FastAPI dependencies for the admin and health routes."""

from __future__ import annotations

import logging
import secrets
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import text

from app.config import Settings, get_settings
from app.core.database import get_db_engine
from app.services.job_retry import JobRetryService
from app.services.rate_limit import FixedWindowRateLimiter
from app.storage.factory import Repositories, build_repositories
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

DatabasePing = Callable[[], Awaitable[None]]


async def ping_database() -> None:
  """Run a trivial query; raises when the database is unreachable or unconfigured."""
  engine = get_db_engine()
  if engine is None:
    raise RuntimeError("Database connection is not configured (STORYLOOM_PG_DSN is missing).")
  async with engine.connect() as connection:
    await connection.execute(text("SELECT 1"))


def get_database_ping() -> DatabasePing:
  return ping_database


def get_repositories(settings: Annotated[Settings, Depends(get_settings)]) -> Repositories:
  return build_repositories(settings)


def get_jobs_repository(repos: Annotated[Repositories, Depends(get_repositories)]) -> JobsRepository:
  return repos.jobs


def get_retry_rate_limiter(request: Request, settings: Annotated[Settings, Depends(get_settings)]) -> FixedWindowRateLimiter:
  """Return the limiter owned by this application instance."""
  limiter = getattr(request.app.state, "retry_rate_limiter", None)
  if limiter is None:
    limiter = FixedWindowRateLimiter(limit=settings.retry_rate_limit, window_seconds=settings.retry_rate_window_seconds)
    request.app.state.retry_rate_limiter = limiter
  return limiter


def get_retry_service(repos: Annotated[Repositories, Depends(get_repositories)], limiter: Annotated[FixedWindowRateLimiter, Depends(get_retry_rate_limiter)]) -> JobRetryService:
  return JobRetryService(jobs_repo=repos.jobs, chapters_repo=repos.chapters, sequences_repo=repos.sequences, rate_limiter=limiter)


def require_admin_key(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Check the bearer key for administrative routes."""
  if not settings.admin_api_key:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Admin API key is not configured.")
  expected_auth = f"Bearer {settings.admin_api_key}"
  if not secrets.compare_digest(authorization or "", expected_auth):
    logger.warning("Unauthorized access attempt to admin route")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin credentials.", headers={"WWW-Authenticate": "Bearer"})
