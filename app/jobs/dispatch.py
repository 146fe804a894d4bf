"""Dependency-injected job handler dispatch helpers."""

from __future__ import annotations

from typing import Protocol

from app.jobs.models import JobRecord
from app.jobs.progress import JobProgressTracker


class JobHandler(Protocol):
  """Processor contract for one job type."""

  async def process(self, job: JobRecord, tracker: JobProgressTracker) -> None:
    """Run a claimed job to completion, raising on failure."""


class JobProcessorRegistry:
  """Registry mapping job types to handlers."""

  def __init__(self, handlers: dict[str, JobHandler]) -> None:
    self._handlers = handlers

  @property
  def job_types(self) -> tuple[str, ...]:
    return tuple(self._handlers)

  def resolve(self, job_type: str) -> JobHandler:
    """Resolve the handler for a job type."""
    handler = self._handlers.get(job_type)
    if handler is None:
      raise ValueError(f"Unsupported job type: {job_type}")
    return handler

  async def drain_background_tasks(self) -> None:
    """Let handlers finish fire-and-forget work such as completion webhooks."""
    seen: set[int] = set()
    for handler in self._handlers.values():
      # Aliased job types share one handler instance.
      if id(handler) in seen:
        continue
      seen.add(id(handler))
      drain = getattr(handler, "drain_background_tasks", None)
      if drain is not None:
        await drain()
