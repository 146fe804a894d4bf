import asyncio
import logging
import os
import signal
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import dispose_engine
from app.core.logging import _initialize_logging
from app.jobs.worker import build_worker
from app.services.storage_client import build_storage_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialise logging, start the worker loop and stop it again on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  _initialize_logging(settings)
  logger.info("Startup complete - logging verified. environment=%s pg_dsn=%s", settings.environment, _redact_dsn(settings.pg_dsn))
  app.state.started_at = time.monotonic()
  app.state.worker_error = None

  if settings.replicate_api_token:
    # Emulator buckets are created on demand; real buckets are provisioned out of band.
    try:
      storage_client = build_storage_client(settings)
      await storage_client.ensure_bucket()
      logger.info("Video bucket ensured: %s", storage_client.bucket_name)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Failed to ensure video bucket at startup: %s", exc)

  worker_task: asyncio.Task | None = None
  if settings.worker_enabled:
    # Missing provider keys or DSN surface here and abort startup.
    worker = build_worker(settings)
    app.state.worker = worker
    worker_task = asyncio.create_task(worker.run(), name="storyloom-worker")
    worker_task.add_done_callback(lambda task: _on_worker_exit(app, task, logger))
  else:
    logger.info("Worker loop disabled (STORYLOOM_WORKER_ENABLED=false)")

  try:
    yield
  finally:
    if worker_task is not None:
      app.state.worker.request_shutdown()
      if not worker_task.done():
        logger.info("Waiting for in-flight jobs before shutdown")
        await asyncio.wait({worker_task})
    await dispose_engine()
    logger.info("Shutdown complete")


def _on_worker_exit(app: FastAPI, task: asyncio.Task, logger: logging.Logger) -> None:
  """Stop the whole process when the worker loop dies outside a normal shutdown."""
  if task.cancelled():
    return
  exc = task.exception()
  if exc is None:
    return
  app.state.worker_error = exc
  logger.critical("Worker loop crashed; terminating process", exc_info=exc)
  os.kill(os.getpid(), signal.SIGTERM)


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
