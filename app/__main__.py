"""Run the worker service: `python -m app`."""

from __future__ import annotations

import logging
import sys

import uvicorn

from app.config import get_settings


def main() -> int:
  settings = get_settings()
  from app.main import app

  try:
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
  except Exception:  # noqa: BLE001
    logging.getLogger("app").critical("Worker service failed to start", exc_info=True)
    return 1
  # uvicorn returns normally after SIGTERM; a crashed worker loop must still exit non-zero.
  if getattr(app.state, "worker_error", None) is not None:
    return 1
  return 0


if __name__ == "__main__":
  sys.exit(main())
