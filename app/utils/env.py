"""Minimal .env reader used before settings are evaluated."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  """Return the .env path at the repository root."""

  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_line(raw_line: str) -> tuple[str, str] | None:
  """Split one `KEY=value` line, ignoring comments, blanks and malformed entries."""

  line = raw_line.strip()
  if not line or line.startswith("#"):
    return None
  # Shell-style exports are common in shared env files.
  if line.startswith("export "):
    line = line[len("export ") :].lstrip()
  key, separator, value = line.partition("=")
  key = key.strip()
  if not separator or not key:
    return None
  value = value.strip()
  if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
    value = value[1:-1]
  return key, value


def load_env_file(path: Path, *, override: bool = False) -> int:
  """Load key=value pairs into the process environment and return how many were applied."""

  if not path.is_file():
    return 0

  applied = 0
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    parsed = parse_env_line(raw_line)
    if parsed is None:
      continue
    key, value = parsed
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    applied += 1
  return applied
