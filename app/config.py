"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Storyloom worker service."""

  environment: str
  debug: bool
  host: str
  port: int
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  worker_enabled: bool
  poll_interval_seconds: float
  worker_concurrency: int
  reset_stuck_jobs: bool
  generation_max_attempts: int
  generation_base_delay_seconds: float
  outline_model: str
  prose_model: str
  prose_fallback_model: str | None
  metadata_model: str
  gemini_api_key: str | None
  openrouter_api_key: str | None
  openai_api_key: str | None
  embedding_model: str
  replicate_api_token: str | None
  video_model: str
  video_bucket: str
  gcp_project_id: str | None
  gcs_storage_host: str | None
  webhook_site_url: str | None
  webhook_api_key: str | None
  admin_api_key: str | None
  retry_rate_limit: int
  retry_rate_window_seconds: float

  @property
  def webhook_enabled(self) -> bool:
    """Return True when both webhook settings are present."""
    return bool(self.webhook_site_url and self.webhook_api_key)


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None, *, default: bool = False) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None or raw.strip() == "":
    return default

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _positive_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _non_negative_int(name: str, default: str) -> int:
  raw = os.getenv(name, default)
  try:
    value = int(raw)
  except ValueError as exc:
    raise ValueError(f"{name} must be an integer.") from exc
  if value < 0:
    raise ValueError(f"{name} must be zero or a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("STORYLOOM_ENV", "development").strip().lower()
  # Toggle SQL echo and verbose diagnostics outside production.
  debug = _parse_bool(os.getenv("STORYLOOM_DEBUG"))

  host = (os.getenv("STORYLOOM_HOST") or "0.0.0.0").strip()
  port = _positive_int("STORYLOOM_PORT", "3951")

  log_max_bytes = _positive_int("STORYLOOM_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _non_negative_int("STORYLOOM_LOG_BACKUP_COUNT", "10")

  # The worker polls on a fixed interval and claims at most `worker_concurrency` jobs per pass.
  poll_interval_seconds = _positive_int("STORYLOOM_POLL_INTERVAL_MS", "5000") / 1000.0
  worker_concurrency = _positive_int("STORYLOOM_WORKER_CONCURRENCY", "2")

  generation_max_attempts = _positive_int("STORYLOOM_GENERATION_MAX_ATTEMPTS", "3")
  generation_base_delay_seconds = _non_negative_int("STORYLOOM_GENERATION_BASE_DELAY_MS", "1000") / 1000.0

  retry_rate_limit = _positive_int("STORYLOOM_RETRY_RATE_LIMIT", "10")
  retry_rate_window_seconds = float(_positive_int("STORYLOOM_RETRY_RATE_WINDOW_SECONDS", "60"))

  return Settings(
    environment=environment,
    debug=debug,
    host=host,
    port=port,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=_optional_str(os.getenv("STORYLOOM_PG_DSN")),
    pg_connect_timeout=_positive_int("STORYLOOM_PG_CONNECT_TIMEOUT", "10"),
    worker_enabled=_parse_bool(os.getenv("STORYLOOM_WORKER_ENABLED"), default=True),
    poll_interval_seconds=poll_interval_seconds,
    worker_concurrency=worker_concurrency,
    reset_stuck_jobs=_parse_bool(os.getenv("STORYLOOM_RESET_STUCK_JOBS")),
    generation_max_attempts=generation_max_attempts,
    generation_base_delay_seconds=generation_base_delay_seconds,
    outline_model=(os.getenv("STORYLOOM_OUTLINE_MODEL") or "gemini-2.5-pro").strip(),
    prose_model=(os.getenv("STORYLOOM_PROSE_MODEL") or "openrouter/horizon-beta").strip(),
    prose_fallback_model=_optional_str(os.getenv("STORYLOOM_PROSE_FALLBACK_MODEL", "google/gemini-2.5-pro")),
    metadata_model=(os.getenv("STORYLOOM_METADATA_MODEL") or "gemini-2.5-pro").strip(),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    embedding_model=(os.getenv("STORYLOOM_EMBEDDING_MODEL") or "text-embedding-ada-002").strip(),
    replicate_api_token=_optional_str(os.getenv("REPLICATE_API_TOKEN")),
    video_model=(os.getenv("STORYLOOM_VIDEO_MODEL") or "bytedance/seedance-1-lite").strip(),
    video_bucket=(os.getenv("STORYLOOM_VIDEO_BUCKET") or "videos").strip(),
    gcp_project_id=_optional_str(os.getenv("STORYLOOM_GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("STORYLOOM_GCS_STORAGE_HOST")),
    webhook_site_url=_optional_str(os.getenv("STORYLOOM_WEBHOOK_SITE_URL")),
    webhook_api_key=_optional_str(os.getenv("STORYLOOM_WEBHOOK_API_KEY")),
    admin_api_key=_optional_str(os.getenv("STORYLOOM_ADMIN_API_KEY")),
    retry_rate_limit=retry_rate_limit,
    retry_rate_window_seconds=retry_rate_window_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load only the settings the database layer needs."""

  return DatabaseSettings(
    debug=_parse_bool(os.getenv("STORYLOOM_DEBUG")),
    pg_dsn=_optional_str(os.getenv("STORYLOOM_PG_DSN")),
    pg_connect_timeout=_positive_int("STORYLOOM_PG_CONNECT_TIMEOUT", "10"),
  )
