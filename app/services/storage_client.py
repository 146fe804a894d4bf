"""Object storage helper for generated video assets."""

from __future__ import annotations

import os
from urllib.parse import quote, urlparse, urlunparse

from app.config import Settings
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

VIDEO_CONTENT_TYPE = "video/mp4"


class StorageClient:
  """Thin wrapper over GCS and emulator access for video uploads."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.video_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._public_base = emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._public_base = "https://storage.googleapis.com"
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    """Return the bucket videos are written to."""
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in local/dev flows."""
    # Only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def upload_bytes(self, data: bytes, object_name: str, *, content_type: str = VIDEO_CONTENT_TYPE, cache_control: str = "public, max-age=3600") -> str:
    """Upload bytes without overwriting and return the object's public URL."""
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    blob.cache_control = cache_control
    # if_generation_match=0 makes the upload fail instead of replacing an existing object.
    await run_in_threadpool(blob.upload_from_string, data, content_type=content_type, if_generation_match=0)
    return self.public_url(object_name)

  def public_url(self, object_name: str) -> str:
    return f"{self._public_base}/{self._bucket_name}/{quote(object_name)}"

  async def delete(self, object_name: str) -> None:
    """Delete an object from the bucket when cleanup is required."""
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    await run_in_threadpool(blob.delete)


def build_storage_client(settings: Settings) -> StorageClient:
  """Create a storage client instance with environment-aware credentials."""
  return StorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
