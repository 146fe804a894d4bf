"""Quote-to-video pipeline: enhance, generate with policy-aware retries, store."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

import httpx

from app.ai.errors import GenerationError, is_content_policy_error
from app.ai.retry import RetryPolicy
from app.generation.video.enhancer import VideoPromptContext, VideoPromptEnhancer
from app.generation.video.sanitizer import VideoPromptSanitizer, level_for_attempt
from app.services.storage_client import VIDEO_CONTENT_TYPE

logger = logging.getLogger(__name__)


class VideoGenerator(Protocol):
  async def generate(self, prompt: str) -> str:
    """Return the URL of a generated video."""


class VideoStorage(Protocol):
  async def upload_bytes(self, data: bytes, object_name: str, *, content_type: str = VIDEO_CONTENT_TYPE, cache_control: str = "public, max-age=3600") -> str:
    """Upload and return a public URL."""


Downloader = Callable[[str], Awaitable[bytes]]


def video_object_name(quote_id: str, timestamp_ms: int) -> str:
  return f"quote_{quote_id}_{timestamp_ms}.mp4"


async def download_video(url: str) -> bytes:
  """Fetch the generated asset from the provider's temporary URL."""
  async with httpx.AsyncClient(trust_env=False, timeout=httpx.Timeout(300.0, connect=10.0), follow_redirects=True) as client:
    response = await client.get(url)
    if response.is_error:
      raise RuntimeError(f"Failed to download video: {response.status_code} {response.reason_phrase}")
    return response.content


class VideoGenerationService:
  """Generate and persist a video for one featured quote.

  Submission failures are handled two ways. A content-policy rejection rewrites the prompt
  (first mildly, then strongly) and resubmits immediately. Any other error backs off and resubmits
  the same prompt. Both count against the same attempt budget.
  """

  def __init__(
    self,
    *,
    enhancer: VideoPromptEnhancer,
    sanitizer: VideoPromptSanitizer,
    generator: VideoGenerator,
    storage: VideoStorage,
    retry_policy: RetryPolicy | None = None,
    downloader: Downloader = download_video,
    clock: Callable[[], float] = time.time,
  ) -> None:
    self._enhancer = enhancer
    self._sanitizer = sanitizer
    self._generator = generator
    self._storage = storage
    self._retry_policy = retry_policy or RetryPolicy(max_attempts=3, base_delay=2.0)
    self._downloader = downloader
    self._clock = clock

  async def enhance_prompt(self, context: VideoPromptContext) -> str:
    return await self._enhancer.enhance(context)

  async def generate_video(self, enhanced_prompt: str) -> str:
    """Submit the prompt, escalating sanitization on policy rejections; returns the provider URL."""
    policy = self._retry_policy
    prompt = enhanced_prompt
    sanitization_round = 0
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
      try:
        logger.info("Video generation attempt %d/%d (sanitization_round=%d)", attempt, policy.max_attempts, sanitization_round)
        return await self._generator.generate(prompt)
      except Exception as exc:  # noqa: BLE001
        last_error = exc
        logger.warning("Video generation attempt failed: attempt=%d/%d, error_type=%s, error=%s", attempt, policy.max_attempts, type(exc).__name__, exc)
        if attempt >= policy.max_attempts:
          break
        if is_content_policy_error(exc):
          sanitization_round += 1
          level = level_for_attempt(sanitization_round)
          # Rewrite the enhanced prompt, not the previous rewrite.
          prompt = await self._sanitizer.sanitize(enhanced_prompt, level)
          continue
        delay = policy.delay_for(attempt)
        logger.info("Retrying video generation after backoff: attempt=%d/%d, backoff_s=%.2f", attempt, policy.max_attempts, delay)
        await policy.sleep(delay)

    raise GenerationError("generate_video", policy.max_attempts, last_error)

  async def store_video(self, quote_id: str, video_url: str) -> str:
    """Copy the provider asset into durable storage and return its public URL."""
    data = await self._downloader(video_url)
    object_name = video_object_name(quote_id, int(self._clock() * 1000))
    logger.info("Uploading %d bytes as %s", len(data), object_name)
    public_url = await self._storage.upload_bytes(data, object_name, content_type=VIDEO_CONTENT_TYPE)
    logger.info("Video stored at %s", public_url)
    return public_url
