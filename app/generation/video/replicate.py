"""Minimal Replicate predictions client for text-to-video models."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from app.ai.errors import ContentPolicyError, is_content_policy_error

logger = logging.getLogger(__name__)

REPLICATE_API_BASE = "https://api.replicate.com/v1"
_TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


def build_video_input(prompt: str) -> dict[str, Any]:
  """Return the model input for a five second 480p clip."""
  return {"fps": 24, "prompt": prompt, "duration": 5, "resolution": "480p", "aspect_ratio": "16:9", "camera_fixed": False}


def extract_video_url(output: Any) -> str:
  """Pull a URL out of a prediction output (string, `{"url": ...}` or a list of either)."""
  if isinstance(output, str) and output:
    return output
  if isinstance(output, dict) and isinstance(output.get("url"), str):
    return output["url"]
  if isinstance(output, list) and output:
    return extract_video_url(output[0])
  raise RuntimeError(f"Unexpected output format from video provider: {type(output).__name__}")


class ReplicateVideoClient:
  """Create a prediction, wait for it to settle and return its output."""

  def __init__(
    self,
    *,
    api_token: str | None,
    model: str,
    poll_interval: float = 2.0,
    max_wait_seconds: float = 600.0,
    http_client: httpx.AsyncClient | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._api_token = api_token
    self._model = model
    self._poll_interval = poll_interval
    self._max_wait_seconds = max_wait_seconds
    self._http_client = http_client
    self._sleep = sleep

  @property
  def model(self) -> str:
    return self._model

  def _headers(self) -> dict[str, str]:
    if not self._api_token:
      raise RuntimeError("REPLICATE_API_TOKEN is not configured.")
    return {"authorization": f"Bearer {self._api_token}", "content-type": "application/json", "prefer": "wait"}

  def _build_client(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(trust_env=False, timeout=httpx.Timeout(120.0, connect=10.0))

  async def generate(self, prompt: str) -> str:
    """Run the model for `prompt` and return the resulting video URL."""
    video_input = build_video_input(prompt)
    logger.info("Submitting video prediction model=%s input=%s", self._model, video_input)
    if self._http_client is not None:
      output = await self._run(self._http_client, video_input)
    else:
      async with self._build_client() as client:
        output = await self._run(client, video_input)
    url = extract_video_url(output)
    logger.info("Video generated: %s", url)
    return url

  async def _run(self, client: httpx.AsyncClient, video_input: dict[str, Any]) -> Any:
    url = f"{REPLICATE_API_BASE}/models/{self._model}/predictions"
    response = await client.post(url, json={"input": video_input}, headers=self._headers())
    prediction = self._read_prediction(response)

    waited = 0.0
    while prediction.get("status") not in _TERMINAL_STATUSES:
      if waited >= self._max_wait_seconds:
        raise TimeoutError(f"Video prediction {prediction.get('id')} did not finish within {self._max_wait_seconds:.0f}s")
      await self._sleep(self._poll_interval)
      waited += self._poll_interval
      poll_url = (prediction.get("urls") or {}).get("get") or f"{REPLICATE_API_BASE}/predictions/{prediction.get('id')}"
      prediction = self._read_prediction(await client.get(poll_url, headers=self._headers()))

    status = prediction.get("status")
    if status != "succeeded":
      error = str(prediction.get("error") or f"prediction {status}")
      logger.error("Video prediction %s ended with status=%s error=%s", prediction.get("id"), status, error)
      if is_content_policy_error(RuntimeError(error)):
        raise ContentPolicyError(error)
      raise RuntimeError(f"Video generation failed: {error}")
    return prediction.get("output")

  @staticmethod
  def _read_prediction(response: httpx.Response) -> dict[str, Any]:
    if response.is_error:
      detail = response.text
      logger.error("Video provider returned %d: %s", response.status_code, detail)
      if is_content_policy_error(RuntimeError(detail)):
        raise ContentPolicyError(detail)
      response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict):
      raise RuntimeError(f"Unexpected prediction payload: {type(payload).__name__}")
    return payload
