"""Completion webhook to the main application."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionPayload:
  job_id: str
  sequence_id: str
  chapter_id: str
  is_first_chapter: bool

  def to_json(self) -> dict[str, object]:
    return {"jobId": self.job_id, "sequenceId": self.sequence_id, "chapterId": self.chapter_id, "isFirstChapter": self.is_first_chapter}


class WebhookNotifier:
  """At-most-once completion notification; failures are logged and never raised."""

  def __init__(self, *, site_url: str, api_key: str, timeout: float = 10.0, http_client: httpx.AsyncClient | None = None) -> None:
    self._url = f"{site_url.rstrip('/')}/api/generation-complete"
    self._api_key = api_key
    self._timeout = timeout
    self._http_client = http_client

  @property
  def url(self) -> str:
    return self._url

  async def notify_job_completion(self, payload: CompletionPayload) -> bool:
    """POST the payload once; return True on a 2xx response."""
    headers = {"authorization": f"Bearer {self._api_key}", "content-type": "application/json"}
    logger.info("Sending completion webhook for job %s (sequence=%s, first_chapter=%s)", payload.job_id, payload.sequence_id, payload.is_first_chapter)
    try:
      if self._http_client is not None:
        response = await self._http_client.post(self._url, json=payload.to_json(), headers=headers, timeout=self._timeout)
      else:
        async with httpx.AsyncClient(trust_env=False) as client:
          response = await client.post(self._url, json=payload.to_json(), headers=headers, timeout=self._timeout)
      response.raise_for_status()
    except httpx.HTTPStatusError as e:
      logger.error("Completion webhook returned %s for job %s: %s", e.response.status_code, payload.job_id, e.response.text)
      return False
    except httpx.RequestError as e:
      logger.error("Failed to send completion webhook for job %s: %s", payload.job_id, e)
      return False
    logger.info("Completion webhook delivered for job %s", payload.job_id)
    return True


def build_webhook_notifier(settings: Settings) -> WebhookNotifier | None:
  """Return a notifier when both the site URL and API key are configured."""
  if not settings.webhook_enabled:
    logger.info("Completion webhook disabled (site URL or API key not configured)")
    return None
  return WebhookNotifier(site_url=settings.webhook_site_url, api_key=settings.webhook_api_key)
