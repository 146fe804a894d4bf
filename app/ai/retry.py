"""Shared exponential-backoff policy for generation calls."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from app.ai.errors import GenerationError

T = TypeVar("T")
logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
  """Bounded retry with exponential backoff.

  Attempt N (1-based) that fails waits `base_delay * multiplier ** (N - 1)` seconds before
  attempt N + 1, capped at `max_delay`. No delay follows the final attempt. Exhaustion raises
  `GenerationError` carrying the last underlying error.
  """

  max_attempts: int = 3
  base_delay: float = 1.0
  multiplier: float = 2.0
  max_delay: float = 30.0
  jitter: float = 0.0
  sleep: SleepFunc = field(default=asyncio.sleep, compare=False, repr=False)

  def __post_init__(self) -> None:
    if self.max_attempts < 1:
      raise ValueError("max_attempts must be at least 1.")
    if self.base_delay < 0:
      raise ValueError("base_delay must not be negative.")

  def delay_for(self, attempt: int) -> float:
    """Return the wait after a failed 1-based attempt."""
    delay = min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
    if self.jitter:
      delay += random.uniform(0, self.jitter * delay)
    return delay

  async def run(self, operation: str, func: Callable[[], Awaitable[T]], *, should_retry: Callable[[Exception], bool] | None = None) -> T:
    """Invoke `func` until it succeeds or the attempt budget is spent."""
    last_error: Exception | None = None
    for attempt in range(1, self.max_attempts + 1):
      try:
        result = await func()
        if attempt > 1:
          logger.info("Generation succeeded after retry: operation=%s, attempt=%d/%d", operation, attempt, self.max_attempts)
        return result
      except Exception as exc:  # noqa: BLE001
        last_error = exc
        logger.warning("Generation attempt failed: operation=%s, attempt=%d/%d, error_type=%s, error=%s", operation, attempt, self.max_attempts, type(exc).__name__, exc)
        if should_retry is not None and not should_retry(exc):
          logger.error("Generation failed with non-retryable error: operation=%s - failing immediately", operation)
          raise
        if attempt >= self.max_attempts:
          break
        delay = self.delay_for(attempt)
        logger.info("Retrying generation after backoff: operation=%s, attempt=%d/%d, backoff_s=%.2f", operation, attempt, self.max_attempts, delay)
        await self.sleep(delay)

    logger.error("Generation failed after %d attempts: operation=%s", self.max_attempts, operation)
    raise GenerationError(operation, self.max_attempts, last_error)
