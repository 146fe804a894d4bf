"""In-process fixed-window rate limiting."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
  allowed: bool
  remaining: int
  reset_in_seconds: float


@dataclass
class _Window:
  count: int
  reset_at: float


class FixedWindowRateLimiter:
  """Count hits per key inside a fixed window that starts at the key's first hit.

  A window is forgotten once it expires, on the next check for any key.

  State lives on the instance, so each owner (and each test) gets an independent limiter. It is
  not shared across processes.
  """

  def __init__(self, *, limit: int, window_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
    if limit < 1:
      raise ValueError("limit must be at least 1.")
    if window_seconds <= 0:
      raise ValueError("window_seconds must be positive.")
    self._limit = limit
    self._window_seconds = window_seconds
    self._clock = clock
    self._windows: dict[str, _Window] = {}

  @property
  def limit(self) -> int:
    return self._limit

  @property
  def tracked_keys(self) -> int:
    return len(self._windows)

  def check(self, key: str) -> RateLimitDecision:
    """Record one hit for `key` and report whether it is allowed."""
    now = self._clock()
    self._prune(now)
    window = self._windows.get(key)

    if window is None:
      self._windows[key] = _Window(count=1, reset_at=now + self._window_seconds)
      return RateLimitDecision(allowed=True, remaining=self._limit - 1, reset_in_seconds=self._window_seconds)

    if window.count >= self._limit:
      return RateLimitDecision(allowed=False, remaining=0, reset_in_seconds=window.reset_at - now)

    window.count += 1
    return RateLimitDecision(allowed=True, remaining=self._limit - window.count, reset_in_seconds=window.reset_at - now)

  def _prune(self, now: float) -> None:
    # Expired windows of every key, not only the caller's.
    expired = [key for key, window in self._windows.items() if now > window.reset_at]
    for key in expired:
      del self._windows[key]

  def reset(self) -> None:
    self._windows.clear()
