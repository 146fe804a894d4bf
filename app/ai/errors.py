"""Generation failures and shared error classification helpers."""

from __future__ import annotations

from collections.abc import Iterable


class GenerationError(RuntimeError):
  """Raised when a generation call exhausts its retry budget."""

  def __init__(self, operation: str, attempts: int, last_error: BaseException | None) -> None:
    self.operation = operation
    self.attempts = attempts
    self.last_error = last_error
    last_message = str(last_error) if last_error is not None else "unknown error"
    super().__init__(f"{operation} failed after {attempts} attempts: {last_message}")


class EmptyGenerationError(RuntimeError):
  """Raised when a model returns no usable text."""


class ContentBlockedError(RuntimeError):
  """Raised when a provider refuses the prompt outright."""

  def __init__(self, reason: str) -> None:
    self.reason = reason
    super().__init__(f"Content generation blocked by AI model due to: {reason}")


class ContentPolicyError(RuntimeError):
  """Raised when the video capability rejects a prompt on policy grounds."""


_CONTENT_POLICY_HINTS: tuple[str, ...] = (
  "content policy",
  "policy violation",
  "violates",
  "sensitive",
  "flagged",
  "nsfw",
  "safety",
  "inappropriate",
  "e005",
)

_RATE_LIMIT_HINTS: tuple[str, ...] = (
  "429",
  "too many requests",
  "rate limit",
  "resource exhausted",
  "quota",
)


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  # Scan for known substrings to categorize the failure.
  for hint in hints:
    if hint in message:
      return True
  return False


def is_content_policy_error(exc: BaseException) -> bool:
  """Return True when an exception reads like a provider content-policy rejection."""
  if isinstance(exc, ContentPolicyError):
    return True
  message = str(exc).lower()
  return _match_hint(message, _CONTENT_POLICY_HINTS)


def is_rate_limit_error(exc: BaseException) -> bool:
  """Return True when an exception indicates provider throttling."""
  message = str(exc).lower()
  return _match_hint(message, _RATE_LIMIT_HINTS)
