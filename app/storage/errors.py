"""Errors raised at the storage boundary."""

from __future__ import annotations


class RecordNotFoundError(LookupError):
  """Raised when a referenced row does not exist."""

  def __init__(self, entity: str, identifier: str) -> None:
    self.entity = entity
    self.identifier = identifier
    super().__init__(f"{entity} not found: {identifier}")


class MalformedPayloadError(ValueError):
  """Raised when a persisted JSON blob does not have the expected shape."""
