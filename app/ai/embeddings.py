"""Best-effort text embeddings through the OpenAI embeddings API."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from app.config import Settings

EMBEDDING_DIMENSIONS = 1536

logger = logging.getLogger(__name__)


def zero_vector(dimensions: int = EMBEDDING_DIMENSIONS) -> list[float]:
  return [0.0] * dimensions


def normalize_embedding_input(text: str) -> str:
  """Collapse newlines the way the embedding model was trained on."""
  return text.replace("\n", " ").strip()


def serialize_embedding(vector: list[float]) -> str:
  """Render a vector as the bracketed text literal pgvector accepts."""
  return json.dumps(vector, separators=(",", ":"))


class EmbeddingClient:
  """Embedding capability that degrades to a zero vector instead of raising.

  A missing API key, a provider error or a vector of the wrong size all yield
  `EMBEDDING_DIMENSIONS` zeros, so the story pipeline never blocks on embeddings.
  """

  def __init__(self, *, api_key: str | None, model: str = "text-embedding-ada-002", dimensions: int = EMBEDDING_DIMENSIONS, client: Any | None = None) -> None:
    self._model = model
    self._dimensions = dimensions
    self._client = client
    if self._client is None and api_key:
      self._client = AsyncOpenAI(api_key=api_key)

  @property
  def enabled(self) -> bool:
    return self._client is not None

  async def generate_embedding(self, text: str) -> list[float]:
    """Return the embedding for `text`, or zeros when unavailable."""
    if self._client is None:
      logger.warning("OPENAI_API_KEY not configured; using zero embedding vector.")
      return zero_vector(self._dimensions)

    try:
      response = await self._client.embeddings.create(model=self._model, input=normalize_embedding_input(text))
    except Exception as exc:  # noqa: BLE001
      logger.warning("Embedding request failed model=%s error=%s; using zero vector.", self._model, exc)
      return zero_vector(self._dimensions)

    vector = list(response.data[0].embedding) if response.data else []
    if len(vector) != self._dimensions:
      logger.warning("Embedding has %d dimensions, expected %d; using zero vector.", len(vector), self._dimensions)
      return zero_vector(self._dimensions)
    return vector


def build_embedding_client(settings: Settings) -> EmbeddingClient:
  return EmbeddingClient(api_key=settings.openai_api_key, model=settings.embedding_model)
