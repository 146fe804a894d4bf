"""Generation gateway: uniform retry, fallback and validation around model calls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from app.ai.errors import EmptyGenerationError
from app.ai.providers.base import AIModel
from app.ai.retry import RetryPolicy

T = TypeVar("T")
SchemaT = TypeVar("SchemaT", bound=BaseModel)


class GenerationGateway:
  """Wrap a text/object generation capability with one shared retry policy.

  Every attempt first calls the primary model and, when configured, the fallback model if the
  primary raises. Parsing and schema validation happen inside the attempt, so a malformed reply is
  retried exactly like a provider error.
  """

  def __init__(self, model: AIModel, *, fallback: AIModel | None = None, retry_policy: RetryPolicy | None = None) -> None:
    self._model = model
    self._fallback = fallback
    self._retry_policy = retry_policy or RetryPolicy()
    self._logger = logging.getLogger(__name__)

  @property
  def model_name(self) -> str:
    return self._model.name

  @property
  def retry_policy(self) -> RetryPolicy:
    return self._retry_policy

  async def _generate_once(self, prompt: str, *, system_prompt: str | None, temperature: float | None) -> str:
    try:
      response = await self._model.generate(prompt, system_prompt=system_prompt, temperature=temperature)
    except Exception as exc:  # noqa: BLE001
      if self._fallback is None:
        raise
      self._logger.warning("Primary model %s failed (%s); trying fallback %s", self._model.name, exc, self._fallback.name)
      response = await self._fallback.generate(prompt, system_prompt=system_prompt, temperature=temperature)
    return response.content

  async def generate_text(self, prompt: str, *, system_prompt: str | None = None, temperature: float | None = None, operation: str = "generate_text") -> str:
    """Return non-empty generated text."""

    async def _attempt() -> str:
      text = (await self._generate_once(prompt, system_prompt=system_prompt, temperature=temperature)).strip()
      if not text:
        raise EmptyGenerationError(f"{operation} returned empty content")
      return text

    return await self._retry_policy.run(operation, _attempt)

  async def generate_parsed(self, prompt: str, parser: Callable[[str], T], *, system_prompt: str | None = None, temperature: float | None = None, operation: str = "generate_parsed") -> T:
    """Generate text and convert it with `parser`; parser errors count as failed attempts."""

    async def _attempt() -> T:
      text = await self._generate_once(prompt, system_prompt=system_prompt, temperature=temperature)
      return parser(text)

    return await self._retry_policy.run(operation, _attempt)

  async def generate_structured(self, prompt: str, schema: type[SchemaT], *, system_prompt: str | None = None, temperature: float | None = None, operation: str = "generate_structured") -> SchemaT:
    """Generate an object and validate it strictly against `schema`."""
    json_schema = schema.model_json_schema()

    async def _call(model: AIModel) -> SchemaT:
      response = await model.generate_structured(prompt, json_schema, system_prompt=system_prompt, temperature=temperature)
      try:
        return schema.model_validate(response.content, strict=True)
      except ValidationError as exc:
        raise ValueError(f"{operation} schema validation failed: {exc.error_count()} errors: {exc.errors(include_input=False)}") from exc

    async def _attempt() -> SchemaT:
      try:
        return await _call(self._model)
      except Exception as exc:  # noqa: BLE001
        if self._fallback is None:
          raise
        self._logger.warning("Primary model %s failed (%s); trying fallback %s", self._model.name, exc, self._fallback.name)
        return await _call(self._fallback)

    return await self._retry_policy.run(operation, _attempt)
