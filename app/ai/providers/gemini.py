"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import json
import logging
import os
import warnings
from typing import Any, Final, cast

from pydantic.warnings import ArbitraryTypeWarning

with warnings.catch_warnings():
  warnings.filterwarnings("ignore", message=r"<built-in function any> is not a Python type.*", category=ArbitraryTypeWarning)
  from google import genai

from app.ai.errors import ContentBlockedError
from app.ai.json_parser import parse_json_with_fallback, strip_json_fences
from app.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)


def _build_config(*, system_prompt: str | None, temperature: float | None, extra: dict[str, Any] | None = None) -> dict[str, Any]:
  # A plain dict keeps the SDK from re-validating JSON Schema payloads with pydantic.
  config: dict[str, Any] = dict(extra or {})
  if system_prompt:
    config["system_instruction"] = system_prompt
  if temperature is not None:
    config["temperature"] = temperature
  return config


def _usage(response: Any) -> dict[str, int] | None:
  if not response.usage_metadata:
    return None
  return {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}


def _raise_if_blocked(response: Any) -> None:
  feedback = getattr(response, "prompt_feedback", None)
  block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
  if block_reason:
    raise ContentBlockedError(str(getattr(block_reason, "value", block_reason)))


class GeminiModel(AIModel):
  """Gemini model client with structured output support using google-genai SDK."""

  def __init__(self, name: str, api_key: str | None = None) -> None:
    self.name: str = name
    self.supports_structured_output = True

    api_key = api_key or os.getenv("GEMINI_API_KEY")
    if not api_key:
      raise ValueError("GEMINI_API_KEY environment variable is required")

    self._client = genai.Client(api_key=api_key)

  async def generate(self, prompt: str, *, system_prompt: str | None = None, temperature: float | None = None) -> ModelResponse:
    """Generate text response from Gemini."""
    # Use the async client to avoid blocking the asyncio event loop.
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=_build_config(system_prompt=system_prompt, temperature=temperature))
    _raise_if_blocked(response)
    content = response.text or ""
    logger.debug("Gemini response model=%s chars=%d", self.name, len(content))
    return SimpleModelResponse(content=content, usage=_usage(response))

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, system_prompt: str | None = None, temperature: float | None = None) -> StructuredModelResponse:
    """Generate structured JSON output using Gemini's JSON mode."""
    config = _build_config(system_prompt=system_prompt, temperature=temperature, extra={"response_mime_type": "application/json", "response_json_schema": schema})
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=config)
    _raise_if_blocked(response)
    raw = response.text or ""
    logger.debug("Gemini structured response (raw) model=%s:\n%s", self.name, raw)

    # Parse the model response with a lenient fallback to reduce retry churn.
    try:
      parsed = cast(dict[str, Any], parse_json_with_fallback(strip_json_fences(raw)))
    except json.JSONDecodeError as e:
      raise RuntimeError(f"Gemini returned invalid JSON: {e}") from e
    return StructuredModelResponse(content=parsed, usage=_usage(response))


class GeminiProvider(Provider):
  """Gemini provider."""

  _DEFAULT_MODEL: Final[str] = "gemini-2.5-pro"

  def __init__(self, api_key: str | None = None) -> None:
    self.name: str = "gemini"
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    """Return a Gemini model client."""
    model_name = model or self._DEFAULT_MODEL
    if not model_name.startswith("gemini-"):
      raise ValueError(f"Unsupported Gemini model '{model_name}'.")
    return GeminiModel(model_name, api_key=self._api_key)
