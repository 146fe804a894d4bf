"""OpenRouter provider implementation using openai SDK."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final, cast

from openai import AsyncOpenAI

from app.ai.errors import ContentBlockedError
from app.ai.json_parser import parse_json_with_fallback, strip_json_fences
from app.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse, StructuredModelResponse

logger = logging.getLogger(__name__)


def _messages(prompt: str, system_prompt: str | None) -> list[dict[str, str]]:
  messages: list[dict[str, str]] = []
  if system_prompt:
    messages.append({"role": "system", "content": system_prompt})
  messages.append({"role": "user", "content": prompt})
  return messages


def _usage(response: Any) -> dict[str, int] | None:
  if not response.usage:
    return None
  return {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}


def _raise_if_filtered(response: Any) -> None:
  # OpenRouter normalises upstream safety blocks to finish_reason="content_filter".
  choice = response.choices[0] if response.choices else None
  if choice is not None and choice.finish_reason == "content_filter":
    raise ContentBlockedError("content_filter")


class OpenRouterModel(AIModel):
  """OpenRouter model client with structured output support."""

  def __init__(self, name: str, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = name
    self.supports_structured_output = True

    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or "https://openrouter.ai/api/v1", default_headers=default_headers or None)

  async def generate(self, prompt: str, *, system_prompt: str | None = None, temperature: float | None = None) -> ModelResponse:
    """Generate text response from OpenRouter."""
    kwargs: dict[str, Any] = {}
    if temperature is not None:
      kwargs["temperature"] = temperature
    response = await self._client.chat.completions.create(model=self.name, messages=_messages(prompt, system_prompt), **kwargs)
    _raise_if_filtered(response)

    content = (response.choices[0].message.content if response.choices else None) or ""
    logger.debug("OpenRouter response model=%s chars=%d", self.name, len(content))
    return SimpleModelResponse(content=content, usage=_usage(response))

  async def generate_structured(self, prompt: str, schema: dict[str, Any], *, system_prompt: str | None = None, temperature: float | None = None) -> StructuredModelResponse:
    """Generate structured JSON output using OpenAI's JSON mode."""
    # Serialize schema for prompt injection (reinforcement)
    schema_str = json.dumps(schema, indent=2)
    system_msg = f"You MUST strictly output JSON adhering to this schema:\n```json\n{schema_str}\n```\nOutput valid JSON only, no markdown formatting."
    if system_prompt:
      system_msg = f"{system_prompt}\n\n{system_msg}"

    kwargs: dict[str, Any] = {}
    if temperature is not None:
      kwargs["temperature"] = temperature
    response = await self._client.chat.completions.create(
      model=self.name,
      messages=_messages(prompt, system_msg),
      response_format={"type": "json_schema", "json_schema": {"name": "story_response", "schema": schema, "strict": True}},
      **kwargs,
    )
    _raise_if_filtered(response)

    content = (response.choices[0].message.content if response.choices else None) or "{}"
    logger.debug("OpenRouter structured response (raw) model=%s:\n%s", self.name, content)

    # Parse the model response with a lenient fallback to reduce retry churn.
    try:
      parsed = cast(dict[str, Any], parse_json_with_fallback(strip_json_fences(content)))
    except json.JSONDecodeError as e:
      raise RuntimeError(f"OpenRouter returned invalid JSON: {e}") from e
    return StructuredModelResponse(content=parsed, usage=_usage(response))


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  _DEFAULT_MODEL: Final[str] = "openrouter/horizon-beta"

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openrouter"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenRouter model client."""
    model_name = model or self._DEFAULT_MODEL
    # OpenRouter identifiers are always vendor-qualified.
    if "/" not in model_name:
      raise ValueError(f"Unsupported OpenRouter model '{model_name}'.")
    return OpenRouterModel(model_name, api_key=self._api_key, base_url=self._base_url)
