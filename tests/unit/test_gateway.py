from __future__ import annotations

import pytest

from app.ai.errors import GenerationError
from app.ai.gateway import GenerationGateway
from app.generation.metadata import ExplicitFlag, StoryTags
from tests.fakes import ScriptedModel, fast_policy


@pytest.mark.anyio
async def test_fallback_model_is_tried_within_the_same_attempt() -> None:
  primary = ScriptedModel("primary", [RuntimeError("primary down")])
  fallback = ScriptedModel("fallback", ["From the fallback"])
  gateway = GenerationGateway(primary, fallback=fallback, retry_policy=fast_policy())

  assert await gateway.generate_text("prompt") == "From the fallback"
  assert len(primary.calls) == 1
  assert len(fallback.calls) == 1


@pytest.mark.anyio
async def test_empty_text_is_retried() -> None:
  model = ScriptedModel(replies=["   ", "Real text"])
  gateway = GenerationGateway(model, retry_policy=fast_policy())
  assert await gateway.generate_text("prompt") == "Real text"
  assert len(model.calls) == 2


@pytest.mark.anyio
async def test_parser_errors_count_as_failed_attempts() -> None:
  model = ScriptedModel(replies=["nope", "nope", "nope"])
  gateway = GenerationGateway(model, retry_policy=fast_policy())

  def _parse(text: str) -> int:
    return int(text)

  with pytest.raises(GenerationError, match="parse_number failed after 3 attempts"):
    await gateway.generate_parsed("prompt", _parse, operation="parse_number")


@pytest.mark.anyio
async def test_structured_output_is_validated_strictly() -> None:
  # "true" as a string is coerced by lax validation; strict mode rejects it.
  model = ScriptedModel(replies=[{"is_sexually_explicit": "true"}, {"is_sexually_explicit": True}])
  gateway = GenerationGateway(model, retry_policy=fast_policy())
  result = await gateway.generate_structured("prompt", ExplicitFlag)
  assert result.is_sexually_explicit is True
  assert len(model.calls) == 2
  assert "properties" in model.calls[0]["schema"]


@pytest.mark.anyio
async def test_structured_output_enforces_list_bounds() -> None:
  model = ScriptedModel(replies=[{"tags": ["one", "two"]}] * 2)
  gateway = GenerationGateway(model, retry_policy=fast_policy(max_attempts=2))
  with pytest.raises(GenerationError, match="schema validation failed"):
    await gateway.generate_structured("prompt", StoryTags, operation="tags")
