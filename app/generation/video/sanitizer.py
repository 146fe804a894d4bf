"""Progressive rewriting of video prompts rejected on content-policy grounds."""

from __future__ import annotations

import logging
from enum import IntEnum

from app.ai.gateway import GenerationGateway
from app.generation.constants import VIDEO_PROMPT_TEMPERATURE
from app.generation.video.enhancer import clean_video_prompt

logger = logging.getLogger(__name__)


class SanitizationLevel(IntEnum):
  MILD = 1
  STRONG = 2


SANITIZED_PROMPT_CEILINGS: dict[SanitizationLevel, int] = {SanitizationLevel.MILD: 500, SanitizationLevel.STRONG: 280}

_LEVEL_INSTRUCTIONS: dict[SanitizationLevel, str] = {
  SanitizationLevel.MILD: "Make this prompt slightly less explicit while keeping its emotional and romantic essence. Focus more on emotions and atmosphere than physical details.",
  SanitizationLevel.STRONG: "Make this prompt significantly more subtle and abstract. Remove anything potentially explicit and focus entirely on emotional storytelling, facial expressions and cinematic atmosphere.",
}


def level_for_attempt(sanitization_round: int) -> SanitizationLevel:
  """Return the level for the Nth policy-driven retry (1-based): first mild, then strong."""
  if sanitization_round < 1:
    raise ValueError(f"sanitization_round must be >= 1, got {sanitization_round}")
  return SanitizationLevel.MILD if sanitization_round == 1 else SanitizationLevel.STRONG


def sanitizer_system_prompt(level: SanitizationLevel) -> str:
  ceiling = SANITIZED_PROMPT_CEILINGS[level]
  return f"""You are a prompt sanitizer for video generation. Rewrite prompts to be less explicit while keeping their artistic and emotional value.

SANITIZATION LEVEL {int(level)}: {_LEVEL_INSTRUCTIONS[level]}

GUIDELINES:
- Preserve the emotional core and romantic tension.
- Use metaphorical, artistic language; emphasize lighting and mood.
- Remove or soften physical descriptions that might be too explicit.
- Keep cinematic terminology such as [Close-up] and [Wide shot].
- Keep the output under {ceiling} characters.

Return ONLY the sanitized prompt without any explanation or prefix."""


class VideoPromptSanitizer:
  def __init__(self, gateway: GenerationGateway) -> None:
    self._gateway = gateway

  async def sanitize(self, prompt: str, level: SanitizationLevel) -> str:
    ceiling = SANITIZED_PROMPT_CEILINGS[level]
    logger.info("Sanitizing video prompt at level %d (ceiling=%d)", int(level), ceiling)
    sanitized = await self._gateway.generate_parsed(
      f"Sanitize this video prompt according to level {int(level)} guidelines:\n\n{prompt}",
      lambda text: clean_video_prompt(text, ceiling),
      system_prompt=sanitizer_system_prompt(level),
      temperature=VIDEO_PROMPT_TEMPERATURE,
      operation=f"sanitize_video_prompt_level_{int(level)}",
    )
    logger.info("Sanitized prompt (%d chars): %s", len(sanitized), sanitized[:100])
    return sanitized
